"""发布流程：存在则跳过、强制覆盖、单包失败隔离。"""

import json

from feed_tools.errors import PublishError
from feed_tools.publisher import find_units, publish_repo


class FakeClient:
    def __init__(self, existing=(), failing=(), failing_unpublish=()):
        self.existing = set(existing)
        self.failing = set(failing)
        self.failing_unpublish = set(failing_unpublish)
        self.calls = []

    def exists(self, name, version):
        self.calls.append(("exists", f"{name}@{version}"))
        return f"{name}@{version}" in self.existing

    def publish(self, package_dir):
        self.calls.append(("publish", package_dir.name))
        if package_dir.name in self.failing:
            raise PublishError(f"publish-{package_dir.name} 失败（退出码 1）")

    def unpublish(self, spec, cwd=None):
        self.calls.append(("unpublish", spec))
        if spec in self.failing_unpublish:
            raise PublishError(f"unpublish-{spec} 失败（退出码 1）")


def add_package(repo, dirname, manifest):
    d = repo / dirname
    d.mkdir(parents=True)
    text = manifest if isinstance(manifest, str) else json.dumps(manifest)
    (d / "package.json").write_text(text, encoding="utf-8")
    return d


def test_existing_version_skipped_new_version_published(tmp_path):
    repo = tmp_path / "repo"
    add_package(repo, "a", {"name": "a", "version": "1.0.0"})
    add_package(repo, "b", {"name": "b", "version": "2.0.0"})
    client = FakeClient(existing={"a@1.0.0"})

    report = publish_repo(repo, client, force=False)

    assert report.skipped == ["a@1.0.0"]
    assert report.published == ["b@2.0.0"]
    assert ("publish", "a") not in client.calls
    assert not any(c[0] == "unpublish" for c in client.calls)
    assert ("publish", "b") in client.calls


def test_force_unpublishes_then_publishes(tmp_path):
    repo = tmp_path / "repo"
    add_package(repo, "a", {"name": "@aily/a", "version": "1.0.0"})
    client = FakeClient(existing={"@aily/a@1.0.0"})

    report = publish_repo(repo, client, force=True)

    assert report.published == ["@aily/a@1.0.0"]
    assert client.calls == [
        ("exists", "@aily/a@1.0.0"),
        ("unpublish", "@aily/a@1.0.0"),
        ("publish", "a"),
    ]


def test_unparseable_manifest_still_publishes(tmp_path):
    repo = tmp_path / "repo"
    add_package(repo, "broken", "{not json")
    add_package(repo, "noversion", {"name": "x"})
    client = FakeClient()

    report = publish_repo(repo, client)

    assert sorted(report.published) == ["broken", "noversion"]
    assert not any(c[0] == "exists" for c in client.calls)


def test_failure_is_isolated_per_package(tmp_path):
    repo = tmp_path / "repo"
    add_package(repo, "a", {"name": "a", "version": "1.0.0"})
    add_package(repo, "b", {"name": "b", "version": "1.0.0"})
    add_package(repo, "c", {"name": "c", "version": "1.0.0"})
    client = FakeClient(failing={"b"})

    report = publish_repo(repo, client)

    assert report.published == ["a@1.0.0", "c@1.0.0"]
    assert [name for name, _ in report.failed] == ["b@1.0.0"]


def test_only_immediate_package_dirs_are_units(tmp_path):
    repo = tmp_path / "repo"
    add_package(repo, "a", {"name": "a", "version": "1.0.0"})
    add_package(repo, "node_modules", {"name": "dep", "version": "1.0.0"})
    add_package(repo, ".git", {"name": "git", "version": "1.0.0"})
    add_package(repo / "a", "nested", {"name": "nested", "version": "1.0.0"})
    (repo / "docs").mkdir()
    (repo / "package.json").write_text("{}", encoding="utf-8")

    units = find_units(repo)

    assert [u.spec for u in units] == ["a@1.0.0"]


def test_force_publishes_even_when_unpublish_fails(tmp_path, capsys):
    repo = tmp_path / "repo"
    add_package(repo, "a", {"name": "a", "version": "1.0.0"})
    client = FakeClient(existing={"a@1.0.0"}, failing_unpublish={"a@1.0.0"})

    report = publish_repo(repo, client, force=True)

    assert report.published == ["a@1.0.0"]
    assert report.failed == []
    assert client.calls[-2:] == [("unpublish", "a@1.0.0"), ("publish", "a")]
    assert "移除旧版本失败" in capsys.readouterr().out
