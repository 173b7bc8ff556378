"""
遍历镜像仓库的一级目录，带 package.json 的目录即一个待发布的包：
  - 已存在且非强制：跳过；
  - 已存在且强制：先 unpublish 再 publish（unpublish 失败也继续 publish）；
  - 不存在：直接 publish。
package.json 解析失败时仍尝试发布。单个包失败只记录，不影响其它包。
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .console import emoji
from .errors import PublishError
from .mirror import iter_item_dirs


@dataclass
class PublishUnit:
    directory: Path
    name: Optional[str] = None
    version: Optional[str] = None

    @property
    def spec(self) -> Optional[str]:
        if self.name and self.version:
            return f"{self.name}@{self.version}"
        return None


@dataclass
class PublishReport:
    published: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


def read_unit(directory: Path) -> PublishUnit:
    """读取 package.json 的 name/version；解析失败时字段留空。"""
    unit = PublishUnit(directory)
    try:
        data = json.loads((directory / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"读取 package.json 失败: {e}，尝试直接发布", flush=True)
        return unit
    if isinstance(data, dict):
        name, version = data.get("name"), data.get("version")
        unit.name = name if isinstance(name, str) and name else None
        unit.version = version if isinstance(version, str) and version else None
    return unit


def find_units(repo_path: Path) -> List[PublishUnit]:
    return [read_unit(d) for d in iter_item_dirs(repo_path) if (d / "package.json").is_file()]


def publish_unit(unit: PublishUnit, client, force: bool) -> str:
    """返回 'published' / 'republished' / 'skipped'；失败抛 PublishError。"""
    spec = unit.spec
    if spec is None:
        client.publish(unit.directory)
        return "published"
    if not client.exists(unit.name, unit.version):
        client.publish(unit.directory)
        return "published"
    if not force:
        return "skipped"
    try:
        client.unpublish(spec, cwd=unit.directory)
    except PublishError as e:
        print(f"{emoji.get('⚠️')} 移除旧版本失败: {e}", flush=True)
    client.publish(unit.directory)
    return "republished"


def publish_repo(repo_path: Path, client, force: bool = False) -> PublishReport:
    print("\n>>> 开始发布包到本地 verdaccio...", flush=True)
    report = PublishReport()
    for unit in find_units(repo_path):
        label = unit.spec or unit.directory.name
        print(f"\n发现包: {unit.directory.name}", flush=True)
        try:
            result = publish_unit(unit, client, force)
        except PublishError as e:
            report.failed.append((label, str(e)))
            print(f"{emoji.get('❌')} {e}", flush=True)
            continue
        if result == "skipped":
            report.skipped.append(label)
            print(f"包 {label} 已存在，跳过发布", flush=True)
        else:
            report.published.append(label)
            print(f"{emoji.get('✅')} 已发布 {label}" + ("（覆盖）" if result == "republished" else ""), flush=True)
    return report
