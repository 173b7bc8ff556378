"""
本地 registry 的 exists / publish / unpublish。

NpmRegistryClient 全部通过 npm 子进程完成；HttpRegistryClient 的 exists 直接查 packument，
publish/unpublish 仍交给 npm（不自己实现 npm 的发布协议）。
"""

import subprocess
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import requests

from . import config
from .commands import log_name, run_cmd_to_file
from .errors import PublishError


class NpmRegistryClient:
    def __init__(self, registry_url: str, npmrc: Optional[Path], logs_dir: Path, timeout: float = 60):
        self.registry_url = registry_url.rstrip("/")
        self.npmrc = npmrc
        self.logs_dir = logs_dir
        self.timeout = timeout

    def _common_args(self) -> List[str]:
        args = ["--registry", self.registry_url]
        if self.npmrc is not None:
            args += ["--userconfig", str(self.npmrc)]
        return args

    def exists(self, name: str, version: str) -> bool:
        """npm view name@version；任何失败都当作不存在。"""
        cmd = [config.NPM, "view", f"{name}@{version}", "version", *self._common_args()]
        try:
            out = subprocess.run(cmd, capture_output=True, encoding="utf-8", timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired):
            return False
        return out.returncode == 0 and bool((out.stdout or "").strip())

    def _run(self, args: List[str], cwd: Path, label: str) -> None:
        cmd = [config.NPM, *args, *self._common_args()]
        log_path = self.logs_dir / "publish" / f"{log_name(label)}.log"
        print(f">>> {' '.join(cmd)}", flush=True)
        code = run_cmd_to_file(cmd, cwd, log_path, echo_stdout=False)
        if code != 0:
            raise PublishError(f"{label} 失败（退出码 {code}），详见 {log_path}")

    def publish(self, package_dir: Path) -> None:
        self._run(["publish"], package_dir, f"publish-{package_dir.name}")

    def unpublish(self, spec: str, cwd: Optional[Path] = None) -> None:
        self._run(["unpublish", spec, "--force"], cwd or self.logs_dir.parent, f"unpublish-{spec}")


class HttpRegistryClient(NpmRegistryClient):
    def packument_url(self, name: str) -> str:
        return f"{self.registry_url}/{quote(name, safe='@')}"

    def exists(self, name: str, version: str) -> bool:
        try:
            r = requests.get(self.packument_url(name), timeout=self.timeout)
            if r.status_code != 200:
                return False
            data = r.json()
        except (requests.RequestException, ValueError):
            return False
        versions = data.get("versions") if isinstance(data, dict) else None
        return isinstance(versions, dict) and version in versions


def make_client(settings: config.Settings, npmrc: Optional[Path] = None) -> NpmRegistryClient:
    cls = HttpRegistryClient if settings.registry_client == "http" else NpmRegistryClient
    return cls(settings.registry_url, npmrc, settings.logs_dir)
