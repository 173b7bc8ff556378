"""
后台服务进程管理：start / status / stop，pid 文件是服务是否在运行的唯一记录。
pid 文件存在但进程已不在时视为过期记录，查询时顺手清理。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .console import emoji
from .platform_ops import ProcessProbe, default_launcher


@dataclass
class ServiceSpec:
    name: str
    title: str
    command: List[str]
    pid_file: Path
    log_file: Path
    cwd: Path
    url: str = ""
    # 需要经中转启动时，用于在进程表中找回真实 pid 的命令行特征
    match: List[str] = field(default_factory=list)


@dataclass
class ServiceHandle:
    pid: int
    pid_file: Path
    log_file: Path


def read_pid(pid_file: Path) -> Optional[int]:
    try:
        text = pid_file.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _remove(pid_file: Path) -> None:
    try:
        pid_file.unlink()
    except FileNotFoundError:
        pass


class ProcessSupervisor:
    def __init__(self, launcher=None, probe: Optional[ProcessProbe] = None):
        self.launcher = launcher or default_launcher()
        self.probe = probe or ProcessProbe()

    def status(self, spec: ServiceSpec) -> Optional[ServiceHandle]:
        """返回运行中的句柄；记录过期或损坏时删除 pid 文件并返回 None。"""
        if not spec.pid_file.exists():
            return None
        pid = read_pid(spec.pid_file)
        if pid is not None and pid > 0 and self.probe.is_alive(pid):
            return ServiceHandle(pid, spec.pid_file, spec.log_file)
        _remove(spec.pid_file)
        return None

    def start(self, spec: ServiceSpec) -> Tuple[ServiceHandle, bool]:
        """启动服务；已在运行时不重复启动。返回 (句柄, 是否本次新启动)。"""
        handle = self.status(spec)
        if handle:
            print(f"{spec.title} 已经在运行中 (PID: {handle.pid})", flush=True)
            return handle, False
        print(f"正在启动 {spec.title} ...", flush=True)
        pid = self.launcher.launch_detached(spec.command, spec.log_file, spec.cwd, spec.match)
        spec.pid_file.parent.mkdir(parents=True, exist_ok=True)
        spec.pid_file.write_text(str(pid), encoding="utf-8")
        print(f"{emoji.get('✅')} {spec.title} 已启动 (PID: {pid})，日志: {spec.log_file}", flush=True)
        if spec.url:
            print(f"访问地址: {spec.url}", flush=True)
        return ServiceHandle(pid, spec.pid_file, spec.log_file), True

    def stop(self, spec: ServiceSpec) -> bool:
        """停止服务及其全部子进程；未运行时返回 False 且不发送任何信号。"""
        handle = self.status(spec)
        if not handle:
            print(f"{spec.title} 未在运行", flush=True)
            return False
        print(f"正在停止 {spec.title} (PID: {handle.pid}) ...", flush=True)
        try:
            self.probe.kill_tree(handle.pid)
            print(f"{emoji.get('✅')} {spec.title} 已停止", flush=True)
        except OSError as e:
            print(f"{emoji.get('❌')} 停止 {spec.title} 失败: {e}", flush=True)
        finally:
            _remove(spec.pid_file)
        return True

    def report(self, spec: ServiceSpec) -> Optional[ServiceHandle]:
        handle = self.status(spec)
        if handle:
            print(f"{spec.title} 正在运行 (PID: {handle.pid})", flush=True)
            if spec.url:
                print(f"访问地址: {spec.url}", flush=True)
        else:
            print(f"{spec.title} 未在运行", flush=True)
        return handle
