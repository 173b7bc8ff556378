"""
与平台相关的进程操作：后台启动、存活检测、终止进程树。
Supervisor 只依赖这里的 Launcher / ProcessProbe 接口，自身算法与平台无关。
"""

import subprocess
import time
from pathlib import Path
from typing import List, Optional, Sequence

import psutil

from . import config
from .errors import ProcessSpawnError


class ProcessProbe:
    """基于 psutil 的存活检测与进程树终止。"""

    def is_alive(self, pid: int) -> bool:
        try:
            proc = psutil.Process(pid)
            return proc.status() != psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
            # AccessDenied 时进程存在但无权查询状态
            return psutil.pid_exists(pid) if pid > 0 else False

    def kill_tree(self, pid: int, timeout: float = 5.0) -> None:
        """先 terminate 整棵进程树，超时未退出的再 kill。"""
        try:
            parent = psutil.Process(pid)
        except psutil.NoSuchProcess:
            return
        try:
            children = parent.children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            children = []
        procs = children + [parent]
        for p in procs:
            try:
                p.terminate()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                raise PermissionError(f"无权终止进程 {p.pid}") from e
        _, alive = psutil.wait_procs(procs, timeout=timeout)
        for p in alive:
            try:
                p.kill()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                raise PermissionError(f"无权终止进程 {p.pid}") from e
        if alive:
            psutil.wait_procs(alive, timeout=timeout)


def find_process(patterns: Sequence[str], exclude: Sequence[int] = ()) -> Optional[int]:
    """在进程表中查找命令行同时包含所有 patterns（忽略大小写）的进程。"""
    wanted = [p.lower() for p in patterns if p]
    if not wanted:
        return None
    for proc in psutil.process_iter(["pid", "cmdline"]):
        if proc.info["pid"] in exclude:
            continue
        cmdline = " ".join(proc.info.get("cmdline") or []).lower()
        if cmdline and all(w in cmdline for w in wanted):
            return proc.info["pid"]
    return None


class PosixLauncher:
    """直接以新会话启动子进程，脱离当前终端；返回的就是服务本身的 pid。"""

    def launch_detached(
        self,
        command: List[str],
        log_path: Path,
        cwd: Path,
        match: Sequence[str] = (),
    ) -> int:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with log_path.open("ab") as log:
                proc = subprocess.Popen(
                    command,
                    cwd=str(cwd),
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as e:
            raise ProcessSpawnError(f"启动失败: {' '.join(command)}: {e}") from e
        return proc.pid


class WindowsLauncher:
    """
    Windows 下以隐藏窗口、新进程组启动。
    .cmd/.bat 需经 cmd.exe 中转，中转进程的 pid 不是长期运行的服务，
    需按命令行特征（可执行文件 + 配置路径）在进程表中找回真实 pid。
    """

    locate_timeout = 10.0
    locate_interval = 0.5

    def launch_detached(
        self,
        command: List[str],
        log_path: Path,
        cwd: Path,
        match: Sequence[str] = (),
    ) -> int:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        needs_shim = command[0].lower().endswith((".cmd", ".bat"))
        argv = ["cmd.exe", "/d", "/c", *command] if needs_shim else list(command)
        startupinfo = subprocess.STARTUPINFO()
        startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        startupinfo.wShowWindow = 0
        flags = subprocess.CREATE_NO_WINDOW | subprocess.CREATE_NEW_PROCESS_GROUP
        try:
            with log_path.open("ab") as log:
                proc = subprocess.Popen(
                    argv,
                    cwd=str(cwd),
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    startupinfo=startupinfo,
                    creationflags=flags,
                )
        except OSError as e:
            raise ProcessSpawnError(f"启动失败: {' '.join(command)}: {e}") from e
        if not needs_shim:
            return proc.pid
        return self._locate(proc.pid, match)

    def _locate(self, shim_pid: int, match: Sequence[str]) -> int:
        deadline = time.time() + self.locate_timeout
        while time.time() < deadline:
            pid = find_process(match, exclude=(shim_pid,))
            if pid:
                return pid
            time.sleep(self.locate_interval)
        raise ProcessSpawnError(f"已启动但无法在进程表中找到服务进程: {' '.join(match)}")


def default_launcher():
    return WindowsLauncher() if config.IS_WIN else PosixLauncher()
