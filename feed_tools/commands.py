"""子进程执行：输出实时写入日志文件，可选回显到控制台。"""

import re
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Union

Command = Union[str, List[str]]


def log_name(text: str) -> str:
    """把命令/包名转成可做文件名的片段。"""
    return re.sub(r'[<>:"/\\|?*@\s\x00-\x1F]+', "_", text).strip("_")[:80] or "cmd"


def run_cmd_to_file(cmd: Command, cwd: Path, log_path: Path, echo_stdout: bool = True) -> int:
    """
    执行命令并实时写入日志文件，返回退出码。
    cmd 为字符串时经 shell 执行（仓库配置里的 "npm i" 这类命令行）。
    """
    shell = isinstance(cmd, str)
    shown = cmd if shell else " ".join(cmd)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("w", encoding="utf-8", errors="replace") as f:
        f.write(f"# cmd: {shown}\n# cwd: {cwd}\n# time: {time.strftime('%Y-%m-%d %H:%M:%S')}\n\n")
        f.flush()
        try:
            p = subprocess.Popen(
                cmd, cwd=str(cwd), stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                shell=shell, encoding="utf-8", errors="replace", bufsize=1
            )
        except OSError as e:
            f.write(f"启动失败: {e}\n")
            if echo_stdout:
                print(f"启动失败: {e}", flush=True)
            return 127
        for line in iter(p.stdout.readline, ""):
            f.write(line)
            f.flush()
            if echo_stdout:
                print(line, end="")
                sys.stdout.flush()
        p.stdout.close()
        return p.wait()


def run_command(cmd: Command, cwd: Path, description: str, log_path: Path) -> bool:
    print(f">>> {description}", flush=True)
    print(f">>> 目录: {cwd}", flush=True)
    code = run_cmd_to_file(cmd, cwd, log_path)
    if code != 0:
        print(f"命令执行失败（退出码 {code}），详见 {log_path}", flush=True)
        return False
    return True
