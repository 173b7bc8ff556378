#!/usr/bin/env python3
"""本地 Verdaccio 包源管理入口。配置项见 config.template / feed_tools/config.py。"""

from pathlib import Path

from feed_tools import config
from feed_tools.cli import main

config.setup_console()
try:
    exit_code = main(base_dir=Path(__file__).resolve().parent)
except KeyboardInterrupt:
    print("\n已中断", flush=True)
    exit_code = 130
except Exception as e:
    print(f"执行异常: {e}", flush=True)
    import traceback
    traceback.print_exc()
    exit_code = 1
raise SystemExit(exit_code)
