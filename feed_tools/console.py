"""控制台输出辅助：emoji 降级、分隔横幅。"""

import os
import sys

from . import config


class Emoji:
    """根据终端能力自动选择 emoji 或 ASCII 替代符。"""

    _MAP = {"✅": "[OK]", "❌": "[X]", "⚠️": "[!]", "📦": "[PKG]"}

    def __init__(self):
        self.supports_emoji = self._detect()

    @staticmethod
    def _detect() -> bool:
        if getattr(sys, 'frozen', False):
            return False
        if config.IS_WIN:
            return bool(os.environ.get('WT_SESSION') or os.environ.get('TERM_PROGRAM'))
        return True

    def get(self, char: str) -> str:
        return char if self.supports_emoji else self._MAP.get(char, "[?]")


emoji = Emoji()


def banner(*lines: str, char: str = "=") -> None:
    print(char * 40, flush=True)
    for line in lines:
        print(line, flush=True)
    print(char * 40, flush=True)
