"""需要镜像并发布到本地源的仓库列表。"""

from dataclasses import dataclass, field
from typing import List

# 该仓库的各个一级目录下带有 board.webp，需额外复制到 public/imgs/boards/<目录名>/
BOARDS_REPO = "aily-blockly-boards"
BOARD_IMAGE = "board.webp"


@dataclass(frozen=True)
class RepoDescriptor:
    name: str
    archive_url: str
    commands: List[str] = field(default_factory=list)
    public: List[str] = field(default_factory=list)


def _github_zip(name: str) -> str:
    return f"https://github.com/ailyProject/{name}/archive/refs/heads/main.zip"


REPOS: List[RepoDescriptor] = [
    RepoDescriptor(
        name="aily-blockly-boards",
        archive_url=_github_zip("aily-blockly-boards"),
        commands=["npm i", "node genjson.js"],
        public=["boards.json"],
    ),
    RepoDescriptor(
        name="aily-blockly-libraries",
        archive_url=_github_zip("aily-blockly-libraries"),
        commands=["npm i", "node genjson.js"],
        public=["libraries.json"],
    ),
    RepoDescriptor(name="aily-project-tools", archive_url=_github_zip("aily-project-tools")),
    RepoDescriptor(name="aily-project-compilers", archive_url=_github_zip("aily-project-compilers")),
    RepoDescriptor(name="aily-project-sdks", archive_url=_github_zip("aily-project-sdks")),
]
