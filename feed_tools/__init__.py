"""本地 Verdaccio 包源工具：启停服务、镜像仓库、发布包、同步资源。"""

__version__ = "1.0.0"
