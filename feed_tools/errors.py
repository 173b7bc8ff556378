"""异常分类。每类异常带 exit_code，命令入口据此返回进程退出码。"""


class FeedError(Exception):
    exit_code = 1


class ConfigError(FeedError):
    exit_code = 10


class ReadinessTimeoutError(FeedError):
    """服务在重试预算内始终未就绪。"""

    exit_code = 2

    def __init__(self, url: str, attempts: int):
        super().__init__(f"{url} 在 {attempts} 次探测后仍未就绪")
        self.url = url
        self.attempts = attempts


class ProcessSpawnError(FeedError):
    exit_code = 3


class CredentialError(FeedError):
    exit_code = 4


class ManifestError(FeedError):
    """资源清单阶段的失败，整个同步阶段中止。"""


class ManifestFormatError(ManifestError):
    exit_code = 5


class ManifestNotFoundError(ManifestError):
    exit_code = 6

    def __init__(self, url: str):
        super().__init__(f"文件清单不存在: {url}\n请先在资源存储桶中发布清单文件")
        self.url = url


class ManifestFetchError(ManifestError):
    exit_code = 11


class MirrorError(FeedError):
    exit_code = 7


class HttpStatusError(MirrorError):
    def __init__(self, url: str, status: int):
        super().__init__(f"HTTP {status}: {url}")
        self.url = url
        self.status = status


class TooManyRedirectsError(MirrorError):
    def __init__(self, url: str, max_redirects: int):
        super().__init__(f"重定向次数过多（上限 {max_redirects}）: {url}")
        self.url = url


class PublishError(FeedError):
    exit_code = 8


class PerFileSyncError(FeedError):
    exit_code = 9
