"""
项目配置 + 平台初始化。
平台常量放在模块顶层；与部署相关的路径、端口、账号统一放在 Settings 里，
启动时由 load_settings() 构造一次，再传给各组件。
可在项目根目录的 config.local 中覆盖默认值（模板见 config.template）。
"""

import io
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

from .errors import ConfigError

# ===== 平台常量（无需修改） =====

IS_WIN = sys.platform == "win32"
NPM = "npm.cmd" if IS_WIN else "npm"
PYTHON = sys.executable

# ===== 控制台编码（无需修改） =====


def setup_console() -> None:
    if IS_WIN:
        os.environ.setdefault("PYTHONIOENCODING", "utf-8")
        try:
            sys.stdout = io.TextIOWrapper(
                sys.stdout.buffer, encoding="utf-8", errors="replace", line_buffering=True,
            )
            sys.stderr = io.TextIOWrapper(
                sys.stderr.buffer, encoding="utf-8", errors="replace", line_buffering=True,
            )
        except Exception:
            pass
    else:
        if hasattr(sys.stdout, "reconfigure"):
            try:
                sys.stdout.reconfigure(line_buffering=True)
                sys.stderr.reconfigure(line_buffering=True)
            except Exception:
                pass


# ===== config.local =====

def load_config(base_dir: Path) -> Dict[str, str]:
    """读取 config.local，返回键值对（键大写，值已 strip）。"""
    cfg = {}
    path = base_dir / "config.local"
    if not path.exists():
        return cfg
    for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" in line:
            k, v = line.split("=", 1)
            cfg[k.strip().upper()] = v.strip().strip("'\"").rstrip("/")
    return cfg


def _int_value(cfg: Dict[str, str], key: str, default: int) -> int:
    raw = cfg.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"config.local 中 {key} 不是有效整数: {raw}") from None


@dataclass
class Account:
    """默认账号。token 仅在登录接口返回时存在，不落盘到 .env。"""

    username: str
    password: str
    email: str
    token: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.username and self.password and self.email)


@dataclass
class Settings:
    base_dir: Path
    registry_host: str = "localhost"
    registry_port: int = 4873
    static_port: int = 4874
    resource_url: str = "https://rs1.aily.pro"
    resource_bucket: str = "ailyblockly"
    manifest_file: str = "manifest.json"
    registry_client: str = "npm"
    default_account: Account = field(
        default_factory=lambda: Account("aily-admin", "aily123456", "admin@aily.local")
    )

    # 就绪探测：run 时等待较久，update/unpublish 只做存活确认
    ready_attempts: int = 30
    check_attempts: int = 10
    ready_interval: float = 1.0
    probe_timeout: float = 1.0

    # 单次网络请求超时（秒）
    archive_timeout: float = 60
    manifest_timeout: float = 30
    file_timeout: float = 120
    api_timeout: float = 10
    max_redirects: int = 5

    @property
    def registry_url(self) -> str:
        return f"http://{self.registry_host}:{self.registry_port}"

    @property
    def static_url(self) -> str:
        return f"http://{self.registry_host}:{self.static_port}"

    @property
    def ping_url(self) -> str:
        return f"{self.registry_url}/-/ping"

    @property
    def manifest_url(self) -> str:
        return f"{self.resource_url.rstrip('/')}/{self.manifest_file}"

    @property
    def verdaccio_bin(self) -> Path:
        name = "verdaccio.cmd" if IS_WIN else "verdaccio"
        return self.base_dir / "node_modules" / ".bin" / name

    @property
    def config_path(self) -> Path:
        return self.base_dir / "config.yaml"

    @property
    def pid_file(self) -> Path:
        return self.base_dir / ".verdaccio.pid"

    @property
    def static_pid_file(self) -> Path:
        return self.base_dir / ".static-server.pid"

    @property
    def repos_dir(self) -> Path:
        return self.base_dir / "repos"

    @property
    def public_dir(self) -> Path:
        return self.base_dir / "public"

    @property
    def boards_public_dir(self) -> Path:
        return self.public_dir / "imgs" / "boards"

    @property
    def npmrc_path(self) -> Path:
        return self.base_dir / ".npmrc"

    @property
    def env_file(self) -> Path:
        return self.base_dir / ".env"

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def htpasswd_file(self) -> Path:
        """从 verdaccio 的 config.yaml 读取 auth.htpasswd.file；相对路径以 config.yaml 所在目录为准。"""
        default = self.base_dir / "htpasswd"
        if not self.config_path.exists():
            return default
        try:
            data = yaml.safe_load(self.config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError:
            return default
        auth = data.get("auth") if isinstance(data, dict) else None
        htpasswd = auth.get("htpasswd") if isinstance(auth, dict) else None
        file_value = htpasswd.get("file") if isinstance(htpasswd, dict) else None
        if not file_value:
            return default
        p = Path(str(file_value))
        return p if p.is_absolute() else (self.config_path.parent / p).resolve()


def load_settings(base_dir: Path) -> Settings:
    """构造 Settings：默认值 + config.local 覆盖。"""
    base_dir = Path(base_dir).resolve()
    cfg = load_config(base_dir)
    settings = Settings(base_dir=base_dir)
    settings.registry_host = cfg.get("REGISTRY_HOST") or settings.registry_host
    settings.registry_port = _int_value(cfg, "REGISTRY_PORT", settings.registry_port)
    settings.static_port = _int_value(cfg, "STATIC_PORT", settings.static_port)
    settings.resource_url = cfg.get("RESOURCE_URL") or settings.resource_url
    settings.resource_bucket = cfg.get("RESOURCE_BUCKET") or settings.resource_bucket
    settings.manifest_file = cfg.get("MANIFEST_FILE") or settings.manifest_file
    client = (cfg.get("REGISTRY_CLIENT") or settings.registry_client).lower()
    if client not in ("npm", "http"):
        raise ConfigError(f"REGISTRY_CLIENT 只支持 npm 或 http: {client}")
    settings.registry_client = client
    acc = settings.default_account
    settings.default_account = Account(
        username=cfg.get("NPM_USER") or acc.username,
        password=cfg.get("NPM_PASS") or acc.password,
        email=cfg.get("NPM_EMAIL") or acc.email,
    )
    return settings
