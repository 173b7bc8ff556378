"""
默认账号初始化 + 本地 .npmrc 生成。

顺序：
  1. .env 中已有完整账号信息 → 直接复用；
  2. htpasswd 中已有该用户 → 复用默认账号并写回 .env；
  3. 通过 verdaccio 账号接口注册，409（已存在）也算成功；
  4. 接口不可达时直接写 htpasswd（{SHA} 格式）。
.npmrc 每次运行都重新生成，token 可能会变。
"""

import base64
import hashlib
import time
from pathlib import Path
from typing import Dict, Optional

import requests

from .config import Account, Settings
from .console import emoji
from .errors import CredentialError


def load_env(env_file: Path) -> Dict[str, str]:
    """读取 .env（KEY=VALUE，# 开头为注释）。"""
    env = {}
    if not env_file.exists():
        return env
    for line in env_file.read_text(encoding="utf-8", errors="ignore").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        env[k.strip()] = v.strip()
    return env


def save_env(env_file: Path, account: Account, registry_url: str) -> None:
    content = (
        "# Verdaccio 用户信息 (自动生成)\n"
        f"NPM_USER={account.username}\n"
        f"NPM_PASS={account.password}\n"
        f"NPM_EMAIL={account.email}\n"
        f"NPM_REGISTRY={registry_url}\n"
    )
    env_file.write_text(content, encoding="utf-8")
    print(f"用户信息已保存到 {env_file}", flush=True)


def account_from_env(env: Dict[str, str]) -> Optional[Account]:
    account = Account(env.get("NPM_USER", ""), env.get("NPM_PASS", ""), env.get("NPM_EMAIL", ""))
    return account if account.complete else None


def htpasswd_hash(password: str) -> str:
    """Apache {SHA} 格式：{SHA}base64(sha1(password))。"""
    digest = hashlib.sha1(password.encode("utf-8")).digest()
    return "{SHA}" + base64.b64encode(digest).decode("ascii")


def htpasswd_has_user(htpasswd: Path, username: str) -> bool:
    if not htpasswd.exists():
        return False
    lines = htpasswd.read_text(encoding="utf-8", errors="ignore").splitlines()
    return any(line.startswith(username + ":") for line in lines)


def write_htpasswd_user(htpasswd: Path, account: Account) -> bool:
    """追加用户行；已存在返回 False（视为成功，不重复写）。"""
    if htpasswd_has_user(htpasswd, account.username):
        print(f"用户 {account.username} 已存在于 htpasswd 文件中", flush=True)
        return False
    stamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime())
    line = f"{account.username}:{htpasswd_hash(account.password)}:autocreated {stamp}"
    existing = htpasswd.read_text(encoding="utf-8") if htpasswd.exists() else ""
    content = existing.strip() + "\n" + line + "\n" if existing.strip() else line + "\n"
    htpasswd.parent.mkdir(parents=True, exist_ok=True)
    htpasswd.write_text(content, encoding="utf-8")
    print(f"用户 {account.username} 已通过 htpasswd 创建成功", flush=True)
    return True


def _user_url(settings: Settings, username: str) -> str:
    return f"{settings.registry_url}/-/user/org.couchdb.user:{username}"


def _basic_auth(account: Account) -> str:
    raw = f"{account.username}:{account.password}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def register_via_api(settings: Settings, account: Account) -> Account:
    """
    通过账号接口注册。201/200 成功（可能附带 token），409 表示已存在。
    连接失败抛 requests.RequestException，其它状态码抛 CredentialError。
    """
    payload = {
        "_id": f"org.couchdb.user:{account.username}",
        "name": account.username,
        "password": account.password,
        "email": account.email,
        "type": "user",
        "roles": [],
        "date": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    }
    r = requests.put(_user_url(settings, account.username), json=payload, timeout=settings.api_timeout)
    if r.status_code in (200, 201):
        print(f"用户 {account.username} 创建成功", flush=True)
        try:
            token = (r.json() or {}).get("token")
        except ValueError:
            token = None
        return Account(account.username, account.password, account.email, token)
    if r.status_code == 409:
        print(f"用户 {account.username} 已存在", flush=True)
        return account
    raise CredentialError(f"创建用户失败: HTTP {r.status_code} {r.text[:200]}")


def ensure_default_account(settings: Settings) -> Account:
    """确保默认账号存在，返回账号信息。"""
    existing = account_from_env(load_env(settings.env_file))
    if existing:
        print(f"使用已存在的用户: {existing.username}", flush=True)
        return existing

    account = settings.default_account
    htpasswd = settings.htpasswd_file
    if htpasswd_has_user(htpasswd, account.username):
        print(f"用户 {account.username} 已存在于 htpasswd 中", flush=True)
        save_env(settings.env_file, account, settings.registry_url)
        return account

    print(f"正在创建用户: {account.username} ...", flush=True)
    try:
        account = register_via_api(settings, account)
    except requests.RequestException as e:
        print(f"{emoji.get('⚠️')} 账号接口不可用（{e}），改为直接写入 htpasswd: {htpasswd}", flush=True)
        try:
            write_htpasswd_user(htpasswd, account)
        except OSError as err:
            raise CredentialError(f"写入 htpasswd 失败: {err}") from err
    save_env(settings.env_file, account, settings.registry_url)
    return account


def login_token(settings: Settings, account: Account) -> Optional[str]:
    """用 Basic Auth 调用登录接口换取 token；拿不到返回 None。"""
    if account.token:
        return account.token
    payload = {"name": account.username, "password": account.password}
    headers = {"Authorization": "Basic " + _basic_auth(account)}
    try:
        r = requests.put(
            _user_url(settings, account.username),
            json=payload,
            headers=headers,
            timeout=settings.api_timeout,
        )
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        print(f"{emoji.get('⚠️')} 登录获取 token 失败: {e}", flush=True)
        return None
    token = data.get("token") if isinstance(data, dict) else None
    return token or None


def render_npmrc(settings: Settings, account: Account, token: Optional[str]) -> str:
    host = f"//{settings.registry_host}:{settings.registry_port}/"
    lines = [
        "# 本地 Verdaccio 配置（自动生成）",
        f"registry={settings.registry_url}/",
    ]
    if token:
        lines.append(f"{host}:_authToken={token}")
    else:
        password_b64 = base64.b64encode(account.password.encode("utf-8")).decode("ascii")
        lines += [
            f"{host}:_auth={_basic_auth(account)}",
            f"{host}:username={account.username}",
            f"{host}:_password={password_b64}",
        ]
    # localhost 请求走代理会导致 502
    lines += [
        "proxy=null",
        "https-proxy=null",
        "noproxy=localhost,127.0.0.1",
    ]
    return "\n".join(lines) + "\n"


def write_npmrc(settings: Settings, account: Account) -> Path:
    print("创建本地 .npmrc 配置文件...", flush=True)
    token = login_token(settings, account)
    if not token:
        print("使用 Basic Auth 认证方式...", flush=True)
    try:
        settings.npmrc_path.write_text(render_npmrc(settings, account, token), encoding="utf-8")
    except OSError as e:
        raise CredentialError(f"写入 .npmrc 失败: {e}") from e
    print(f"本地 .npmrc 已创建: {settings.npmrc_path}", flush=True)
    return settings.npmrc_path


def bootstrap(settings: Settings) -> Account:
    account = ensure_default_account(settings)
    write_npmrc(settings, account)
    print(f"{emoji.get('✅')} 认证配置已就绪 ({account.username})", flush=True)
    return account
