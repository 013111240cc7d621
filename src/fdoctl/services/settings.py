from __future__ import annotations
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping
import os
import re
import yaml

from fdoctl.config import const
from fdoctl.services.errors import ConfigError

_COMMIT_RE = re.compile(r"^[0-9a-f]{40}$")

ENGINES = ("cryptography", "openssl")
LAUNCHERS = ("local", "container")
BACKOFFS = ("fixed", "exponential")


@dataclass
class RetrySettings:
    attempts: int = 30
    delay: float = 1.0
    backoff: str = "fixed"
    factor: float = 2.0
    max_delay: float = 10.0


@dataclass
class HttpSettings:
    host: str = const.SERVICE_HOST
    ip: str = const.SERVICE_IP
    protocol: str = "http"
    timeout: float = 5.0
    retry: RetrySettings = field(default_factory=RetrySettings)

    def base_url(self, port: int) -> str:
        return f"{self.protocol}://{self.host}:{port}"


@dataclass
class ServiceSettings:
    name: str
    role: str
    port: int
    command: list[str] = field(default_factory=list)
    image: str | None = None
    health_path: str = "/health"


@dataclass
class RepoSettings:
    name: str
    url: str
    commit: str


@dataclass
class ClientSettings:
    workdir: str = "{repos}/go-fdo-client"
    di_command: list[str] = field(
        default_factory=lambda: [
            "./go-fdo-client", "device-init", "{manufacturer_url}",
            "--device-info", "gotest", "--key", "ec256", "--blob", "{files}/cred.bin",
        ]
    )
    inspect_command: list[str] = field(default_factory=lambda: ["./go-fdo-client", "print", "--blob", "{files}/cred.bin"])
    to_command: list[str] = field(
        default_factory=lambda: [
            "./go-fdo-client", "onboard", "--key", "ec256", "--kex", "ECDH256", "--blob", "{files}/cred.bin",
        ]
    )
    guid_pattern: str = r"GUID[:=]?\s*([0-9a-fA-F]{8}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{12})"
    timeout: float = 120.0


@dataclass
class VoucherSettings:
    fetch_path: str = "/api/v1/vouchers/{guid}"
    upload_path: str = "/api/v1/owner/vouchers"
    to0_path: str = "/api/v1/to0/{guid}"


def _default_services() -> list[ServiceSettings]:
    server = "{repos}/go-fdo-server/go-fdo-server"
    return [
        ServiceSettings(
            name="fdo-rendezvous",
            role="rendezvous",
            port=const.RENDEZVOUS_PORT,
            command=[server, "rendezvous", "{ip}:{port}", "--db", "{db}/rendezvous.db"],
            image="localhost/go-fdo-server:latest",
        ),
        ServiceSettings(
            name="fdo-manufacturer",
            role="manufacturer",
            port=const.MANUFACTURER_PORT,
            command=[
                server, "manufacturing", "{ip}:{port}", "--db", "{db}/manufacturer.db",
                "--manufacturing-key", "{certs}/manufacturer.key",
                "--device-ca-cert", "{certs}/device_ca.crt",
                "--device-ca-key", "{certs}/device_ca.key",
                "--owner-cert", "{certs}/owner.crt",
            ],
            image="localhost/go-fdo-server:latest",
        ),
        ServiceSettings(
            name="fdo-owner",
            role="owner",
            port=const.OWNER_PORT,
            command=[
                server, "owner", "{ip}:{port}", "--db", "{db}/owner.db",
                "--device-ca-cert", "{certs}/device_ca.crt",
                "--owner-key", "{certs}/owner.key",
            ],
            image="localhost/go-fdo-server:latest",
        ),
    ]


def _default_repos() -> list[RepoSettings]:
    return [
        RepoSettings(name="go-fdo-server", url=const.GO_FDO_SERVER_URL, commit=const.GO_FDO_SERVER_COMMIT),
        RepoSettings(name="go-fdo-client", url=const.GO_FDO_CLIENT_URL, commit=const.GO_FDO_CLIENT_COMMIT),
    ]


@dataclass
class Settings:
    fixture_dir: str = const.FIXTURE_DIR
    repos_dir: str = const.REPOS_DIR
    state_dir: str = const.STATE_DIR
    crypto_engine: str = "cryptography"
    openssl_bin: str = "openssl"
    launcher: str = "local"
    container_runtime: str | None = None
    log_level: str = "INFO"
    http: HttpSettings = field(default_factory=HttpSettings)
    services: list[ServiceSettings] = field(default_factory=_default_services)
    repos: list[RepoSettings] = field(default_factory=_default_repos)
    client: ClientSettings = field(default_factory=ClientSettings)
    voucher: VoucherSettings = field(default_factory=VoucherSettings)

    # --- lookups ---
    def service(self, role: str) -> ServiceSettings:
        for svc in self.services:
            if svc.role == role or svc.name == role:
                return svc
        raise ConfigError(f"no service configured for '{role}'")

    def service_url(self, role: str) -> str:
        return self.http.base_url(self.service(role).port)

    def fixture_path(self) -> Path:
        return Path(self.fixture_dir).expanduser().resolve()

    def repos_path(self) -> Path:
        return Path(self.repos_dir).expanduser().resolve()

    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser().resolve()

    def template_vars(self, **extra: Any) -> dict[str, str]:
        """Values substituted into service and client command templates."""
        root = self.fixture_path()
        values = {
            "fixture": str(root),
            "certs": str(root / "certs"),
            "db": str(root / "db"),
            "files": str(root / "files"),
            "repos": str(self.repos_path()),
            "host": self.http.host,
            "ip": self.http.ip,
        }
        for svc in self.services:
            values[f"{svc.role}_url"] = self.http.base_url(svc.port)
            values[f"{svc.role}_port"] = str(svc.port)
        values.update({k: str(v) for k, v in extra.items()})
        return values

    def validate(self) -> None:
        retry = self.http.retry
        _check_number(retry.attempts, "http.retry.attempts", integer=True)
        for key in ("delay", "factor", "max_delay"):
            _check_number(getattr(retry, key), f"http.retry.{key}")
        _check_number(self.http.timeout, "http.timeout")
        _check_number(self.client.timeout, "client.timeout")
        for svc in self.services:
            _check_number(svc.port, f"service '{svc.name}' port", integer=True)
        if self.crypto_engine not in ENGINES:
            raise ConfigError(f"crypto_engine must be one of {', '.join(ENGINES)}")
        if self.launcher not in LAUNCHERS:
            raise ConfigError(f"launcher must be one of {', '.join(LAUNCHERS)}")
        if self.http.retry.backoff not in BACKOFFS:
            raise ConfigError(f"http.retry.backoff must be one of {', '.join(BACKOFFS)}")
        if self.http.retry.attempts < 1:
            raise ConfigError("http.retry.attempts must be >= 1")
        seen: set[str] = set()
        for svc in self.services:
            if svc.name in seen:
                raise ConfigError(f"duplicate service name '{svc.name}'")
            seen.add(svc.name)
            if not 0 < svc.port < 65536:
                raise ConfigError(f"service '{svc.name}' has invalid port {svc.port}")
        for repo in self.repos:
            if not isinstance(repo.commit, str) or not _COMMIT_RE.match(repo.commit):
                raise ConfigError(f"repo '{repo.name}' commit must be a 40-character hash")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------- loading


def _section(payload: Any, key: str) -> dict:
    raw = payload.get(key) if isinstance(payload, Mapping) else None
    return dict(raw) if isinstance(raw, Mapping) else {}


def _check_number(value: Any, label: str, *, integer: bool = False) -> None:
    allowed = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, allowed):
        kind = "an integer" if integer else "a number"
        raise ConfigError(f"{label} must be {kind}, got {value!r}")


def _build(cls: type, payload: Mapping[str, Any], **nested: Any):
    known = set(cls.__dataclass_fields__)
    unknown = set(payload) - known
    if unknown:
        raise ConfigError(f"unknown {cls.__name__} field(s): {', '.join(sorted(unknown))}")
    kwargs = {k: v for k, v in payload.items() if k not in nested}
    kwargs.update(nested)
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise ConfigError(f"invalid {cls.__name__}: {exc}") from exc


def _list_of(cls: type, raw: Any, key: str) -> list:
    if not isinstance(raw, list):
        raise ConfigError(f"'{key}' must be a list")
    items = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise ConfigError(f"'{key}' entries must be mappings")
        items.append(_build(cls, dict(entry)))
    return items


def settings_from_dict(data: Mapping[str, Any]) -> Settings:
    http_raw = _section(data, "http")
    retry = _build(RetrySettings, _section(http_raw, "retry"))
    http = _build(HttpSettings, {k: v for k, v in http_raw.items() if k != "retry"}, retry=retry)
    nested: dict[str, Any] = {
        "http": http,
        "client": _build(ClientSettings, _section(data, "client")),
        "voucher": _build(VoucherSettings, _section(data, "voucher")),
    }
    if "services" in data:
        nested["services"] = _list_of(ServiceSettings, data["services"], "services")
    if "repos" in data:
        nested["repos"] = _list_of(RepoSettings, data["repos"], "repos")
    top = {k: v for k, v in data.items() if k not in ("http", "client", "voucher")}
    return _build(Settings, top, **nested)


def _apply_env(settings: Settings, env: Mapping[str, str]) -> None:
    if env.get("FDODIR"):
        settings.fixture_dir = env["FDODIR"]
    if env.get("FDOCTL_REPOS_DIR"):
        settings.repos_dir = env["FDOCTL_REPOS_DIR"]
    if env.get("FDOCTL_HOST"):
        settings.http.host = env["FDOCTL_HOST"]
    if env.get("FDOCTL_LAUNCHER"):
        settings.launcher = env["FDOCTL_LAUNCHER"]
    if env.get("FDOCTL_CONTAINER"):
        settings.container_runtime = env["FDOCTL_CONTAINER"]
    if env.get("FDOCTL_CRYPTO_ENGINE"):
        settings.crypto_engine = env["FDOCTL_CRYPTO_ENGINE"]
    if env.get("FDOCTL_LOG_LEVEL"):
        settings.log_level = env["FDOCTL_LOG_LEVEL"]


def load_settings(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> Settings:
    """Load settings from YAML (explicit path, ``FDOCTL_CONFIG`` or ``./fdoctl.yaml``) plus env overrides."""
    env = os.environ if env is None else env
    explicit = path is not None or bool(env.get("FDOCTL_CONFIG"))
    config_path = Path(path or env.get("FDOCTL_CONFIG") or "fdoctl.yaml")
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"cannot parse {config_path}: {exc}") from exc
        if not isinstance(loaded, Mapping):
            raise ConfigError(f"{config_path} must contain a mapping")
        data = dict(loaded)
    elif explicit:
        raise ConfigError(f"config file {config_path} does not exist")

    settings = settings_from_dict(data)
    _apply_env(settings, env)
    settings.validate()
    return settings


def dump_settings(settings: Settings) -> str:
    return yaml.safe_dump(settings.to_dict(), allow_unicode=True, sort_keys=False)
