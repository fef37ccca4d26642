from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from sf_bot_config import is_placeholder_secret
from SFOrderBot.errors import ConfigError
from SFOrderBot.utils import as_bool, as_int, int_list

# Production defaults; override via config.json or ESIM_ROLE_ID / ESIM_CHANNEL_ID.
DEFAULT_ESIM_ROLE_ID = 1303016685699203122
DEFAULT_ESIM_CHANNEL_ID = 1324351256709431336


@dataclass(frozen=True)
class BotSettings:
    bot_token: str = ""
    guild_id: int = 0

    db_url: str = ""
    db_host: str = ""
    db_port: int = 3306
    db_user: str = ""
    db_password: str = ""
    db_name: str = ""
    db_ssl: bool = True
    db_pool_size: int = 10

    esim_role_id: int = DEFAULT_ESIM_ROLE_ID
    esim_channel_id: int = DEFAULT_ESIM_CHANNEL_ID
    pending_activation_ttl_seconds: int = 900

    verified_role_id: int = 0

    verify_channel_id: int = 0
    welcome_channel_id: int = 0
    verify_channel_name: str = "verify"
    welcome_channel_name: str = "welcome"
    instruction_ttl_seconds: float = 20.0  # 0 = keep the instruction

    ticket_category_id: int = 0
    ticket_staff_role_ids: list[int] = field(default_factory=list)
    reconcile_all_pending: bool = False

    log_dir: Path | None = None

    @property
    def has_db_target(self) -> bool:
        return bool(self.db_url or (self.db_host and self.db_name))


def _section(root: dict, key: str) -> dict:
    val = root.get(key)
    return val if isinstance(val, dict) else {}


def _seconds(raw: object, default: float, key: str) -> float:
    if raw is None or str(raw).strip() == "":
        return default
    try:
        val = float(str(raw).strip())
    except ValueError:
        raise ConfigError(f"{key} is not a number: {raw!r}") from None
    if val < 0:
        raise ConfigError(f"{key} must be >= 0: {raw!r}")
    return val


def build_settings(config: dict, *, base_dir: Path | None = None) -> BotSettings:
    """Typed settings from the merged config dict (see sf_bot_config.load_bot_config)."""
    root = config if isinstance(config, dict) else {}
    db = _section(root, "db")
    esim = _section(root, "esim")
    verify = _section(root, "verify")
    channels = _section(root, "channels")
    tickets = _section(root, "tickets")

    port = as_int(db.get("port")) or 3306
    if not 0 < port < 65536:
        raise ConfigError(f"db.port out of range: {db.get('port')!r}")

    log_dir = None
    if base_dir is not None:
        log_dir = base_dir / str(root.get("log_dir") or "logs")

    return BotSettings(
        bot_token=str(root.get("bot_token") or "").strip(),
        guild_id=as_int(root.get("guild_id")),
        db_url=str(db.get("url") or "").strip(),
        db_host=str(db.get("host") or "").strip(),
        db_port=port,
        db_user=str(db.get("user") or "").strip(),
        db_password=str(db.get("password") or ""),
        db_name=str(db.get("name") or "").strip(),
        db_ssl=as_bool(db.get("ssl", True)),
        db_pool_size=max(1, as_int(db.get("pool_size")) or 10),
        esim_role_id=as_int(esim.get("role_id")) or DEFAULT_ESIM_ROLE_ID,
        esim_channel_id=as_int(esim.get("channel_id")) or DEFAULT_ESIM_CHANNEL_ID,
        pending_activation_ttl_seconds=max(30, as_int(esim.get("pending_ttl_seconds")) or 900),
        verified_role_id=as_int(verify.get("verified_role_id")),
        verify_channel_id=as_int(channels.get("verify_channel_id")),
        welcome_channel_id=as_int(channels.get("welcome_channel_id")),
        verify_channel_name=str(channels.get("verify_channel_name") or "verify").strip() or "verify",
        welcome_channel_name=str(channels.get("welcome_channel_name") or "welcome").strip() or "welcome",
        instruction_ttl_seconds=_seconds(channels.get("instruction_ttl_seconds"), 20.0, "channels.instruction_ttl_seconds"),
        ticket_category_id=as_int(tickets.get("category_id")),
        ticket_staff_role_ids=int_list(tickets.get("staff_role_ids")),
        reconcile_all_pending=as_bool(tickets.get("reconcile_all_pending")),
        log_dir=log_dir,
    )


def validate_settings(settings: BotSettings) -> list[str]:
    """Human-readable problems that must block startup (empty list == OK)."""
    errors: list[str] = []
    if is_placeholder_secret(settings.bot_token):
        errors.append("bot_token missing/placeholder (DISCORD_BOT_TOKEN or config.secrets.json)")
    if not settings.has_db_target:
        errors.append("database not configured (DB_HOST/DB_NAME or DB_URL)")
    elif not settings.db_url:
        for key, env, val in (
            ("db.host", "DB_HOST", settings.db_host),
            ("db.user", "DB_USER", settings.db_user),
            ("db.password", "DB_PASS", settings.db_password),
            ("db.name", "DB_NAME", settings.db_name),
        ):
            if is_placeholder_secret(val):
                errors.append(f"{key} missing/placeholder ({env} or config.secrets.json)")
    if settings.verified_role_id <= 0:
        errors.append("verify.verified_role_id not set (VERIFIED_ROLE_ID)")
    return errors
