"""
Shared config loader for bot folders.

Layout: `<bot>/config.json` (committed, no secrets) deep-merged with
`<bot>/config.secrets.json` (local only), then environment overrides from
`<bot>/.env` and the process environment.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv


# Environment variable -> dotted config key.
ENV_OVERRIDES: Dict[str, str] = {
    "DISCORD_BOT_TOKEN": "bot_token",
    "GUILD_ID": "guild_id",
    "DB_URL": "db.url",
    "DB_HOST": "db.host",
    "DB_PORT": "db.port",
    "DB_USER": "db.user",
    "DB_PASS": "db.password",
    "DB_NAME": "db.name",
    "ESIM_ROLE_ID": "esim.role_id",
    "ESIM_CHANNEL_ID": "esim.channel_id",
    "VERIFIED_ROLE_ID": "verify.verified_role_id",
}


def _deep_merge_dict(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge overlay into base (in place) and return base.

    - Dict values are merged recursively
    - Other types overwrite
    """
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge_dict(base[k], v)  # type: ignore[index]
        else:
            base[k] = v
    return base


def load_json(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_config_with_secrets(
    base_dir: Path,
    config_name: str = "config.json",
    secrets_name: str = "config.secrets.json",
) -> Tuple[Dict[str, Any], Path, Path]:
    """Load config.json and merge config.secrets.json on top.

    A missing config.json is not an error here: the bot can run purely from
    environment variables. Returns: (merged_config, config_path, secrets_path)
    """
    config_path = base_dir / config_name
    secrets_path = base_dir / secrets_name

    config: Dict[str, Any] = {}
    if config_path.exists():
        raw = load_json(config_path)
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid config file (expected JSON object): {config_path}")
        config = raw

    if not secrets_path.exists():
        return config, config_path, secrets_path

    secrets = load_json(secrets_path)
    if not isinstance(secrets, dict):
        raise ValueError(f"Invalid secrets file (expected JSON object): {secrets_path}")

    _deep_merge_dict(config, secrets)
    return config, config_path, secrets_path


def _set_dotted(config: Dict[str, Any], dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    node = config
    for p in parts[:-1]:
        child = node.get(p)
        if not isinstance(child, dict):
            child = {}
            node[p] = child
        node = child
    node[parts[-1]] = value


def apply_env_overrides(
    config: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Overlay non-empty environment variables (see ENV_OVERRIDES) onto config."""
    env = os.environ if environ is None else environ
    for env_key, dotted in ENV_OVERRIDES.items():
        val = (env.get(env_key) or "").strip()
        if val:
            _set_dotted(config, dotted, val)
    return config


def load_bot_config(
    base_dir: Path,
    environ: Optional[Mapping[str, str]] = None,
) -> Tuple[Dict[str, Any], Path, Path]:
    """config.json + config.secrets.json + .env/process environment.

    The .env file next to the bot is loaded first; it never overrides variables
    already present in the process environment.
    """
    if environ is None:
        load_dotenv(base_dir / ".env")
    config, config_path, secrets_path = load_config_with_secrets(base_dir)
    apply_env_overrides(config, environ)
    return config, config_path, secrets_path


def is_placeholder_secret(value: Any) -> bool:
    """Return True if the provided secret looks like a template/placeholder value."""
    if value is None:
        return True
    s = str(value).strip()
    if not s:
        return True
    upper = s.upper()
    if upper.startswith("PUT_") or upper.endswith("_HERE"):
        return True
    if upper in {"CHANGEME", "REPLACE_ME", "YOUR_TOKEN_HERE"}:
        return True
    return False


def mask_secret(value: Any, show_last: int = 4) -> str:
    """Mask a secret for printing (never output full tokens)."""
    if value is None:
        return "<missing>"
    s = str(value)
    if not s:
        return "<missing>"
    if len(s) <= show_last:
        return "*" * len(s)
    return ("*" * (len(s) - show_last)) + s[-show_last:]
