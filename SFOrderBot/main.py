import os
import sys
import asyncio
import argparse
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Ensure repo root is importable when executed as a script.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

# Always resolve bot-local files relative to this directory (do not depend on cwd).
BASE_DIR = Path(__file__).resolve().parent

import discord
from discord.ext import commands

from sf_bot_config import load_bot_config, mask_secret
from SFOrderBot.errors import ConfigError, OrderStoreError
from SFOrderBot.interactions import OrderBotCog, SFCommandTree
from SFOrderBot.order_store import OrderStore
from SFOrderBot.settings import BotSettings, build_settings, validate_settings

log = logging.getLogger("sfbot")


# -----------------------------
# Logging
# -----------------------------
def _setup_logging(log_dir: Optional[Path]) -> None:
    level_name = (os.getenv("LOG_LEVEL", "") or "").strip().upper() or "INFO"
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate handlers if reloaded.
    if root.handlers:
        return

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    root.addHandler(sh)
    logging.getLogger("discord").setLevel(max(level, logging.INFO))

    if log_dir is None:
        return
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(log_dir / "sfbot.log", maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    except OSError as e:
        log.warning("File logging disabled (%s): %s", log_dir, e)
        return
    fh.setFormatter(fmt)
    root.addHandler(fh)


# -----------------------------
# Discord client
# -----------------------------
class SFOrderBot(commands.Bot):
    def __init__(self, settings: BotSettings, store: OrderStore):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.messages = True
        intents.message_content = True
        intents.dm_messages = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents, tree_cls=SFCommandTree)
        self.settings = settings
        self.store = store

    async def setup_hook(self) -> None:
        await self.add_cog(OrderBotCog(self, self.store, self.settings))
        try:
            if self.settings.guild_id:
                guild = discord.Object(id=self.settings.guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
            else:
                synced = await self.tree.sync()
            log.info("Registered %d command(s): %s", len(synced), ", ".join(f"/{c.name}" for c in synced))
        except discord.HTTPException:
            log.exception("Error registering commands")

    async def on_ready(self) -> None:
        log.info("=" * 60)
        log.info("  SF Order Bot")
        log.info("=" * 60)
        log.info("[Bot] Logged in as %s (ID: %s)", self.user, getattr(self.user, "id", "?"))
        log.info("[Config] eSIM channel: %s | eSIM role: %s", self.settings.esim_channel_id, self.settings.esim_role_id)
        log.info("[Config] Verified role: %s", self.settings.verified_role_id)

    async def close(self) -> None:
        try:
            await super().close()
        finally:
            await self.store.close()


async def _run(settings: BotSettings) -> int:
    store = OrderStore.from_settings(settings)
    try:
        await store.ping()
    except OrderStoreError as e:
        log.error("Failed to connect to the database: %s", e)
        await store.close()
        return 1
    log.info("Successfully connected to the database.")

    bot = SFOrderBot(settings, store)
    try:
        async with bot:
            await bot.start(settings.bot_token)
    except discord.LoginFailure as e:
        log.error("Failed to start the bot: %s", e)
        return 1
    return 0


def _check_config(settings: BotSettings, config_path: Path, secrets_path: Path) -> int:
    errors = validate_settings(settings)
    if errors:
        print("[ConfigCheck] FAILED")
        for e in errors:
            print(f"- {e}")
        return 2
    print("[ConfigCheck] OK")
    print(f"- config: {config_path}{'' if config_path.exists() else ' (missing, env only)'}")
    print(f"- secrets: {secrets_path}{'' if secrets_path.exists() else ' (missing, env only)'}")
    print(f"- bot_token: {mask_secret(settings.bot_token)}")
    target = "<DB_URL>" if settings.db_url else f"{settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    print(f"- database: {target}")
    print(f"- db_password: {mask_secret(settings.db_password)}")
    print(f"- esim channel/role: {settings.esim_channel_id} / {settings.esim_role_id}")
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(add_help=True)
    parser.add_argument("--check-config", action="store_true", help="Validate config + secrets and exit (no Discord connection).")
    args = parser.parse_args(argv)

    try:
        config, config_path, secrets_path = load_bot_config(BASE_DIR)
        settings = build_settings(config, base_dir=BASE_DIR)
    except (ConfigError, ValueError, OSError) as e:
        print(f"[Config] FAILED: {e}", file=sys.stderr)
        return 2

    if args.check_config:
        return _check_config(settings, config_path, secrets_path)

    _setup_logging(settings.log_dir)
    errors = validate_settings(settings)
    if errors:
        for e in errors:
            log.error("[Config] %s", e)
        return 1

    return asyncio.run(_run(settings))


if __name__ == "__main__":
    raise SystemExit(main())
