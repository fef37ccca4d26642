from __future__ import annotations

import asyncio
import re
import weakref

import discord

TICKET_PREFIX = "ticket-"
_TICKET_NAME_RE = re.compile(r"^ticket-(\d+)$")

# One lock per order id while any coroutine holds a reference to it.
_ORDER_LOCKS: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def ticket_channel_name(order_id: int) -> str:
    return f"{TICKET_PREFIX}{int(order_id)}"


def order_id_from_channel_name(name: str | None) -> int:
    """Order id for a `ticket-<id>` channel name, else 0."""
    m = _TICKET_NAME_RE.match(str(name or "").strip())
    return int(m.group(1)) if m else 0


def order_lock(order_id: int) -> asyncio.Lock:
    lock = _ORDER_LOCKS.get(int(order_id))
    if lock is None:
        lock = asyncio.Lock()
        _ORDER_LOCKS[int(order_id)] = lock
    return lock


def find_channel_by_name(guild: discord.Guild, name: str) -> discord.abc.GuildChannel | None:
    """Live lookup against the guild's channel cache (any channel type)."""
    want = str(name or "").strip()
    if not want:
        return None
    for ch in list(getattr(guild, "channels", []) or []):
        if str(getattr(ch, "name", "") or "") == want:
            return ch
    return None


def build_ticket_overwrites(
    *,
    guild: discord.Guild,
    owner: discord.abc.Snowflake,
    staff_role_ids: list[int] | None = None,
) -> dict[discord.abc.Snowflake, discord.PermissionOverwrite]:
    """@everyone hidden; owner, the bot and staff roles can read and write."""
    overwrites: dict[discord.abc.Snowflake, discord.PermissionOverwrite] = {}
    overwrites[guild.default_role] = discord.PermissionOverwrite(view_channel=False)

    def _member_access() -> discord.PermissionOverwrite:
        return discord.PermissionOverwrite(
            view_channel=True,
            send_messages=True,
            read_message_history=True,
        )

    overwrites[owner] = _member_access()

    me = getattr(guild, "me", None)
    if me is not None:
        overwrites[me] = _member_access()

    for rid in list(dict.fromkeys(int(x) for x in (staff_role_ids or []) if int(x) > 0)):
        role = guild.get_role(rid)
        if role is not None:
            overwrites[role] = _member_access()
    return overwrites


async def create_ticket_channel(
    *,
    guild: discord.Guild,
    name: str,
    overwrites: dict[discord.abc.Snowflake, discord.PermissionOverwrite],
    category_id: int = 0,
    topic: str = "",
    reason: str = "SF order ticket",
) -> discord.TextChannel:
    category = None
    if int(category_id or 0) > 0:
        cat = guild.get_channel(int(category_id))
        if isinstance(cat, discord.CategoryChannel):
            category = cat
    kwargs: dict = {"name": name, "overwrites": overwrites, "reason": reason}
    if category is not None:
        kwargs["category"] = category
    if topic:
        kwargs["topic"] = topic[:1000]
    return await guild.create_text_channel(**kwargs)
