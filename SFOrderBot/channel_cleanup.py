from __future__ import annotations

import logging

import discord

from SFOrderBot.settings import BotSettings
from SFOrderBot.ticket_channels import find_channel_by_name

log = logging.getLogger("sfbot.cleanup")

PURPOSE_VERIFY = "verify"
PURPOSE_WELCOME = "welcome"

_USER_MENTIONS = discord.AllowedMentions(users=True, roles=False, everyone=False)


def channel_purpose(channel: object, settings: BotSettings) -> str:
    """`verify`, `welcome` or "" for a message channel.

    Configured channel ids win; the literal channel names are the fallback.
    """
    cid = int(getattr(channel, "id", 0) or 0)
    if cid:
        if settings.verify_channel_id and cid == settings.verify_channel_id:
            return PURPOSE_VERIFY
        if settings.welcome_channel_id and cid == settings.welcome_channel_id:
            return PURPOSE_WELCOME
    name = str(getattr(channel, "name", "") or "")
    if name == settings.verify_channel_name:
        return PURPOSE_VERIFY
    if name == settings.welcome_channel_name:
        return PURPOSE_WELCOME
    return ""


def verify_channel_mention(guild: discord.Guild | None, settings: BotSettings) -> str:
    ch = None
    if guild is not None:
        if settings.verify_channel_id:
            ch = guild.get_channel(settings.verify_channel_id)
        if ch is None:
            ch = find_channel_by_name(guild, settings.verify_channel_name)
    if ch is None:
        return f"#{settings.verify_channel_name}"
    return f"<#{ch.id}>"


def instruction_for(purpose: str, message: discord.Message, settings: BotSettings) -> str:
    author = message.author.mention
    if purpose == PURPOSE_VERIFY:
        return f"Welcome to SF {author}, please use the /verify command with your unique code to verify your account."
    where = verify_channel_mention(message.guild, settings)
    return f"{author}, please use the /verify command in {where} with your unique code to verify your account."


async def handle_message(message: discord.Message, settings: BotSettings) -> bool:
    """Delete chatter in the verify/welcome channels and post one instruction.

    Returns True when the message was acted on.
    """
    if message.author.bot:
        return False
    purpose = channel_purpose(message.channel, settings)
    if not purpose:
        return False

    try:
        await message.delete()
        await message.channel.send(
            content=instruction_for(purpose, message, settings),
            delete_after=settings.instruction_ttl_seconds or None,
            allowed_mentions=_USER_MENTIONS,
        )
    except discord.HTTPException:
        log.exception(
            "Error handling %s channel message (channel=%s user=%s)",
            purpose,
            getattr(message.channel, "id", "?"),
            message.author.id,
        )
    return True
