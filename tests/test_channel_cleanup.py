from dataclasses import replace
from unittest.mock import MagicMock

import discord

from SFOrderBot.channel_cleanup import (
    PURPOSE_VERIFY,
    PURPOSE_WELCOME,
    channel_purpose,
    handle_message,
    verify_channel_mention,
)

from fakes import make_channel, make_guild, make_member, make_message


async def test_verify_channel_message_is_replaced_by_one_instruction(settings):
    channel = make_channel("verify")
    guild = make_guild(channels=[channel])
    msg = make_message(channel, guild=guild)

    assert await handle_message(msg, settings) is True

    msg.delete.assert_awaited_once()
    channel.send.assert_awaited_once()
    kwargs = channel.send.await_args.kwargs
    assert kwargs["content"] == (
        f"Welcome to SF {msg.author.mention}, please use the /verify command with your unique code to verify your account."
    )
    assert kwargs["delete_after"] == settings.instruction_ttl_seconds
    assert kwargs["allowed_mentions"].everyone is False


async def test_zero_ttl_keeps_the_instruction(settings):
    channel = make_channel("verify")
    msg = make_message(channel, guild=make_guild(channels=[channel]))

    await handle_message(msg, replace(settings, instruction_ttl_seconds=0.0))

    assert channel.send.await_args.kwargs["delete_after"] is None


async def test_welcome_channel_points_at_verify_channel(settings):
    verify = make_channel("verify")
    welcome = make_channel("welcome")
    guild = make_guild(channels=[verify, welcome])
    msg = make_message(welcome, guild=guild)

    await handle_message(msg, settings)

    msg.delete.assert_awaited_once()
    content = welcome.send.await_args.kwargs["content"]
    assert content == (
        f"{msg.author.mention}, please use the /verify command in <#{verify.id}> with your unique code to verify your account."
    )
    verify.send.assert_not_awaited()


async def test_other_channels_are_left_alone(settings):
    channel = make_channel("general")
    msg = make_message(channel, guild=make_guild(channels=[channel]))

    assert await handle_message(msg, settings) is False

    msg.delete.assert_not_awaited()
    channel.send.assert_not_awaited()


async def test_bot_messages_are_ignored(settings):
    channel = make_channel("verify")
    guild = make_guild(channels=[channel])
    msg = make_message(channel, author=make_member(guild, bot=True), guild=guild)

    assert await handle_message(msg, settings) is False
    msg.delete.assert_not_awaited()


async def test_delete_failure_is_logged_not_raised(settings, caplog):
    channel = make_channel("verify")
    msg = make_message(channel, guild=make_guild(channels=[channel]))
    msg.delete.side_effect = discord.Forbidden(MagicMock(status=403), "Missing Permissions")

    assert await handle_message(msg, settings) is True
    channel.send.assert_not_awaited()
    assert "Error handling verify channel message" in caplog.text


def test_configured_ids_win_over_names(settings):
    cfg = replace(settings, verify_channel_id=42, welcome_channel_id=43)
    assert channel_purpose(make_channel("chat", 42), cfg) == PURPOSE_VERIFY
    assert channel_purpose(make_channel("verify", 43), cfg) == PURPOSE_WELCOME
    assert channel_purpose(make_channel("welcome", 44), cfg) == PURPOSE_WELCOME
    assert channel_purpose(make_channel("general", 44), cfg) == ""


def test_verify_mention_resolution(settings):
    by_id = make_channel("verification", 42)
    by_name = make_channel("verify")
    guild = make_guild(channels=[by_id, by_name])

    assert verify_channel_mention(guild, replace(settings, verify_channel_id=42)) == "<#42>"
    assert verify_channel_mention(guild, settings) == f"<#{by_name.id}>"
    assert verify_channel_mention(make_guild(), settings) == "#verify"
    assert verify_channel_mention(None, settings) == "#verify"
