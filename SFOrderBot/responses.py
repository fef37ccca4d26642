from __future__ import annotations

import logging

import discord

log = logging.getLogger("sfbot.interactions")

GENERIC_ERROR_TEXT = "An error occurred while processing your request. Please try again."


async def respond_with_error(interaction: discord.Interaction, content: str = GENERIC_ERROR_TEXT) -> None:
    """Terminal error reply: edit the existing response if one was started, else send one."""
    try:
        if interaction.response.is_done():
            await interaction.edit_original_response(content=content, attachments=[], view=None)
        else:
            await interaction.response.send_message(content, ephemeral=True)
    except discord.HTTPException:
        log.exception("Error sending error message (interaction=%s)", getattr(interaction, "id", "?"))
