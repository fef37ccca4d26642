"""
Slash commands, modal wiring and the catch-all interaction error handler.

Every interaction ends with exactly one visible response: handlers reply (or
defer and then edit), and anything that escapes them is turned into the generic
error text by SFCommandTree.on_error / View.on_error / Modal.on_error.
"""

from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from SFOrderBot.channel_cleanup import handle_message
from SFOrderBot.esim import EsimDetailsModal, PendingActivationStore
from SFOrderBot.order_store import OrderStore
from SFOrderBot.responses import respond_with_error
from SFOrderBot.settings import BotSettings
from SFOrderBot.tickets import TicketControlsView, TicketReconciler

log = logging.getLogger("sfbot.interactions")

WRONG_CHANNEL_TEXT = "This command can only be used in the designated eSIM generator channel."
NO_PERMISSION_TEXT = "You do not have permission to use this command."
GUILD_ONLY_TEXT = "This command can only be used in the server."
INVALID_CODE_TEXT = "Invalid or expired verification code."
VERIFY_UNAVAILABLE_TEXT = "Verification is not available right now. Please contact staff."


class SFCommandTree(app_commands.CommandTree):
    async def on_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        cmd = getattr(interaction.command, "name", "?")
        log.error(
            "Error in interaction handler (command=%s user=%s)",
            cmd,
            getattr(interaction.user, "id", "?"),
            exc_info=error,
        )
        await respond_with_error(interaction)


class OrderBotCog(commands.Cog):
    def __init__(self, bot: commands.Bot, store: OrderStore, settings: BotSettings):
        self.bot = bot
        self.store = store
        self.settings = settings
        self.reconciler = TicketReconciler(store, settings)
        self.pending = PendingActivationStore(ttl_seconds=settings.pending_activation_ttl_seconds)

    async def cog_load(self) -> None:
        # Persistent view so ticket buttons keep working after a restart.
        self.bot.add_view(TicketControlsView(self.store, self.settings))

    # -----------------------------
    # /verify
    # -----------------------------
    @app_commands.command(name="verify", description="Verify your account with the unique code from your email")
    @app_commands.describe(code="Your unique verification code")
    async def verify(self, interaction: discord.Interaction, code: str) -> None:
        await self.run_verify(interaction, code)

    async def run_verify(self, interaction: discord.Interaction, code: str) -> None:
        member = interaction.user
        guild = interaction.guild
        if guild is None or not isinstance(member, discord.Member):
            await interaction.response.send_message(GUILD_ONLY_TEXT, ephemeral=True)
            return

        role = guild.get_role(self.settings.verified_role_id)
        if role is None:
            log.error("Verified role %s not found in guild %s", self.settings.verified_role_id, guild.id)
            await interaction.response.send_message(VERIFY_UNAVAILABLE_TEXT, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True, thinking=True)

        record = await self.store.consume_verification(code, discord_user_id=member.id)
        if record is None:
            log.info("Rejected verification code (user=%s)", member.id)
            await interaction.edit_original_response(content=INVALID_CODE_TEXT)
            return

        await member.add_roles(role, reason="Verified purchase code")
        log.info("Verified user %s (%s)", member, member.id)

        created = await self.reconciler.reconcile(member, record.customer_email)
        msg = "✅ Your account has been verified."
        if created:
            msg += " Your order ticket: " + ", ".join(ch.mention for ch in created)
        await interaction.edit_original_response(content=msg)

    # -----------------------------
    # /esim
    # -----------------------------
    @app_commands.command(name="esim", description="Generate an eSIM QR code (SF role required)")
    @app_commands.default_permissions(use_application_commands=True)
    async def esim(self, interaction: discord.Interaction) -> None:
        await self.run_esim(interaction)

    def esim_denial(self, interaction: discord.Interaction) -> str | None:
        """Channel gate first, then role gate."""
        if int(interaction.channel_id or 0) != self.settings.esim_channel_id:
            return WRONG_CHANNEL_TEXT
        roles = getattr(interaction.user, "roles", None) or []
        if not any(int(r.id) == self.settings.esim_role_id for r in roles):
            return NO_PERMISSION_TEXT
        return None

    async def run_esim(self, interaction: discord.Interaction) -> None:
        denial = self.esim_denial(interaction)
        if denial:
            await interaction.response.send_message(denial, ephemeral=True)
            return
        await interaction.response.send_modal(EsimDetailsModal(self.pending))

    # -----------------------------
    # Plain messages
    # -----------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        await handle_message(message, self.settings)
