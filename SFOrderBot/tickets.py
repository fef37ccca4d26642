from __future__ import annotations

import logging
from contextlib import suppress

import discord

from SFOrderBot.order_store import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    Order,
    OrderStore,
)
from SFOrderBot.responses import respond_with_error
from SFOrderBot.settings import BotSettings
from SFOrderBot.ticket_channels import (
    build_ticket_overwrites,
    create_ticket_channel,
    find_channel_by_name,
    order_id_from_channel_name,
    order_lock,
    ticket_channel_name,
)
from SFOrderBot.utils import fmt_datetime_any

log = logging.getLogger("sfbot.tickets")

BUTTON_COMPLETED_ID = "ticket_completed"
BUTTON_FAILED_ID = "ticket_failed"


def format_ticket_intro(member: discord.abc.User, order: Order, product_name: str) -> str:
    return (
        f"Welcome {member.mention}! This is your ticket for Order #{order.id}.\n\n"
        "Order Details:\n"
        f"- Order ID: {order.id}\n"
        f"- Product ID: {order.product_id}\n"
        f"- Product Name: {product_name}\n"
        f"- Status: {order.status}\n"
        f"- Created: {fmt_datetime_any(order.created_at)}\n\n"
        "A staff member will assist you shortly."
    )


def is_staff_member(member: object, staff_role_ids: list[int]) -> bool:
    if not isinstance(member, discord.Member):
        return False
    wanted = {int(x) for x in (staff_role_ids or [])}
    if wanted and any(int(r.id) in wanted for r in member.roles):
        return True
    perms = getattr(member, "guild_permissions", None)
    return bool(perms and (perms.manage_channels or perms.administrator))


class TicketReconciler:
    """Ensure each pending order of a buyer has exactly one private ticket channel."""

    def __init__(self, store: OrderStore, settings: BotSettings):
        self.store = store
        self.settings = settings

    async def reconcile(self, member: discord.Member, customer_email: str) -> list[discord.TextChannel]:
        """Never raises; failures are logged and yield an empty result."""
        email = (customer_email or "").strip()
        if not email:
            return []
        try:
            orders = await self.store.fetch_pending_orders(email)
        except Exception:
            log.exception("Pending order lookup failed (user=%s)", getattr(member, "id", "?"))
            return []
        if not orders:
            return []

        # Only the oldest pending order unless configured otherwise.
        selected = orders if self.settings.reconcile_all_pending else orders[:1]
        created: list[discord.TextChannel] = []
        for order in selected:
            try:
                ch = await self._ensure_ticket(member, order)
            except Exception:
                log.exception("Ticket reconciliation failed (order=%s user=%s)", order.id, getattr(member, "id", "?"))
                continue
            if ch is not None:
                created.append(ch)
        return created

    async def _ensure_ticket(self, member: discord.Member, order: Order) -> discord.TextChannel | None:
        guild = member.guild
        name = ticket_channel_name(order.id)

        async with order_lock(order.id):
            if find_channel_by_name(guild, name) is not None:
                return None

            product = await self.store.get_product(order.product_id)
            if product is None:
                log.error("Product with ID %s not found (order=%s)", order.product_id, order.id)
                return None

            channel = await create_ticket_channel(
                guild=guild,
                name=name,
                overwrites=build_ticket_overwrites(
                    guild=guild,
                    owner=member,
                    staff_role_ids=self.settings.ticket_staff_role_ids,
                ),
                category_id=self.settings.ticket_category_id,
                topic=f"Order #{order.id} | owner {member.id}",
                reason=f"Pending order {order.id}",
            )

            try:
                await channel.send(
                    content=format_ticket_intro(member, order, product.name),
                    view=TicketControlsView(self.store, self.settings),
                    allowed_mentions=discord.AllowedMentions(users=True, roles=False, everyone=False),
                )
            except discord.HTTPException:
                # Every ticket channel must carry its controls; a later reconcile recreates it.
                log.exception("Failed to post ticket intro, removing %s (order=%s)", name, order.id)
                with suppress(discord.HTTPException):
                    await channel.delete(reason=f"Ticket intro for order {order.id} failed")
                return None
        log.info("Created ticket channel %s for user %s (order=%s)", name, member, order.id)
        return channel


class TicketControlsView(discord.ui.View):
    """Persistent staff buttons on ticket intro messages."""

    def __init__(self, store: OrderStore, settings: BotSettings):
        super().__init__(timeout=None)
        self.store = store
        self.settings = settings

    async def resolve(self, interaction: discord.Interaction, status: str) -> None:
        if not is_staff_member(interaction.user, self.settings.ticket_staff_role_ids):
            await interaction.response.send_message("❌ Not allowed (staff only).", ephemeral=True)
            return

        channel = interaction.channel
        order_id = order_id_from_channel_name(getattr(channel, "name", ""))
        if not order_id:
            await interaction.response.send_message("❌ This is not an order ticket channel.", ephemeral=True)
            return

        changed = await self.store.set_order_status(order_id, status)
        if not changed:
            await interaction.response.send_message(
                f"ℹ️ Order #{order_id} is already resolved.", ephemeral=True
            )
            return

        log.info("Order %s marked %s by %s", order_id, status, interaction.user)
        await interaction.response.send_message(f"✅ Order #{order_id} marked **{status}**.", ephemeral=True)
        if channel is not None:
            with suppress(discord.HTTPException):
                await channel.send(
                    f"Order #{order_id} marked **{status}** by {interaction.user.mention}.",
                    allowed_mentions=discord.AllowedMentions.none(),
                )

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item) -> None:
        log.error("Ticket button %s failed", getattr(item, "custom_id", "?"), exc_info=error)
        await respond_with_error(interaction)

    @discord.ui.button(label="Completed", style=discord.ButtonStyle.success, custom_id=BUTTON_COMPLETED_ID)
    async def completed(self, interaction: discord.Interaction, _button: discord.ui.Button) -> None:
        await self.resolve(interaction, STATUS_COMPLETED)

    @discord.ui.button(label="Failed", style=discord.ButtonStyle.danger, custom_id=BUTTON_FAILED_ID)
    async def failed(self, interaction: discord.Interaction, _button: discord.ui.Button) -> None:
        await self.resolve(interaction, STATUS_FAILED)
