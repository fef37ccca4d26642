"""
eSIM activation QR codes.

The payload follows the LPA activation-code format scanned by eSIM-capable
phones: ``1$esim$<SM-DP+ address>$<activation code>``.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from typing import Callable, Dict, Optional, Tuple

import discord
import qrcode
from qrcode.constants import ERROR_CORRECT_H
from PIL import Image

from SFOrderBot.errors import QRRenderError
from SFOrderBot.responses import respond_with_error

log = logging.getLogger("sfbot.esim")

PAYLOAD_VERSION = "1"
PAYLOAD_TYPE = "esim"
PAYLOAD_SEPARATOR = "$"

QR_SIZE_PX = 300
QR_MARGIN_MODULES = 4
QR_FILENAME = "esim_qr_code.png"

MODAL_ID = "esim_details"
ACTIVATION_CODE_INPUT_ID = "activationCode"
SMDP_ADDRESS_INPUT_ID = "smdpAddress"

QR_READY_TEXT = "Here is your eSIM QR code:"
QR_FAILURE_TEXT = "An error occurred while generating the QR code. Please try again."


def build_activation_payload(activation_code: str, smdp_address: str) -> str:
    return PAYLOAD_SEPARATOR.join((PAYLOAD_VERSION, PAYLOAD_TYPE, smdp_address, activation_code))


def build_qr_code(payload: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_H,
        box_size=10,
        border=QR_MARGIN_MODULES,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    return qr


def render_activation_qr(activation_code: str, smdp_address: str, *, size_px: int = QR_SIZE_PX) -> bytes:
    """PNG bytes of a black-on-white, highest-ECC QR code for the activation payload.

    Raises QRRenderError for blank inputs or any encoder failure.
    """
    code = str(activation_code or "").strip()
    addr = str(smdp_address or "").strip()
    if not code or not addr:
        raise QRRenderError("activation code and SM-DP+ address are both required")

    payload = build_activation_payload(code, addr)
    try:
        qr = build_qr_code(payload)
        img = qr.make_image(fill_color="black", back_color="white").get_image()
        img = img.convert("RGB").resize((size_px, size_px), Image.NEAREST)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    except Exception as e:
        raise QRRenderError(f"QR encoding failed: {e}") from e
    return buf.getvalue()


class PendingActivationStore:
    """Activation codes awaiting their QR, keyed by Discord user id.

    Entries are superseded on every new submission, removed once the QR reply is
    sent, and expire after `ttl_seconds` in case a flow dies half way.
    """

    def __init__(self, ttl_seconds: float = 900.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[int, Tuple[str, float]] = {}

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def put(self, user_id: int, activation_code: str) -> None:
        self.purge_expired()
        self._entries[int(user_id)] = (activation_code, self._clock() + self.ttl_seconds)

    def get(self, user_id: int) -> Optional[str]:
        self.purge_expired()
        entry = self._entries.get(int(user_id))
        return entry[0] if entry else None

    def discard(self, user_id: int, activation_code: Optional[str] = None) -> None:
        """Drop the user's entry (only if it still holds `activation_code`, when given)."""
        entry = self._entries.get(int(user_id))
        if entry is None:
            return
        if activation_code is not None and entry[0] != activation_code:
            return
        del self._entries[int(user_id)]

    def purge_expired(self) -> None:
        now = self._clock()
        for uid in [uid for uid, (_, exp) in self._entries.items() if exp <= now]:
            del self._entries[uid]


class EsimDetailsModal(discord.ui.Modal):
    def __init__(self, pending: PendingActivationStore):
        super().__init__(title="Enter eSIM Details", custom_id=MODAL_ID)
        self.pending = pending

        self.activation_code = discord.ui.TextInput(
            label="Enter the eSIM activation code",
            placeholder="Enter the activation code here",
            style=discord.TextStyle.short,
            required=True,
            custom_id=ACTIVATION_CODE_INPUT_ID,
        )
        self.smdp_address = discord.ui.TextInput(
            label="Enter the SM-DP+ address",
            placeholder="Enter the SM-DP+ address here",
            style=discord.TextStyle.short,
            required=True,
            custom_id=SMDP_ADDRESS_INPUT_ID,
        )
        self.add_item(self.activation_code)
        self.add_item(self.smdp_address)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        code = str(self.activation_code.value or "").strip()
        addr = str(self.smdp_address.value or "").strip()
        user_id = interaction.user.id

        self.pending.put(user_id, code)
        try:
            try:
                png = await asyncio.to_thread(render_activation_qr, code, addr)
            except QRRenderError:
                log.exception("Error generating QR code (user=%s)", user_id)
                await interaction.response.send_message(QR_FAILURE_TEXT)
                return
            await interaction.response.send_message(
                content=QR_READY_TEXT,
                file=discord.File(io.BytesIO(png), filename=QR_FILENAME),
            )
            log.info("Issued eSIM QR code (user=%s smdp=%s)", user_id, addr)
        finally:
            self.pending.discard(user_id, code)

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        log.error("eSIM modal failed (user=%s)", getattr(interaction.user, "id", "?"), exc_info=error)
        await respond_with_error(interaction)
