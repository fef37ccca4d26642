from __future__ import annotations


class SFBotError(Exception):
    """Base class for bot-level failures."""


class ConfigError(SFBotError):
    """Missing or invalid configuration (fatal at startup)."""


class OrderStoreError(SFBotError):
    """The order database could not be reached or rejected a query."""


class QRRenderError(SFBotError):
    """The eSIM activation QR code could not be rendered."""
