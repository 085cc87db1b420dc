"""Pairing module for wagate.

Provides:
- Pairing challenge tracking with an attempt ceiling
- QR code rendering of challenge payloads
"""

from .flow import MAX_PAIRING_ATTEMPTS, PairingFlow, PairingView
from .qr_renderer import QrRenderer, waiting_page

__all__ = [
    "MAX_PAIRING_ATTEMPTS",
    "PairingFlow",
    "PairingView",
    "QrRenderer",
    "waiting_page",
]
