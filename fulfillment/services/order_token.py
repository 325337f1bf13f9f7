"""
Signed order links.
The token is ``base64url(ticket_id).hmac_sha256(ticket_id)`` so the manage-order
page can trust the ticket id without a login.
"""

import base64
import binascii
import hashlib
import hmac
from typing import Optional

from fulfillment.config import settings


def _sign(value: str) -> str:
    return hmac.new(
        settings.order_token_secret.encode(),
        value.encode(),
        hashlib.sha256,
    ).hexdigest()


def generate_order_token(ticket_id: str) -> str:
    encoded = base64.urlsafe_b64encode(ticket_id.encode()).decode().rstrip("=")
    return f"{encoded}.{_sign(ticket_id)}"


def verify_order_token(token: str) -> Optional[str]:
    """Return the ticket id if the token signature is valid."""
    encoded, sep, signature = token.partition(".")
    if not sep:
        return None

    try:
        padded = encoded + "=" * (-len(encoded) % 4)
        ticket_id = base64.urlsafe_b64decode(padded.encode()).decode()
    except (binascii.Error, UnicodeDecodeError):
        return None

    if not hmac.compare_digest(_sign(ticket_id), signature):
        return None
    return ticket_id


def generate_order_url(ticket_id: str) -> str:
    return f"{settings.base_url}/manage-order?token={generate_order_token(ticket_id)}"
