"""
QR check-in tokens.

Token text is ``<type>:<id>:<issued_at_ms>`` where type is ``appointment`` or
``student``. Clients render the text as a QR image; the server only issues,
parses and validates it.
"""
import logging
import time
from collections import namedtuple
from datetime import datetime
from typing import Optional

from flask import current_app

logger = logging.getLogger(__name__)

TOKEN_TYPES = ('appointment', 'student')

QRPayload = namedtuple('QRPayload', ['type', 'id', 'issued_at'])


def encode(token_type: str, entity_id, issued_at_ms: Optional[int] = None) -> str:
    if token_type not in TOKEN_TYPES:
        raise ValueError(f"Unsupported QR token type: {token_type}")
    if issued_at_ms is None:
        issued_at_ms = int(time.time() * 1000)
    return f"{token_type}:{entity_id}:{issued_at_ms}"


def decode(token: str) -> Optional[QRPayload]:
    """Parse a token; returns None for anything malformed."""
    if not token or not isinstance(token, str):
        return None
    parts = token.strip().split(':')
    if len(parts) != 3:
        return None
    token_type, entity_id, issued = parts
    if token_type not in TOKEN_TYPES or not entity_id:
        return None
    try:
        issued_at = datetime.fromtimestamp(int(issued) / 1000)
    except (ValueError, OverflowError, OSError):
        return None
    return QRPayload(token_type, entity_id, issued_at)


def validate(token: str, now: Optional[datetime] = None) -> bool:
    """True when the token parses and was issued within QR_TOKEN_TTL_HOURS."""
    payload = decode(token)
    if payload is None:
        return False
    now = now or datetime.now()
    ttl_seconds = current_app.config['QR_TOKEN_TTL_HOURS'] * 3600
    age = (now - payload.issued_at).total_seconds()
    if age < 0 or age > ttl_seconds:
        logger.info("Rejected expired QR token for %s %s", payload.type, payload.id)
        return False
    return True
