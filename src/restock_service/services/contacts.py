"""Contact validation, normalization and masking per demand channel."""

import re

from restock_service.errors import InvalidContact, UnsupportedChannel
from restock_service.infrastructure.database.models import DemandChannel
from shared.constants import CHANNEL_ALIASES, EMAIL_PATTERN, PHONE_PATTERN

_EMAIL_RE = re.compile(EMAIL_PATTERN)
_PHONE_RE = re.compile(PHONE_PATTERN)


def normalize_channel(channel: str | DemandChannel) -> DemandChannel:
    """Map a widget-supplied channel name onto a stored DemandChannel."""
    if isinstance(channel, DemandChannel):
        return channel
    alias = CHANNEL_ALIASES.get((channel or "").strip().upper())
    if alias is None:
        raise UnsupportedChannel(f"Unsupported channel: {channel}")
    return DemandChannel(alias)


def validate_contact(contact: str, channel: DemandChannel) -> str:
    """Check ``contact`` against the channel's format rule and return it normalized.

    Emails are trimmed and lower-cased so that the same address always maps to
    the same wait-list entry; phone numbers are only trimmed.
    """
    value = (contact or "").strip()
    if channel == DemandChannel.EMAIL:
        if not _EMAIL_RE.match(value):
            raise InvalidContact("Invalid email address")
        return value.lower()

    if not _PHONE_RE.match(value):
        raise InvalidContact("Invalid phone number")
    return value


def mask_contact(contact: str, channel: DemandChannel) -> str:
    """Mask a contact for merchant-facing lists.

    ``john.doe@gmail.com`` -> ``jo***@gmail.com``, ``+1234567890`` -> ``+123456•••7890``.
    """
    if channel == DemandChannel.EMAIL and "@" in contact:
        local, domain = contact.split("@", 1)
        return f"{local[:2] if len(local) > 2 else local[:1]}***@{domain}"
    if len(contact) <= 4:
        return "•••" + contact[-4:]
    return contact[:-4] + "•••" + contact[-4:]


def customer_name_from_contact(contact: str) -> str:
    """Best-effort first name from an email local part; empty for phone numbers."""
    if "@" not in contact:
        return ""
    local = contact.split("@", 1)[0]
    first = re.split(r"[._]", local)[0]
    return first[:1].upper() + first[1:]
