"""Shared constants across the application."""

# Demand channels accepted from the storefront widget, mapped to stored channel
CHANNEL_ALIASES = {
    "EMAIL": "EMAIL",
    "WHATSAPP": "WHATSAPP",
    "SMS": "WHATSAPP",
    "PHONE": "WHATSAPP",
}

# Contact format rules
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PHONE_PATTERN = r"^[+\d][\d\s\-().]{6,}$"

# Webhook topics
TOPIC_INVENTORY_UPDATE = "inventory_levels/update"
TOPIC_APP_UNINSTALLED = "app/uninstalled"

# Plan limits
FREE_MONTHLY_NOTIFY_LIMIT = 50
PRO_MONTHLY_NOTIFY_LIMIT = 10000

# Batch sizes
RESTOCK_BATCH_SIZE = 10
RESTOCK_BATCH_DELAY_MS = 100

# Recovery links
RECOVERY_TOKEN_BYTES = 32  # 256 bits, hex-encoded to 64 chars
RECOVERY_LINK_TTL_DAYS = 7

# Time windows
NOTIFY_CLAIM_TTL_SECONDS = 300
WIDGET_CACHE_TTL_SECONDS = 30
