"""Shared constants across the application."""

# Admin API pagination
ORDER_PAGE_SIZE = 250
LINE_ITEMS_PER_ORDER = 250
DEFAULT_MAX_BATCHES = 20
DEFAULT_BATCH_DELAY_SECONDS = 0.1

# Recommendation bounds
PROMPT_TOP_N = 10
MAX_RECOMMENDATIONS = 10
MIN_UPSELL_VARIANTS = 2
MAX_UPSELL_VARIANTS = 4
CO_PURCHASE_THRESHOLD = 2  # pairs must be bought together more than this

# Data window: months are approximated as 30 days
DAYS_PER_MONTH = 30

# Metaobject types
UPSELL_CONFIG_TYPE = "upsell_config"
UPSELL_SETTINGS_TYPE = "upsell_config_settings"

# Schedule frequencies and the months a new period starts in
PERIOD_START_MONTHS = {
    "monthly": list(range(1, 13)),
    "quarterly": [1, 4, 7, 10],
    "semiannual": [1, 7],
    "annual": [1],
    "manual": [],
}

AI_PROVIDERS = ["openai", "claude", "custom", "rules"]
