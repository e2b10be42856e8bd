from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardHerald"
    debug: bool = False

    # Upstream pipeline run endpoints, one per command
    card_api_url: str = ""
    archetype_api_url: str = ""
    pokemon_api_url: str = ""
    search_api_url: str = ""
    tier_list_api_url: str = ""

    langflow_api_key: str = ""
    upstream_http_timeout_seconds: float = 55.0

    # Request queue
    queue_max_concurrent: int = 1
    queue_max_size: int = 50
    queue_request_timeout_seconds: float = 60.0
    rate_limit_window_seconds: float = 60.0
    rate_limit_max_requests: int = 5
    rate_limit_cleanup_interval_seconds: float = 300.0


settings = Settings()


# =============================================================================
# PLATFORM LIMITS
# =============================================================================

# Per-card limits of the chat platform's rich message format
CARD_TITLE_LIMIT = 256
CARD_FIELD_NAME_LIMIT = 256
CARD_FIELD_VALUE_LIMIT = 1024
CARD_FOOTER_LIMIT = 2048
CARD_MAX_FIELDS = 25

# Total serialized size of one card, and the margin kept below it
CARD_SIZE_CAP = 6000
CARD_SIZE_SAFETY_MARGIN = 200

# Long text goes into the description up to this length, otherwise into a field
DESCRIPTION_PLACEMENT_THRESHOLD = 2000

# Group listings (archetype tables) keep descriptions short
GROUP_LISTING_DESCRIPTION_LIMIT = 800

# Shrink targets used when a card is over budget
SHRINK_DESCRIPTION_TARGET = 800
SHRINK_FIELD_VALUE_TARGET = 500
SHRINK_MIN_FIELDS = 3

# Messages
CARDS_PER_BATCH = 10
BATCH_SIZE_CAP = 6000
MESSAGE_CHAR_LIMIT = 2000
TEXT_CHUNK_SIZE = 1900

# A single card whose full text exceeds this is followed by the text in chunks
LONG_TEXT_FOLLOW_UP_THRESHOLD = 4000


# =============================================================================
# REQUEST QUEUE DEFAULTS
# =============================================================================

DEFAULT_MAX_CONCURRENT = 1
DEFAULT_MAX_QUEUE_SIZE = 50
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 60.0
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 5
DEFAULT_CLEANUP_INTERVAL_SECONDS = 300.0
