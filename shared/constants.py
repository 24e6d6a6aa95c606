"""
Shared constants used across the platform.
"""

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/bourbon-buddy"
DEFAULT_CACHE_DIR = "~/.cache/bourbon-buddy"
DEFAULT_DATA_DIR = "~/.local/share/bourbon-buddy"
CONFIG_FILENAME = "config.json"
DATABASE_FILENAME = "collection.db"
IMAGE_CACHE_FILENAME = "image_search_cache.json"

# Server
DEFAULT_API_PORT = 5005
API_VERSION = "1.0.0"

# Collection limits
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_NOTES_LENGTH = 1000
MAX_TASTING_NOTE_LENGTH = 500
MIN_RELEASE_YEAR = 1800
MAX_PROOF = 200
MAX_FEATURED_SPIRITS = 50
DEFAULT_CATEGORY = "whiskey"

# Video platform
MUX_API_BASE = "https://api.mux.com"
WEBHOOK_TOLERANCE_SEC = 300  # 5 minutes
SYNC_PROCESSING_CUTOFF_MINUTES = 5
SYNC_BATCH_LIMIT = 20
SYNC_WORKERS = 4
PLACEHOLDER_PLAYBACK_PREFIX = "placeholder-"

# Comments / live sessions
MAX_COMMENT_LENGTH = 1000
MAX_TIP_MESSAGE_LENGTH = 500
CHAT_HISTORY_LIMIT = 100

# Security monitoring
CSRF_COOKIE_NAME = "csrf_secret"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_COOKIE_MAX_AGE = 60 * 60 * 24  # 1 day
CSRF_FAILURE_WINDOW_MINUTES = 10
CSRF_FAILURE_THRESHOLD = 5
MAX_SECURITY_EVENTS = 1000

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 10  # seconds
IMAGE_PROXY_MAX_BYTES = 5 * 1024 * 1024  # 5MB
MIN_IMAGE_RESULTS = 5
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)
