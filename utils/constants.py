"""Constants for the Suno library archiver."""

# Application constants
DEFAULT_USER_AGENT = "Suno-Archiver/1.0"

# Audio formats
PRIMARY_FORMAT = "mp3"
LOSSLESS_FORMAT = "wav"
KNOWN_AUDIO_EXTENSIONS = {PRIMARY_FORMAT, LOSSLESS_FORMAT}

# Listing response shapes: keys that may hold the page's item array, in order
FEED_ITEM_KEYS = ("clips", "songs", "data", "items")

# Listing query flags sent with every page request
FEED_QUERY_FLAGS = {
    "hide_disliked": "true",
    "hide_gen_stems": "true",
    "hide_studio_clips": "true",
}

# Per-user layout
CATALOG_FILE_NAME = "library.db"
LEGACY_LIBRARY_FILE_NAME = "library.json"
LEGACY_BACKUP_SUFFIX = ".backup"
DOWNLOADS_DIR_NAME = "downloads"
LOGS_DIR_NAME = "logs"
USER_LOG_FILE_NAME = "archive.log"

# Catalog schema
CATALOG_SCHEMA_VERSION = 1

# Logging constants
LOG_FORMAT_CONSOLE = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

LOG_FORMAT_FILE = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
    "{name}:{function}:{line} | {message}"
)
