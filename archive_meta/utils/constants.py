"""Named constants for Archive Meta. No magic numbers."""

# --- Application ---
APP_NAME = "Archive Meta"
APP_VERSION = "0.1.0"

# --- Paths ---
DEFAULT_CONFIG_FILENAME = "config.yaml"
DEFAULT_DB_FILENAME = "archive_meta.db"

# --- Bounded Fetcher ---
DEFAULT_PREFIX_BYTES = 102400  # 100 KiB holds a typical ID3v2 tag
MAX_PREFIX_BYTES = 10 * 1024 * 1024
FETCH_TIMEOUT_SECONDS = 10.0  # Wall-clock deadline for one prefix fetch
FETCH_CHUNK_SIZE = 8192
DEFAULT_FETCH_RATE_LIMIT = 0.0  # Seconds between requests to one host (0 = off)

# --- ID3v2 Layout ---
ID3_MARKER = b"ID3"
ID3_HEADER_SIZE = 10
ID3_FRAME_HEADER_SIZE = 10
ID3_FRAME_ID_SIZE = 4
SYNCHSAFE_MAX = 1 << 28
ID3_ENCODING_LATIN1 = 0

# Frame ids the parser interprets; everything else is skipped by size.
ID3_FRAME_ARTIST = "TPE1"
ID3_FRAME_TITLE = "TIT2"
ID3_FRAME_ALBUM = "TALB"
ID3_FRAME_GENRE = "TCON"
ID3_FRAME_YEAR = frozenset({"TDRC", "TYER"})

# --- Confidence ---
ID3_CONFIDENCE = 0.95
FILENAME_CONFIDENCE = 0.7
NORMALIZER_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.0

# --- Artist Normalization ---
UNKNOWN_ARTIST = "Unknown Artist"
# Lower-cased when they are not the first word of a canonical name
ARTIST_CONJUNCTIONS = frozenset({"&", "and", "or", "the"})
DUPLICATE_ARTIST_THRESHOLD = 90  # token_sort_ratio (0-100) for the duplicates report

# --- Batch Processing ---
DEFAULT_PERSIST_BATCH_SIZE = 1000
DEFAULT_MAX_WORKERS = 1  # Sequential, order-preserving by default
MAX_WORKERS_LIMIT = 32
