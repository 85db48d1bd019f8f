"""Application-wide configuration constants."""

import os

# --- Identity ---
APP_ID = "fountain-booth-v1"
DEFAULT_DATA_TYPE = "scouting"
PACKET_TYPE_SUFFIX = "_fountain_packet"

# --- Networking ---
API_HOST = os.environ.get("FOUNTAIN_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("FOUNTAIN_API_PORT", "8765"))
CORS_ORIGINS = [
    "http://localhost:5173", "http://127.0.0.1:5173",
]

# --- Wire format ---
COMPACT_FORMAT_VERSION = 1
PACKET_ID_ORIGIN = 0
SESSION_HEADER_INTERVAL = 8  # compact: resend session fields every N packets
QR_CODE_SIZE_BYTES = 2000  # estimated bytes per QR code
QR_CAPACITY_RATIO = 0.9  # leave room for QR encoding overhead
CHECKSUM_BYTES = 8

# --- Payload ---
COMPRESSION_THRESHOLD = 10000  # JSON chars before gzip kicks in
MIN_FOUNTAIN_SIZE_COMPRESSED = 50
MIN_FOUNTAIN_SIZE_UNCOMPRESSED = 100

# --- Generation ---
MAX_CYCLE_ITERATION_FACTOR = 5
FRAME_WINDOW_MAX = 500

# --- Scanning ---
SCAN_SESSION_TIMEOUT = 300  # seconds of inactivity before a scan is dropped
SWEEP_INTERVAL = 15  # seconds
MAX_ORPHAN_PACKETS = 256  # compact packets held before their session header
