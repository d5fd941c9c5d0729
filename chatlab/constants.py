"""Constants for ChatLab.

Centralizes thresholds used by sniffing, parsing, merging and analysis.
"""

# Sniffing: bytes read from the start of a file for format detection
SNIFF_HEAD_SIZE = 8 * 1024

# Parsing
DEFAULT_BATCH_SIZE = 5000
MIN_VALID_YEAR = 2000  # Export tools occasionally emit epoch-zero timestamps
RECALLED_MARKER = "[已撤回] "
DEFAULT_GROUP_NAME = "未知群聊"
DEFAULT_TXT_CHAT_NAME = "未知对话"
TXT_HEADER_SCAN_LINES = 20

# Name of the sentinel member that owns system notices
SYSTEM_MEMBER_NAME = "系统消息"

# Archive envelope
CHATLAB_VERSION = "1.0.0"
CHATLAB_GENERATOR = "ChatLab Merge Tool"
ARCHIVE_SUFFIX = ".chatlab.json"
MIXED_PLATFORM = "mixed"

# Merge
CONFLICT_LOG_LIMIT = 5  # Conflicts echoed to the log per check
CONFLICT_SNIPPET_LOG_LIMIT = 50

# Repeat-chain analysis
REPEAT_MIN_CHAIN_LENGTH = 3
HOT_CONTENT_LIMIT = 10

# Catchphrase analysis
CATCHPHRASE_MIN_LENGTH = 2
CATCHPHRASES_PER_MEMBER = 5

# Night owl analysis
NIGHT_DAY_BOUNDARY_HOUR = 5  # Messages before 05:00 belong to the previous day
NIGHT_START_HOUR = 23
CHAMPION_NIGHT_MESSAGE_WEIGHT = 1
CHAMPION_LAST_SPEAKER_WEIGHT = 10
CHAMPION_CONSECUTIVE_DAY_WEIGHT = 20

# Checked in order with utils.classify(); the first threshold exceeded wins
NIGHT_OWL_TITLES = [
    (500, "Sleepless Deity"),
    (200, "Night Watch Champion"),
    (100, "Immortal Cultivator"),
    (50, "Balding Trainee"),
    (20, "Night Owl"),
    (0, "Occasional Insomniac"),
]
NIGHT_OWL_DEFAULT_TITLE = "Early Sleeper"

# Monologue analysis
MONOLOGUE_MAX_INTERVAL_SECONDS = 300
MONOLOGUE_MIN_STREAK = 3
MONOLOGUE_MID_STREAK = 5
MONOLOGUE_HIGH_STREAK = 10

SECONDS_PER_DAY = 86400

# CLI display constants
CONTENT_DISPLAY_LIMIT = 60  # Max chars of message content in tables
DEFAULT_PARSE_LIMIT = 20
DEFAULT_RANK_LIMIT = 10

# Date format for display
DATETIME_FORMAT = "%Y-%m-%d %H:%M"
DATETIME_FORMAT_FULL = "%Y-%m-%d %H:%M:%S"
