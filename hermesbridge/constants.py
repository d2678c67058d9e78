"""Constants and default values for hermesbridge."""

import re

# Default model configuration
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"

# Chat grammar
DEFAULT_COMMAND_PREFIX = ":h"
STOP_WORD = "stop"
START_WORD = "start"
DANGERZONE = ":dangerzone"
SAFETYZONE = ":safetyzone"

# Authorization
UNAUTHORIZED_POLICIES = ("refuse", "drop")
DEFAULT_UNAUTHORIZED_POLICY = "refuse"

# Workspace defaults
DEFAULT_WORKSPACE_PATH = "/app/workspace"
DEFAULT_MAX_READ_MB = 8
DEFAULT_MAX_WRITE_MB = 2

# Display truncation (characters)
DEFAULT_READ_DISPLAY_CHARS = 3000
DEFAULT_DIRECTIVE_READ_CHARS = 1500
TRUNCATION_MARKER = "... (truncated)"

# Execution defaults
DEFAULT_EXEC_TIMEOUT = 30  # seconds
DEFAULT_EXEC_OUTPUT_CHARS = 3000
DEFAULT_EXEC_MAX_OUTPUT_CHARS = 1_000_000  # captured per stream

# Dedup window
DEFAULT_DEDUP_CAPACITY = 1000

# Spam guard thresholds (tuned empirically, all overridable)
DEFAULT_SPAM_PREFIX_LEN = 50
DEFAULT_SPAM_HISTORY = 20
DEFAULT_SPAM_WINDOW = 6
DEFAULT_SPAM_WINDOW_THRESHOLD = 2
DEFAULT_SPAM_DUPLICATE_THRESHOLD = 2
DEFAULT_SPAM_DUPLICATE_WINDOW = 30.0  # seconds
DEFAULT_SPAM_CLEANUP_WINDOW = 60.0  # seconds

# Sync health
DEFAULT_CRITICAL_FILES = ["package.json", "README.md", "tsconfig.json", ".env"]
DEFAULT_MIN_FILE_COUNT = 5
DEFAULT_SYNC_SOURCE = "rsync://host.docker.internal:8873/workspace"
DEFAULT_SYNC_TIMEOUT = 120  # seconds
SYNC_MARKER_NAME = ".sync-test"

# Transport
TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_POLL_TIMEOUT = 30  # seconds
MAX_MESSAGE_LENGTH = 4000
POLL_ERROR_BACKOFF = 5.0  # seconds

# Names the workspace guard never exposes (gitwildmatch syntax).
SENSITIVE_PATTERNS = [
    # Hidden files and directories, including .env*
    ".*",
    # Credentials by name
    "*secret*",
    "*password*",
    "*passwd*",
    "*token*",
    "*credential*",
    # Key material
    "*.key",
    "*.pem",
    "*.p12",
    "*.pfx",
    "*_key",
    "*-key",
    "*_key.*",
    "*-key.*",
    "*apikey*",
    "*api_key*",
    "*private*key*",
    "id_rsa*",
    "id_ed25519*",
]

# Directories skipped when aggregating workspace status
STATUS_IGNORES = [
    ".git/",
    "node_modules/",
    "__pycache__/",
    ".venv/",
    "venv/",
    "dist/",
    "build/",
]

# Dangerous command patterns (for executor safety checks)
DANGEROUS_PATTERNS = [
    (re.compile(r'\bsudo\b'), "Use of sudo detected"),
    (re.compile(r'\brm\s+-rf\s+/'), "Recursive delete of root directory"),
    (re.compile(r':\(\)\{.*\|.*\&.*\}'), "Fork bomb pattern detected"),
    (re.compile(r'curl.*\|.*sh'), "Piping curl to shell"),
    (re.compile(r'wget.*\|.*sh'), "Piping wget to shell"),
    (re.compile(r'\bchmod\s+777'), "chmod 777 detected"),
    (re.compile(r'>\s*/dev/sd[a-z]'), "Writing to block device"),
    (re.compile(r'\bdd\s+.*of=/dev/'), "dd to block device"),
]

# Model descriptors - Anthropic Claude models only
SUPPORTED_MODELS = {
    "anthropic:claude-sonnet-4-5": {
        "provider": "anthropic",
        "name": "claude-sonnet-4-5-20250929",
        "max_output_tokens": 2000,
    },
    "anthropic:claude-haiku-4-5": {
        "provider": "anthropic",
        "name": "claude-haiku-4-5-20251001",
        "max_output_tokens": 2000,
    },
    "anthropic:claude-opus-4-1": {
        "provider": "anthropic",
        "name": "claude-opus-4-1-20250805",
        "max_output_tokens": 2000,
    },
}
