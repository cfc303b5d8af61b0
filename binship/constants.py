"""
binship Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Config file discovery (checked in order)
CONFIG_FILE_NAME = "binship.yml"
CONFIG_SEARCH_PATHS = ["binship.yml", ".binship.yml", "~/.binship.yml"]

# Default Project Configuration
DEFAULT_PROJECT_PATH = "."
DEFAULT_BUILD_MODE = "release"
BUILD_MODES = ("debug", "release")

# Default Remote Configuration
DEFAULT_SSH_PORT = 22
DEFAULT_INSTALL_ROOT = "/opt"
DEFAULT_TRANSFER_ATTEMPTS = 3
DEFAULT_COMMAND_TIMEOUT = 30.0
SSH_CONNECTION_TIMEOUT = 10

# Default Monitor Configuration
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_HEALTH_TIMEOUT = 5.0
DEFAULT_GRACE_PERIOD = 30.0
DEFAULT_LOG_LINES = 50

# Transfer retry backoff: base * 2^(attempt - 1)
TRANSFER_BACKOFF_BASE = 1.0

# Remote layout
STAGING_SUFFIX = ".binship-staging"
UNIT_DIR = "/etc/systemd/system"
REMOTE_TMP_DIR = "/tmp"
BINARY_MODE = 0o755
UPLOAD_MODE = 0o644

# Dry-run stage duration (seconds reported per simulated stage)
SIMULATED_STAGE_DURATION = 0.1

# Event Bus
SUBSCRIBER_QUEUE_SIZE = 256
STREAM_PIPELINE = "pipeline"
STREAM_HEALTH = "health"

# Dashboard
HEALTH_WINDOW_SIZE = 20
EVENT_WINDOW_SIZE = 12
LOG_WINDOW_SIZE = 12

# Log Configuration
LOG_DIR = ".binship/logs"
LOG_DATE_FORMAT = "%Y-%m-%d"
LOG_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
