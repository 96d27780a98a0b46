"""
sshdeploy Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Default locations
DEFAULT_CONFIG_FILE = "sshdeploy.yml"
DEFAULT_STATE_DIR = "~/.sshdeploy"
DEFAULT_DB_FILENAME = "state.db"
CONFIG_ENV_VAR = "SSHDEPLOY_CONFIG"
DB_URL_ENV_VAR = "SSHDEPLOY_DB_URL"

# Default SSH Configuration
DEFAULT_SSH_PORT = 22
DEFAULT_TIMEOUT = 300
HOST_KEY_TIMEOUT = 10
AUTHORIZED_KEYS_PATH = ".ssh/authorized_keys"
AUTHORIZED_KEYS_PERMISSIONS = 0o600
SSH_DIR_PERMISSIONS = 0o700

# Logins that must never be used as a deployment identity
PRIVILEGED_USERS = ["root", "toor", "admin", "administrator"]

# Version-control metadata never synced or deleted
DEFAULT_EXCLUDES = [".git", ".github", ".forgejo", ".svn", ".hg"]

# Secret names ending with this suffix hold base64 encoded values
BASE64_SECRET_SUFFIX = "_B64"

# Key types accepted in authorized_keys lines
SUPPORTED_KEY_TYPES = [
    "ssh-ed25519",
    "ssh-rsa",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
    "sk-ssh-ed25519@openssh.com",
    "sk-ecdsa-sha2-nistp256@openssh.com",
]

# Output excerpt size kept in deployment results
OUTPUT_EXCERPT_CHARS = 2000

# Log Configuration
LOG_DATE_FORMAT = "%Y-%m-%d"
LOG_TIME_FORMAT = "%H-%M-%S"
REDACTED = "***"

# CLI exit codes
EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2
EXIT_INTERRUPTED = 130

# File Permissions
LOCK_FILE_PERMISSIONS = 0o600
