# Magic and version
ARCHIVE_MAGIC = b"OCM1"  # 4 bytes: "OCM1"
FORMAT_VERSION = 1

# Algorithm IDs (1=AES-256-GCM)
ALG_AES_256_GCM = 1

SALT_SIZE = 16
IV_SIZE = 12  # GCM standard nonce
TAG_SIZE = 16
KEY_SIZE = 32

# Fixed Argon2id parameters for algorithm 1 (not carried in the header)
ARGON_TIME_COST = 3
ARGON_MEMORY_COST_KIB = 64 * 1024  # 64 MiB
ARGON_PARALLELISM = 4

DEFAULT_BUFSIZE = 64 * 1024


# Container layout
CONFIG_ROOT = ".openclaw"
LEGACY_CONFIG_ROOTS = (".clawdbot",)
CONFIG_ROOT_NAMES = (CONFIG_ROOT,) + LEGACY_CONFIG_ROOTS
CONFIG_FILE_NAME = "openclaw.json"
WORKSPACE_DIR_NAME = "workspace"
MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = 1


# CLI defaults
DEFAULT_ARCHIVE_NAME = "agent-backup.oca"
DEFAULT_WORKSPACE_NAME = "clawd"
PASSWORD_ENV_VAR = "MIGRATOR_PASSWORD"
