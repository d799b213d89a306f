TOOL_VERSION = "0.3.0"

DEFAULT_ALGORITHM = "rsa"
DEFAULT_KEY_BITS = 2048
# size used when none is given; ed25519 has a fixed size
DEFAULT_KEY_BITS_BY_ALGORITHM = {"rsa": 2048, "ecdsa": 256, "ed25519": 256}

AUTHORIZED_KEYS_PATH = ".ssh/authorized_keys"
AUTHORIZED_KEYS_BACKUP_SUFFIX = ".bak"

CONFIG_ENV_VAR = "SSHKEYROTATE_CONFIG"
DEFAULT_CONFIG_FILE = "sshkeyrotate.yaml"
