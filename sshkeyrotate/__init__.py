"""sshkeyrotate: rotate the SSH key pair used to reach one remote account."""

from .config import RotationSettings, load_config
from .constants import TOOL_VERSION
from .errors import RotationError
from .keys import KeyGenerator, KeyPair
from .metadata import KeyMetadata, compute_relationship_id
from .rotation import RotationOrchestrator, RotationReport, RotationState
from .stores import InMemoryAuthorizationStore, SshAuthorizationStore
from .transports import get_transport
from .trust_config import LocalTrustConfig

__version__ = TOOL_VERSION
__all__ = [
    "KeyGenerator",
    "KeyMetadata",
    "KeyPair",
    "InMemoryAuthorizationStore",
    "LocalTrustConfig",
    "RotationError",
    "RotationOrchestrator",
    "RotationReport",
    "RotationSettings",
    "RotationState",
    "SshAuthorizationStore",
    "compute_relationship_id",
    "get_transport",
    "load_config",
]
