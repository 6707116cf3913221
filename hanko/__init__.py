"""hanko: keep a Git allowed signers file in sync with published SSH keys."""

from .allowed_signers import AllowedSignersDocument, WriteResult
from .config import HankoConfig, SignerConfig, SourceConfig, load_config, save_config
from .constants import VERSION
from .errors import ConfigurationError, HankoError, SourceQueryError
from .keys import Key, ResolvedEntry
from .providers import get_provider
from .resolve import Aggregation, Issue, aggregate, resolve_signer
from .update import UpdateResult, update_allowed_signers

__version__ = VERSION
__all__ = [
    "AllowedSignersDocument",
    "Aggregation",
    "ConfigurationError",
    "HankoConfig",
    "HankoError",
    "Issue",
    "Key",
    "ResolvedEntry",
    "SignerConfig",
    "SourceConfig",
    "SourceQueryError",
    "UpdateResult",
    "WriteResult",
    "aggregate",
    "get_provider",
    "load_config",
    "resolve_signer",
    "save_config",
    "update_allowed_signers",
]
