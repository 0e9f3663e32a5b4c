"""Sealed Vault.

Client-side encrypted credential vault over an opaque ciphertext store.
"""
from .version import __version__
from .data import TabStorage
from .vault import (
    EnvelopeCodec,
    KeyDerivationService,
    SaltRegistry,
    SessionKeyManager,
    VaultItem,
    VaultSyncAdapter,
)

__all__ = [
    "__version__",
    "TabStorage",
    "EnvelopeCodec",
    "KeyDerivationService",
    "SaltRegistry",
    "SessionKeyManager",
    "VaultItem",
    "VaultSyncAdapter",
]
