"""Vault - client-held encryption for credential records.

Security Note (Threat Model):
    The session key and decrypted items live in process memory for the
    lifetime of a session. Python cannot zero the memory behind the key
    bytes handed to the cipher; ``clear()`` drops every reference so the
    key is unreachable, which is the limit of what the runtime allows.
    The server only ever sees ciphertext, nonces and the title hint.
"""

from .config import VaultConfig, get_config
from .crypto import (
    DerivedKey,
    EnvelopeCodec,
    KeyDerivationService,
    derive_key,
    deserialize_item,
    serialize_item,
)
from .exceptions import (
    DecryptionError,
    DerivationInputError,
    EnvelopeFormatError,
    KeyAbsent,
    MalformedPlaintext,
    RecordNotFound,
    RotationIncomplete,
    SaltAlreadyExists,
    SealFailure,
    StorageError,
    TagVerificationFailure,
    UnknownAccount,
    VaultError,
)
from .models import (
    DecryptedItem,
    Envelope,
    ItemFailure,
    ListResult,
    VaultItem,
    VaultRecord,
    title_hint,
)
from .salt import SaltRegistry, decode_salt, encode_salt, generate_salt
from .session_key import SessionKeyManager
from .sync import VaultSyncAdapter
from .key_rotation import rotate_master_password

__all__ = [
    "VaultConfig",
    "get_config",
    "DerivedKey",
    "EnvelopeCodec",
    "KeyDerivationService",
    "derive_key",
    "deserialize_item",
    "serialize_item",
    "DecryptionError",
    "DerivationInputError",
    "EnvelopeFormatError",
    "KeyAbsent",
    "MalformedPlaintext",
    "RecordNotFound",
    "RotationIncomplete",
    "SaltAlreadyExists",
    "SealFailure",
    "StorageError",
    "TagVerificationFailure",
    "UnknownAccount",
    "VaultError",
    "DecryptedItem",
    "Envelope",
    "ItemFailure",
    "ListResult",
    "VaultItem",
    "VaultRecord",
    "title_hint",
    "SaltRegistry",
    "decode_salt",
    "encode_salt",
    "generate_salt",
    "SessionKeyManager",
    "VaultSyncAdapter",
    "rotate_master_password",
]
