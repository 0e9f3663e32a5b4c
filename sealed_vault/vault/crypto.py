"""
Vault Crypto Core - Key derivation and the per-item encryption envelope.

- Key derivation: PBKDF2-HMAC-SHA256(master password, account salt) → 256-bit key
- Envelope: AEAD(key, random 96-bit nonce, canonical item JSON)
  → {cipher: b64(ciphertext || tag), iv: b64(nonce), titleHint}

Security Note:
    Never log plaintext, ciphertext, nonces or key material.
    Nonces are random 96-bit, drawn fresh for every seal; a nonce is never
    reused under the same key.
"""
import os
import base64
import asyncio
import binascii
import logging

import orjson
from pydantic import ValidationError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .config import DEFAULT_KDF_ITERATIONS, VaultConfig
from .exceptions import (
    DerivationInputError,
    EnvelopeFormatError,
    KeyAbsent,
    MalformedPlaintext,
    SealFailure,
    TagVerificationFailure,
)
from .models import Envelope, VaultItem, title_hint

logger = logging.getLogger("sealed_vault.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM / Poly1305 tag
KEY_LENGTH = 32  # AES-256
SALT_SIZE = 32  # 256-bit account salt

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


def get_cipher_cls(backend: str = "aesgcm") -> type:
    """Return the AEAD cipher class for a backend name."""
    try:
        return _CIPHERS[backend.lower()]
    except KeyError:
        raise ValueError(f"Unsupported cipher backend: {backend}") from None


# ---------------------------------------------------------------------------
# Session key
# ---------------------------------------------------------------------------

class DerivedKey:
    """A 256-bit AEAD key that can seal and open, and nothing else.

    The raw key bytes go straight into the cipher object and are not kept
    anywhere else; there is no accessor for them, no string form and no
    pickling. ``destroy()`` drops the cipher; any later use raises
    ``KeyAbsent``.
    """

    __slots__ = ("_aead",)

    def __init__(self, key_material: bytes, cipher_cls: type = AESGCM):
        if len(key_material) != KEY_LENGTH:
            raise ValueError(f"Derived key must be {KEY_LENGTH} bytes")
        self._aead = cipher_cls(bytes(key_material))

    @property
    def destroyed(self) -> bool:
        return self._aead is None

    def destroy(self) -> None:
        self._aead = None

    def _cipher(self):
        aead = self._aead
        if aead is None:
            raise KeyAbsent("Session key has been destroyed")
        return aead

    def seal(self, nonce: bytes, data: bytes) -> bytes:
        return self._cipher().encrypt(nonce, data, None)

    def open(self, nonce: bytes, data: bytes) -> bytes:
        return self._cipher().decrypt(nonce, data, None)

    def __repr__(self) -> str:
        state = "destroyed" if self.destroyed else "active"
        return f"<DerivedKey [{state}]>"

    __str__ = __repr__

    def __reduce_ex__(self, protocol):
        raise TypeError("DerivedKey cannot be serialized")

    def __copy__(self):
        raise TypeError("DerivedKey cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("DerivedKey cannot be copied")


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def _check_salt(salt) -> bytes:
    if salt is None:
        raise DerivationInputError("Salt is missing")
    if not isinstance(salt, (bytes, bytearray, memoryview)):
        raise DerivationInputError("Salt must be raw bytes")
    salt = bytes(salt)
    if len(salt) != SALT_SIZE:
        raise DerivationInputError(
            f"Salt must be exactly {SALT_SIZE} bytes, got {len(salt)}"
        )
    return salt


class KeyDerivationService:
    """PBKDF2-HMAC-SHA256 key stretching.

    Deterministic: the same (password, salt) always yields an
    interchangeable key, so nothing about the key is stored server-side.
    """

    def __init__(
        self,
        iterations: int = DEFAULT_KDF_ITERATIONS,
        cipher_backend: str = "aesgcm",
    ):
        self.iterations = iterations
        self.cipher_cls = get_cipher_cls(cipher_backend)

    @classmethod
    def from_config(cls, config: VaultConfig) -> "KeyDerivationService":
        return cls(
            iterations=config.kdf_iterations,
            cipher_backend=config.cipher_backend,
        )

    def derive_key(self, password: str, salt: bytes) -> DerivedKey:
        """Derive the session key.

        Args:
            password: Master password.
            salt: The account's 32-byte public salt.

        Returns:
            A ``DerivedKey`` usable only for sealing and opening.

        Raises:
            DerivationInputError: If salt is missing or malformed, or the
                password is not a string. No default salt is ever used.
        """
        salt = _check_salt(salt)
        if not isinstance(password, str):
            raise DerivationInputError("Master password must be a string")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
        )
        return DerivedKey(kdf.derive(password.encode("utf-8")), self.cipher_cls)

    async def derive_key_async(self, password: str, salt: bytes) -> DerivedKey:
        """``derive_key`` off the event loop."""
        return await asyncio.to_thread(self.derive_key, password, salt)


def derive_key(password: str, salt: bytes) -> DerivedKey:
    """Derive a key with the default parameters."""
    return KeyDerivationService().derive_key(password, salt)


# ---------------------------------------------------------------------------
# Item serialization
# ---------------------------------------------------------------------------

def serialize_item(item: VaultItem) -> bytes:
    """Canonical JSON bytes of an item (declared field order)."""
    return orjson.dumps(item.model_dump())


def deserialize_item(data: bytes) -> VaultItem:
    """Parse authenticated bytes back into a ``VaultItem``.

    Raises:
        MalformedPlaintext: If the bytes are not a JSON object with the
            item's fields. Validation details are dropped on purpose, they
            quote the input.
    """
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError:
        raise MalformedPlaintext("Decrypted payload is not valid JSON") from None
    if not isinstance(parsed, dict):
        raise MalformedPlaintext("Decrypted payload is not an object")
    try:
        return VaultItem.model_validate(parsed)
    except ValidationError as err:
        # unknown keys come from the plaintext itself; only count them
        declared = VaultItem.model_fields
        locs = [e["loc"][0] for e in err.errors() if e["loc"]]
        fields = sorted({loc for loc in locs if loc in declared})
        unexpected = len({loc for loc in locs if loc not in declared})
        detail = f"invalid fields: {', '.join(fields) or 'none'}"
        if unexpected:
            detail += f"; {unexpected} unexpected field(s)"
        raise MalformedPlaintext(
            f"Decrypted payload is not a vault item ({detail})"
        ) from None


def _b64decode(value, field: str) -> bytes:
    if not isinstance(value, str) or not value:
        raise EnvelopeFormatError(f"Envelope {field} is missing")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise EnvelopeFormatError(f"Envelope {field} is not valid base64") from None


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# ---------------------------------------------------------------------------
# Envelope codec
# ---------------------------------------------------------------------------

class EnvelopeCodec:
    """Seals and opens individual vault items with the session key."""

    def encrypt(self, item: VaultItem, key: DerivedKey) -> Envelope:
        """Seal an item under a fresh random nonce.

        Raises:
            KeyAbsent: If no key is given or it was destroyed.
            SealFailure: If the cipher itself fails.
        """
        if key is None:
            raise KeyAbsent("No session key installed")
        nonce = os.urandom(NONCE_SIZE)
        plaintext = serialize_item(item)
        try:
            sealed = key.seal(nonce, plaintext)
        except KeyAbsent:
            raise
        except Exception as err:
            raise SealFailure(
                f"AEAD seal failed ({type(err).__name__})"
            ) from err
        return Envelope(
            cipher=_b64encode(sealed),
            iv=_b64encode(nonce),
            title_hint=title_hint(item.title),
        )

    def decrypt(self, envelope: Envelope, key: DerivedKey) -> VaultItem:
        """Open an envelope; all-or-nothing.

        Raises:
            KeyAbsent: If no key is given or it was destroyed.
            EnvelopeFormatError: If cipher/iv do not decode to the wire format.
            TagVerificationFailure: Wrong key, tampering or corruption.
            MalformedPlaintext: Authentic bytes that are not a vault item.
        """
        if key is None:
            raise KeyAbsent("No session key installed")
        nonce = _b64decode(envelope.iv, "iv")
        if len(nonce) != NONCE_SIZE:
            raise EnvelopeFormatError(
                f"Envelope iv must be {NONCE_SIZE} bytes, got {len(nonce)}"
            )
        sealed = _b64decode(envelope.cipher, "cipher")
        if len(sealed) < TAG_SIZE:
            raise EnvelopeFormatError(
                f"Envelope cipher shorter than the {TAG_SIZE}-byte tag"
            )
        try:
            plaintext = key.open(nonce, sealed)
        except InvalidTag:
            raise TagVerificationFailure(
                "Authentication tag verification failed"
            ) from None
        return deserialize_item(plaintext)
