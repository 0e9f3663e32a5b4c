"""
Vault error taxonomy.

Security Note:
    Messages are fixed strings plus identifiers (account, owner, record id).
    Never put key material, plaintext or ciphertext into an exception.
"""


class VaultError(Exception):
    """Base class for all vault errors."""


class DerivationInputError(VaultError):
    """Salt (or password) missing or malformed; fatal to login."""


class SealFailure(VaultError):
    """The AEAD cipher failed to encrypt."""


class DecryptionError(VaultError):
    """Base class for failures opening a single envelope."""


class TagVerificationFailure(DecryptionError):
    """Wrong key, tampered or corrupted data."""


class MalformedPlaintext(DecryptionError):
    """Authenticated bytes that do not describe a vault item."""


class EnvelopeFormatError(DecryptionError):
    """Envelope fields do not decode to the expected wire format."""


class KeyAbsent(VaultError):
    """No session key is installed, or it was cleared mid-operation."""


class UnknownAccount(VaultError):
    """No salt was ever registered for this account."""


class SaltAlreadyExists(VaultError):
    """The account already has a salt; salts are immutable."""


class RecordNotFound(VaultError):
    """Record id unknown or owned by another account."""


class StorageError(VaultError):
    """The persistence API failed or answered unexpectedly."""


class RotationIncomplete(VaultError):
    """A failed rotation could not restore every record.

    ``record_ids`` are still sealed under the new password's key; retrying
    the rotation with that password reaches them again.
    """

    def __init__(self, message: str, record_ids: list):
        super().__init__(message)
        self.record_ids = list(record_ids)
