"""
Salt Registry - per-account public salt for key derivation.

A salt is 32 random bytes generated once, when the account is created.
It is not secret and is served to anyone presenting the account id, since
the client needs it before a session key can exist. It is never
regenerated: a new salt would orphan every record sealed under the old one.
"""
import base64
import secrets
import logging
import binascii

from .crypto import SALT_SIZE
from .exceptions import DerivationInputError, UnknownAccount

logger = logging.getLogger("sealed_vault.vault")


def generate_salt() -> bytes:
    """Generate a random 32-byte salt."""
    return secrets.token_bytes(SALT_SIZE)


def encode_salt(salt: bytes) -> str:
    return base64.b64encode(salt).decode("ascii")


def decode_salt(value) -> bytes:
    """Decode a base64 salt as served by the salt endpoint.

    Raises:
        DerivationInputError: If the value is missing, not base64, or does
            not decode to exactly 32 bytes.
    """
    if not value:
        raise DerivationInputError("Salt is missing")
    if not isinstance(value, str):
        raise DerivationInputError("Salt must be a base64 string")
    try:
        salt = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise DerivationInputError("Salt is not valid base64") from None
    if len(salt) != SALT_SIZE:
        raise DerivationInputError(
            f"Salt must decode to exactly {SALT_SIZE} bytes, got {len(salt)}"
        )
    return salt


class SaltRegistry:
    """Creates and serves account salts on top of a ``SaltStore``."""

    def __init__(self, store):
        self._store = store

    @staticmethod
    def _validate_account(account_id: str) -> None:
        if not account_id or not isinstance(account_id, str):
            raise ValueError("Account id cannot be empty")

    async def register(self, account_id: str) -> str:
        """Generate and store the salt of a new account.

        Returns:
            The base64-encoded salt.

        Raises:
            SaltAlreadyExists: If the account already has one.
        """
        self._validate_account(account_id)
        salt = encode_salt(generate_salt())
        await self._store.put_salt(account_id, salt)
        logger.info("Salt registered for account=%s", account_id)
        return salt

    async def get_salt(self, account_id: str) -> str:
        """Return the base64 salt of an account.

        Raises:
            UnknownAccount: If no salt was registered.
        """
        self._validate_account(account_id)
        salt = await self._store.get_salt(account_id)
        if salt is None:
            raise UnknownAccount(f"Unknown account {account_id}")
        return salt

    async def fetch_salt(self, account_id: str) -> bytes:
        """Raw salt bytes, ready for key derivation."""
        return decode_salt(await self.get_salt(account_id))
