"""
SessionKeyManager - owns the single session key of a logged-in user.

- ``acquire(password)`` - fetch salt, derive and install the key
- ``clear()`` - destroy the key and drop the presence marker
- ``is_present()`` - key presence, reconciled against the marker
- ``require_key()`` - the installed key, or ``KeyAbsent``

The manager is passed by reference to whatever needs the key and is torn
down explicitly (``clear()`` or ``async with``), not by garbage collection.

Security Note:
    The key lives only in this object. It is never written to tab storage,
    logged, or serialized. The tab storage marker is a routing hint; it is
    never trusted without the in-memory key behind it.
"""
import logging
from typing import Any, Callable, Optional

from ..data import TabStorage
from .config import DEFAULT_KEY_MARKER, VaultConfig
from .crypto import DerivedKey, KeyDerivationService
from .exceptions import KeyAbsent

logger = logging.getLogger("sealed_vault.vault")


class SessionKeyManager:
    """Holds the session's ``DerivedKey``.

    ``generation`` increases on every install and every clear, so work that
    started under one key can tell whether it is still current.
    """

    def __init__(
        self,
        account_id: str,
        salt_source: Any,
        storage: Optional[TabStorage] = None,
        kdf: Optional[KeyDerivationService] = None,
        marker: str = DEFAULT_KEY_MARKER,
    ):
        self._account_id = account_id
        self._salt_source = salt_source
        self._storage = storage if storage is not None else TabStorage()
        self._kdf = kdf or KeyDerivationService()
        self._marker = marker
        self._key: Optional[DerivedKey] = None
        self._generation = 0
        self._listeners: list[Callable[[], None]] = []

    @classmethod
    def from_config(
        cls,
        account_id: str,
        salt_source: Any,
        config: VaultConfig,
        storage: Optional[TabStorage] = None,
    ) -> "SessionKeyManager":
        return cls(
            account_id,
            salt_source,
            storage=storage,
            kdf=KeyDerivationService.from_config(config),
            marker=config.key_marker,
        )

    def __repr__(self) -> str:
        return (
            f'<SessionKeyManager account={self._account_id} '
            f'present={self._key is not None} generation={self._generation}>'
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def account_id(self) -> str:
        return self._account_id

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def storage(self) -> TabStorage:
        return self._storage

    def add_clear_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked after every ``clear()``."""
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_present(self) -> bool:
        """True only if a usable key is held in memory.

        A marker without a key (after a reload, say) means the session is
        unauthenticated; the stale marker is removed.
        """
        if self._key is not None and not self._key.destroyed:
            return True
        if self._storage.get(self._marker):
            logger.warning(
                "Key marker without in-memory key for account=%s; "
                "treating session as unauthenticated", self._account_id,
            )
            del self._storage[self._marker]
        return False

    def require_key(self) -> DerivedKey:
        """Return the installed key.

        Raises:
            KeyAbsent: If no usable key is installed.
        """
        if not self.is_present():
            raise KeyAbsent("No session key installed")
        return self._key

    async def derive(self, password: str) -> DerivedKey:
        """Derive a key for this account without installing it."""
        salt = await self._salt_source.fetch_salt(self._account_id)
        return await self._kdf.derive_key_async(password, salt)

    async def acquire(self, password: str) -> None:
        """Derive the session key from the master password and install it.

        Raises:
            DerivationInputError: Missing or malformed salt.
            UnknownAccount: The account has no salt.
            KeyAbsent: ``clear()`` was called while deriving; the new key
                is destroyed instead of installed.
        """
        started = self._generation
        try:
            key = await self.derive(password)
        except Exception as err:
            logger.warning(
                "Key acquisition failed for account=%s: %s",
                self._account_id, type(err).__name__,
            )
            raise
        if self._generation != started:
            key.destroy()
            raise KeyAbsent("Session was cleared while the key was being derived")
        self.install(key)

    def install(self, key: DerivedKey) -> None:
        """Install a key, replacing (and destroying) any previous one."""
        if key.destroyed:
            raise KeyAbsent("Cannot install a destroyed key")
        previous = self._key
        self._key = key
        if previous is not None and previous is not key:
            previous.destroy()
        self._generation += 1
        self._storage[self._marker] = True
        logger.info("Session key installed for account=%s", self._account_id)

    def clear(self) -> None:
        """Destroy the key, drop the marker and notify listeners."""
        if self._key is not None:
            self._key.destroy()
            self._key = None
        self._generation += 1
        self._storage.pop(self._marker, None)
        logger.info("Session key cleared for account=%s", self._account_id)
        for callback in list(self._listeners):
            callback()

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "SessionKeyManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.clear()
