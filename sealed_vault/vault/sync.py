"""
VaultSyncAdapter - CRUD over an opaque ciphertext store.

- ``list()`` - fetch the owner's records, open each one independently
- ``create(item)`` / ``update(id, item)`` - seal in full, then submit
- ``delete(id)`` - hard delete
- ``search(term)`` - client-side filter over the decrypted view

Security Note:
    Only sealed envelopes and the title hint go to the store. Decrypted items
    live in ``items`` until the session key is cleared, at which point the
    view is dropped. Results produced under a key that was cleared while they
    were in flight are discarded, never installed.
"""
import asyncio
import logging
from typing import Any, List, Optional, Union

from .crypto import EnvelopeCodec
from .exceptions import DecryptionError, KeyAbsent
from .models import DecryptedItem, ItemFailure, ListResult, VaultItem, VaultRecord
from .session_key import SessionKeyManager

logger = logging.getLogger("sealed_vault.vault")


class VaultSyncAdapter:
    """Owner-scoped vault operations for one session."""

    def __init__(
        self,
        store: Any,
        keys: SessionKeyManager,
        owner_id: str,
        codec: Optional[EnvelopeCodec] = None,
        concurrency: int = 8,
    ):
        self._store = store
        self._keys = keys
        self._owner_id = owner_id
        self._codec = codec or EnvelopeCodec()
        self._concurrency = concurrency
        self._items: list[DecryptedItem] = []
        self._failures: list[ItemFailure] = []
        keys.add_clear_listener(self._on_key_cleared)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def store(self) -> Any:
        return self._store

    @property
    def keys(self) -> SessionKeyManager:
        return self._keys

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def codec(self) -> EnvelopeCodec:
        return self._codec

    @property
    def items(self) -> list[DecryptedItem]:
        return list(self._items)

    @property
    def failures(self) -> list[ItemFailure]:
        return list(self._failures)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _on_key_cleared(self) -> None:
        self._items = []
        self._failures = []

    def ensure_generation(self, generation: int) -> None:
        """Raise ``KeyAbsent`` unless the key of ``generation`` is still installed."""
        if self._keys.generation != generation or not self._keys.is_present():
            logger.info(
                "Session key changed mid-operation for owner=%s; results discarded",
                self._owner_id,
            )
            raise KeyAbsent("Session key was cleared; results discarded")

    async def _open_record(
        self, record: VaultRecord, key, semaphore: asyncio.Semaphore
    ) -> Union[DecryptedItem, ItemFailure]:
        if record.owner_id != self._owner_id:
            logger.warning(
                "Record id=%s does not belong to owner=%s", record.id, self._owner_id,
            )
            return ItemFailure(
                record_id=record.id,
                error="OwnerMismatch",
                message="Record belongs to another owner",
            )
        async with semaphore:
            try:
                item = await asyncio.to_thread(
                    self._codec.decrypt, record.envelope, key,
                )
            except DecryptionError as err:
                logger.warning(
                    "Failed to decrypt record id=%s: %s", record.id, type(err).__name__,
                )
                return ItemFailure(
                    record_id=record.id,
                    error=type(err).__name__,
                    message=str(err),
                )
        return self._decrypted(record, item)

    @staticmethod
    def _decrypted(record: VaultRecord, item: VaultItem) -> DecryptedItem:
        return DecryptedItem(
            id=record.id,
            item=item,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list(self, title_hint: Optional[str] = None) -> ListResult:
        """Fetch and open every record of the owner.

        One record failing to open is reported in ``failures`` and left out
        of ``items``; it never aborts the batch. Item order is the order the
        store returned (most recently updated first).

        Args:
            title_hint: Optional server-side filter on the title hint.

        Raises:
            KeyAbsent: No session key, or it was cleared before the batch
                finished.
        """
        key = self._keys.require_key()
        generation = self._keys.generation
        records = await self._store.list_records(self._owner_id, title_hint=title_hint)
        semaphore = asyncio.Semaphore(self._concurrency)
        opened = await asyncio.gather(
            *(self._open_record(record, key, semaphore) for record in records)
        )
        self.ensure_generation(generation)
        result = ListResult(
            items=[r for r in opened if isinstance(r, DecryptedItem)],
            failures=[r for r in opened if isinstance(r, ItemFailure)],
        )
        self._items = list(result.items)
        self._failures = list(result.failures)
        logger.info(
            "Vault listed for owner=%s: %d item(s), %d failure(s)",
            self._owner_id, len(result.items), len(result.failures),
        )
        return result

    async def create(self, item: VaultItem) -> DecryptedItem:
        """Seal a new item and submit it."""
        key = self._keys.require_key()
        generation = self._keys.generation
        envelope = self._codec.encrypt(item, key)
        record = await self._store.create_record(self._owner_id, envelope)
        decrypted = self._decrypted(record, item)
        self.ensure_generation(generation)
        self._items.insert(0, decrypted)
        logger.debug("Vault create: owner=%s id=%s", self._owner_id, record.id)
        return decrypted

    async def update(self, record_id: str, item: VaultItem) -> DecryptedItem:
        """Reseal the whole item under a fresh nonce and replace the record.

        Envelopes are not field-addressable, so even a one-field edit
        resubmits everything.
        """
        key = self._keys.require_key()
        generation = self._keys.generation
        envelope = self._codec.encrypt(item, key)
        record = await self._store.update_record(self._owner_id, record_id, envelope)
        decrypted = self._decrypted(record, item)
        self.ensure_generation(generation)
        self._items = [d for d in self._items if d.id != record_id]
        self._items.insert(0, decrypted)
        logger.debug("Vault update: owner=%s id=%s", self._owner_id, record_id)
        return decrypted

    async def delete(self, record_id: str) -> None:
        """Hard-delete a record."""
        self._keys.require_key()
        await self._store.delete_record(self._owner_id, record_id)
        self._items = [d for d in self._items if d.id != record_id]
        logger.debug("Vault delete: owner=%s id=%s", self._owner_id, record_id)

    def search(self, term: str) -> List[DecryptedItem]:
        """Filter the decrypted view on title, username and url."""
        if not term:
            return list(self._items)
        return [d for d in self._items if d.item.matches(term)]
