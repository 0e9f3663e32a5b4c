"""In-process storage backends, used by the HTTP server and in tests."""
import uuid
import logging
import itertools
from typing import Optional
from datetime import datetime, timezone

from ..vault.exceptions import RecordNotFound, SaltAlreadyExists
from ..vault.models import Envelope, VaultRecord, title_hint as normalize_hint
from .abstract import RecordStore, SaltStore

logger = logging.getLogger("sealed_vault.storage")


class MemorySaltStore(SaltStore):
    def __init__(self):
        self._salts: dict[str, str] = {}

    async def get_salt(self, account_id: str) -> Optional[str]:
        return self._salts.get(account_id)

    async def put_salt(self, account_id: str, salt: str) -> None:
        if account_id in self._salts:
            raise SaltAlreadyExists(f"Account {account_id} already has a salt")
        self._salts[account_id] = salt


class MemoryRecordStore(RecordStore):
    """Dict-backed record store.

    Listing order is ``updated_at`` descending, with the write sequence as
    tiebreak so records written within the same clock tick keep a stable order.
    """

    def __init__(self):
        self._records: dict[str, VaultRecord] = {}
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count(1)

    @staticmethod
    def _validate(envelope: Envelope) -> None:
        if not envelope.cipher or not envelope.iv:
            raise ValueError("Cipher and IV are required")

    @staticmethod
    def _hint(envelope: Envelope) -> Optional[str]:
        if envelope.title_hint is None:
            return None
        return normalize_hint(envelope.title_hint)

    def _owned(self, owner_id: str, record_id: str) -> VaultRecord:
        record = self._records.get(record_id)
        if record is None or record.owner_id != owner_id:
            raise RecordNotFound(f"Vault item {record_id} not found")
        return record

    async def list_records(
        self, owner_id: str, title_hint: Optional[str] = None
    ) -> list[VaultRecord]:
        records = [r for r in self._records.values() if r.owner_id == owner_id]
        if title_hint:
            needle = normalize_hint(title_hint)
            records = [r for r in records if r.title_hint and needle in r.title_hint]
        records.sort(
            key=lambda r: (r.updated_at, self._sequence[r.id]), reverse=True,
        )
        return records

    async def create_record(self, owner_id: str, envelope: Envelope) -> VaultRecord:
        self._validate(envelope)
        now = datetime.now(timezone.utc)
        record = VaultRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            cipher=envelope.cipher,
            iv=envelope.iv,
            title_hint=self._hint(envelope),
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        self._sequence[record.id] = next(self._counter)
        logger.debug("Record created: owner=%s id=%s", owner_id, record.id)
        return record

    async def update_record(
        self, owner_id: str, record_id: str, envelope: Envelope
    ) -> VaultRecord:
        self._validate(envelope)
        current = self._owned(owner_id, record_id)
        record = current.model_copy(update={
            "cipher": envelope.cipher,
            "iv": envelope.iv,
            "title_hint": self._hint(envelope),
            "updated_at": datetime.now(timezone.utc),
        })
        self._records[record_id] = record
        self._sequence[record_id] = next(self._counter)
        logger.debug("Record updated: owner=%s id=%s", owner_id, record_id)
        return record

    async def delete_record(self, owner_id: str, record_id: str) -> None:
        self._owned(owner_id, record_id)
        del self._records[record_id]
        del self._sequence[record_id]
        logger.debug("Record deleted: owner=%s id=%s", owner_id, record_id)
