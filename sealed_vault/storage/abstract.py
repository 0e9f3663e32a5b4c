"""
Persistence collaborators.

The vault core only needs two things from storage: a place to keep each
account's public salt, and an owner-scoped store of opaque records.
Implementations must enforce owner matching themselves; callers are not
trusted to filter.
"""
from abc import ABC, abstractmethod
from typing import Optional

from ..vault.models import Envelope, VaultRecord


class SaltStore(ABC):
    """Per-account public salt storage."""

    @abstractmethod
    async def get_salt(self, account_id: str) -> Optional[str]:
        """Return the base64 salt of an account, or None if unknown."""

    @abstractmethod
    async def put_salt(self, account_id: str, salt: str) -> None:
        """Store a salt. Insert-only.

        Raises:
            SaltAlreadyExists: If the account already has a salt.
        """


class RecordStore(ABC):
    """Owner-scoped store of sealed vault records."""

    @abstractmethod
    async def list_records(
        self, owner_id: str, title_hint: Optional[str] = None
    ) -> list[VaultRecord]:
        """All records of an owner, most recently updated first.

        Args:
            owner_id: Authenticated owner.
            title_hint: Optional substring filter on the stored title hint.
        """

    @abstractmethod
    async def create_record(self, owner_id: str, envelope: Envelope) -> VaultRecord:
        """Store a new record; the store assigns id and timestamps."""

    @abstractmethod
    async def update_record(
        self, owner_id: str, record_id: str, envelope: Envelope
    ) -> VaultRecord:
        """Replace a record's envelope in full.

        Raises:
            RecordNotFound: Unknown id or owner mismatch.
        """

    @abstractmethod
    async def delete_record(self, owner_id: str, record_id: str) -> None:
        """Hard-delete a record.

        Raises:
            RecordNotFound: Unknown id or owner mismatch.
        """
