"""
Vault data model.

``VaultItem`` is the plaintext shape that only ever exists on the client.
``Envelope`` and ``VaultRecord`` are what travels to and from the
persistence API: base64 ciphertext, base64 nonce, and the title hint,
which is the single plaintext fragment the server is allowed to see.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


def title_hint(title: str) -> str:
    """Normalize a title into its searchable hint (trimmed, lowercased)."""
    return title.strip().lower()


class VaultItem(BaseModel):
    """Plaintext credential record.

    Field order is the canonical serialization order.
    """

    title: str
    username: str = ""
    password: str = Field(default="", repr=False)
    url: str = ""
    notes: str = Field(default="", repr=False)

    model_config = {"extra": "forbid", "frozen": True, "strict": True}

    @property
    def title_hint(self) -> str:
        return title_hint(self.title)

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on title, username and url."""
        needle = term.lower()
        return (
            needle in self.title.lower()
            or needle in self.username.lower()
            or needle in self.url.lower()
        )


class Envelope(BaseModel):
    """Sealed form of a ``VaultItem``."""

    cipher: str
    iv: str
    title_hint: Optional[str] = Field(default=None, alias="titleHint")

    model_config = {"populate_by_name": True, "frozen": True}

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class VaultRecord(BaseModel):
    """Persisted record, opaque to the server."""

    id: str
    owner_id: str = Field(alias="ownerId")
    cipher: str
    iv: str
    title_hint: Optional[str] = Field(default=None, alias="titleHint")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = {"populate_by_name": True}

    @property
    def envelope(self) -> Envelope:
        return Envelope(cipher=self.cipher, iv=self.iv, title_hint=self.title_hint)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class DecryptedItem(BaseModel):
    """A record opened with the session key."""

    id: str
    item: VaultItem
    created_at: datetime
    updated_at: datetime


class ItemFailure(BaseModel):
    """A record that could not be opened; reported, never retried."""

    record_id: str
    error: str
    message: str


class ListResult(BaseModel):
    items: list[DecryptedItem] = Field(default_factory=list)
    failures: list[ItemFailure] = Field(default_factory=list)
