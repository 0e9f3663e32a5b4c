import base64

import pytest

from sealed_vault.data import TabStorage
from sealed_vault.storage import MemoryRecordStore, MemorySaltStore
from sealed_vault.vault import (
    KeyDerivationService,
    SaltRegistry,
    SessionKeyManager,
    VaultItem,
    VaultSyncAdapter,
)

ZERO_SALT = bytes(32)
PASSWORD = "correct horse"
ACCOUNT = "alice@example.com"


class StaticSaltSource:
    """Salt source that always serves the same salt."""

    def __init__(self, salt: bytes = ZERO_SALT):
        self.salt = salt
        self.calls = 0

    async def fetch_salt(self, account_id: str) -> bytes:
        self.calls += 1
        return self.salt


@pytest.fixture(scope="session")
def kdf():
    return KeyDerivationService()


@pytest.fixture(scope="session")
def key(kdf):
    """Key for (PASSWORD, 32 zero bytes)."""
    return kdf.derive_key(PASSWORD, ZERO_SALT)


@pytest.fixture(scope="session")
def other_key(kdf):
    return kdf.derive_key("wrong horse", ZERO_SALT)


@pytest.fixture
def bank_item():
    return VaultItem(
        title="Bank",
        username="alice",
        password="p@ss",
        url="https://bank.example",
        notes="",
    )


@pytest.fixture
def tab_storage():
    return TabStorage()


@pytest.fixture
def salt_store():
    return MemorySaltStore()


@pytest.fixture
def registry(salt_store):
    return SaltRegistry(salt_store)


@pytest.fixture
def record_store():
    return MemoryRecordStore()


@pytest.fixture
def manager(kdf, tab_storage):
    return SessionKeyManager(
        ACCOUNT, StaticSaltSource(), storage=tab_storage, kdf=kdf,
    )


@pytest.fixture
async def unlocked(manager):
    await manager.acquire(PASSWORD)
    return manager


@pytest.fixture
def adapter(record_store, unlocked):
    return VaultSyncAdapter(record_store, unlocked, owner_id=ACCOUNT)


def flip_byte(value: str, index: int = 0) -> str:
    """Flip one bit of the decoded bytes of a base64 string."""
    raw = bytearray(base64.b64decode(value))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")
