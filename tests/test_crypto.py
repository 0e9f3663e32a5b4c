"""
Tests for key derivation and the encryption envelope.

Tests cover:
- Deterministic PBKDF2 derivation and salt validation
- DerivedKey encapsulation (no repr leak, no pickling, destroy)
- Envelope seal/open, fresh nonces, title hint
- Tamper, wrong-key and wire-format failures
"""
import copy
import base64
import pickle

import orjson
import pytest

from sealed_vault.vault import (
    DerivationInputError,
    DerivedKey,
    Envelope,
    EnvelopeCodec,
    EnvelopeFormatError,
    KeyAbsent,
    KeyDerivationService,
    MalformedPlaintext,
    SealFailure,
    TagVerificationFailure,
    VaultItem,
    deserialize_item,
    serialize_item,
)
from sealed_vault.vault.crypto import NONCE_SIZE, TAG_SIZE

from conftest import PASSWORD, ZERO_SALT, flip_byte


@pytest.fixture
def codec():
    return EnvelopeCodec()


def _seal_raw(key, payload: bytes) -> Envelope:
    """Seal arbitrary bytes, bypassing item serialization."""
    nonce = bytes(range(NONCE_SIZE))
    return Envelope(
        cipher=base64.b64encode(key.seal(nonce, payload)).decode(),
        iv=base64.b64encode(nonce).decode(),
        title_hint=None,
    )


# --- Key derivation ---

class TestKeyDerivation:

    def test_derivation_is_deterministic(self, kdf, key, codec, bank_item):
        """A key derived again from the same inputs opens the same envelope."""
        again = kdf.derive_key(PASSWORD, ZERO_SALT)
        envelope = codec.encrypt(bank_item, key)
        assert codec.decrypt(envelope, again) == bank_item

    def test_different_salt_gives_different_key(self, kdf, key, codec, bank_item):
        salted = kdf.derive_key(PASSWORD, b"\x01" * 32)
        envelope = codec.encrypt(bank_item, key)
        with pytest.raises(TagVerificationFailure):
            codec.decrypt(envelope, salted)

    def test_missing_salt_fails_closed(self, kdf):
        with pytest.raises(DerivationInputError):
            kdf.derive_key(PASSWORD, None)

    @pytest.mark.parametrize("salt", [b"", b"\x00" * 16, b"\x00" * 33])
    def test_wrong_salt_length_fails(self, kdf, salt):
        with pytest.raises(DerivationInputError):
            kdf.derive_key(PASSWORD, salt)

    def test_salt_must_be_bytes(self, kdf):
        with pytest.raises(DerivationInputError):
            kdf.derive_key(PASSWORD, "0" * 32)

    def test_password_must_be_string(self, kdf):
        with pytest.raises(DerivationInputError):
            kdf.derive_key(None, ZERO_SALT)

    async def test_async_derivation(self, kdf, key, codec, bank_item):
        derived = await kdf.derive_key_async(PASSWORD, ZERO_SALT)
        assert codec.decrypt(codec.encrypt(bank_item, key), derived) == bank_item

    def test_chacha20_backend(self, bank_item, codec):
        kdf = KeyDerivationService(cipher_backend="chacha20")
        key = kdf.derive_key(PASSWORD, ZERO_SALT)
        assert codec.decrypt(codec.encrypt(bank_item, key), key) == bank_item

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            KeyDerivationService(cipher_backend="des")


# --- DerivedKey encapsulation ---

class TestDerivedKey:

    def test_repr_does_not_expose_material(self, key):
        assert repr(key) == "<DerivedKey [active]>"
        assert str(key) == "<DerivedKey [active]>"

    def test_no_raw_key_attribute(self, key):
        assert not hasattr(key, "__dict__")
        assert not hasattr(key, "key")

    def test_cannot_pickle(self, key):
        with pytest.raises(TypeError):
            pickle.dumps(key)

    def test_cannot_copy(self, key):
        with pytest.raises(TypeError):
            copy.copy(key)
        with pytest.raises(TypeError):
            copy.deepcopy(key)

    def test_destroy(self, kdf, codec, bank_item):
        key = kdf.derive_key(PASSWORD, ZERO_SALT)
        envelope = codec.encrypt(bank_item, key)
        key.destroy()
        assert key.destroyed is True
        assert repr(key) == "<DerivedKey [destroyed]>"
        with pytest.raises(KeyAbsent):
            codec.encrypt(bank_item, key)
        with pytest.raises(KeyAbsent):
            codec.decrypt(envelope, key)

    def test_key_length_enforced(self):
        with pytest.raises(ValueError):
            DerivedKey(b"\x00" * 16)


# --- Envelope ---

class TestEnvelopeCodec:

    def test_bank_scenario_roundtrip(self, codec, key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        opened = codec.decrypt(envelope, key)
        assert opened == bank_item
        assert opened.model_dump() == {
            "title": "Bank",
            "username": "alice",
            "password": "p@ss",
            "url": "https://bank.example",
            "notes": "",
        }

    def test_wire_format(self, codec, key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        assert len(base64.b64decode(envelope.iv)) == NONCE_SIZE
        sealed = base64.b64decode(envelope.cipher)
        assert len(sealed) == len(serialize_item(bank_item)) + TAG_SIZE
        assert envelope.to_wire() == {
            "cipher": envelope.cipher,
            "iv": envelope.iv,
            "titleHint": "bank",
        }

    def test_fresh_nonce_every_call(self, codec, key, bank_item):
        first = codec.encrypt(bank_item, key)
        second = codec.encrypt(bank_item, key)
        assert first.iv != second.iv
        assert first.cipher != second.cipher
        assert first.title_hint == second.title_hint

    def test_title_hint_normalized(self, codec, key):
        item = VaultItem(title="  Gmail Account  ", username="bob")
        assert codec.encrypt(item, key).title_hint == "gmail account"

    def test_plaintext_not_in_envelope(self, codec, key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        wire = orjson.dumps(envelope.to_wire())
        assert b"p@ss" not in wire
        assert b"alice" not in wire

    def test_wrong_key(self, codec, key, other_key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        with pytest.raises(TagVerificationFailure):
            codec.decrypt(envelope, other_key)

    def test_flipped_cipher_byte(self, codec, key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        size = len(base64.b64decode(envelope.cipher))
        for index in (0, size // 2, size - 1):
            tampered = envelope.model_copy(
                update={"cipher": flip_byte(envelope.cipher, index)}
            )
            with pytest.raises(TagVerificationFailure):
                codec.decrypt(tampered, key)

    def test_flipped_iv_byte(self, codec, key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        for index in range(NONCE_SIZE):
            tampered = envelope.model_copy(
                update={"iv": flip_byte(envelope.iv, index)}
            )
            with pytest.raises(TagVerificationFailure):
                codec.decrypt(tampered, key)

    def test_iv_wrong_length(self, codec, key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        short = base64.b64encode(base64.b64decode(envelope.iv)[:-1]).decode()
        with pytest.raises(EnvelopeFormatError):
            codec.decrypt(envelope.model_copy(update={"iv": short}), key)

    def test_cipher_shorter_than_tag(self, codec, key, bank_item):
        envelope = codec.encrypt(bank_item, key)
        stub = base64.b64encode(b"\x00" * (TAG_SIZE - 1)).decode()
        with pytest.raises(EnvelopeFormatError):
            codec.decrypt(envelope.model_copy(update={"cipher": stub}), key)

    @pytest.mark.parametrize("value", ["", "not base64!", "abc"])
    def test_invalid_base64(self, codec, key, bank_item, value):
        envelope = codec.encrypt(bank_item, key)
        with pytest.raises(EnvelopeFormatError):
            codec.decrypt(envelope.model_copy(update={"cipher": value}), key)

    def test_no_key(self, codec, bank_item):
        with pytest.raises(KeyAbsent):
            codec.encrypt(bank_item, None)

    def test_seal_failure_is_wrapped(self, codec, bank_item):
        class BrokenKey:
            def seal(self, nonce, data):
                raise OverflowError("boom")

        with pytest.raises(SealFailure) as exc:
            codec.encrypt(bank_item, BrokenKey())
        assert isinstance(exc.value.__cause__, OverflowError)


# --- Plaintext parsing ---

class TestMalformedPlaintext:

    def test_not_json(self, codec, key):
        with pytest.raises(MalformedPlaintext):
            codec.decrypt(_seal_raw(key, b"\xff\xfe not json"), key)

    def test_not_an_object(self, codec, key):
        with pytest.raises(MalformedPlaintext):
            codec.decrypt(_seal_raw(key, b"[1, 2, 3]"), key)

    def test_wrong_field_type(self, codec, key):
        payload = orjson.dumps({"title": 5, "password": "hunter2"})
        with pytest.raises(MalformedPlaintext) as exc:
            codec.decrypt(_seal_raw(key, payload), key)
        assert "hunter2" not in str(exc.value)
        assert exc.value.__cause__ is None

    def test_unknown_field(self):
        with pytest.raises(MalformedPlaintext):
            deserialize_item(orjson.dumps({"title": "x", "pin": "1234"}))

    def test_unknown_field_names_not_reported(self):
        payload = orjson.dumps({"title": "x", "acme-vpn-secret": "1234"})
        with pytest.raises(MalformedPlaintext) as exc:
            deserialize_item(payload)
        message = str(exc.value)
        assert "acme-vpn-secret" not in message
        assert "1234" not in message
        assert "1 unexpected field(s)" in message

    def test_declared_field_names_reported(self):
        with pytest.raises(MalformedPlaintext) as exc:
            deserialize_item(orjson.dumps({"title": 5}))
        assert "invalid fields: title" in str(exc.value)

    def test_missing_title(self):
        with pytest.raises(MalformedPlaintext):
            deserialize_item(orjson.dumps({"username": "x"}))

    def test_canonical_field_order(self, bank_item):
        assert list(orjson.loads(serialize_item(bank_item))) == [
            "title", "username", "password", "url", "notes",
        ]
