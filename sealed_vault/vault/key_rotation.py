"""
Vault Key Rotation - Re-seal every record when the master password changes.

The account salt is immutable, so a new password gives a new key from the
same salt. Every record that opens under the current key is resealed in
full under the new key (fresh nonce) and submitted in batches. If a
submission fails, records already replaced are rolled back to their
original envelopes before the error propagates, and the current key stays
installed. Records that do not open under the current key are counted as
errors and left untouched.

Security Note:
    Plaintext exists in memory only while its record is being resealed.
    Never log plaintext or ciphertext values. Updating the server-side
    authentication hash for the new password is not handled here.
"""
import logging

from .exceptions import DecryptionError, RotationIncomplete
from .models import Envelope
from .sync import VaultSyncAdapter

logger = logging.getLogger("sealed_vault.vault")


async def rotate_master_password(
    adapter: VaultSyncAdapter,
    new_password: str,
    batch_size: int = 100,
) -> dict:
    """Re-seal all of the owner's records under the key of ``new_password``.

    Args:
        adapter: Adapter of the active session (current key installed).
        new_password: The new master password.
        batch_size: Number of records submitted per batch.

    Returns:
        Stats dict with keys: total, rotated, errors.

    Raises:
        KeyAbsent: If no key is installed, or the session was cleared
            during rotation.
        RotationIncomplete: If the rollback itself could not restore every
            record; ``record_ids`` lists those left under the new key.
        VaultError: If the store rejects a replacement (after rollback).
    """
    keys = adapter.keys
    codec = adapter.codec
    store = adapter.store
    owner_id = adapter.owner_id

    old_key = keys.require_key()
    generation = keys.generation
    new_key = await keys.derive(new_password)

    submitted: list[tuple[str, Envelope]] = []
    installed = False
    try:
        records = await store.list_records(owner_id)
        stats = {"total": len(records), "rotated": 0, "errors": 0}
        logger.info(
            "Starting master password rotation for owner=%s (%d record(s), batch_size=%d)",
            owner_id, len(records), batch_size,
        )
        resealed = _reseal(codec, records, old_key, new_key, stats)

        for offset in range(0, len(resealed), batch_size):
            batch = resealed[offset:offset + batch_size]
            logger.info(
                "Processing batch %d (%d record(s))",
                (offset // batch_size) + 1, len(batch),
            )
            for record_id, original, envelope in batch:
                adapter.ensure_generation(generation)
                await store.update_record(owner_id, record_id, envelope)
                submitted.append((record_id, original))
                stats["rotated"] += 1
        # a logout during the last submission must not re-authenticate
        adapter.ensure_generation(generation)
        keys.install(new_key)
        installed = True
    except Exception as err:
        logger.error(
            "Rotation failed after %d record(s) for owner=%s: %s; rolling back",
            len(submitted), owner_id, type(err).__name__,
        )
        unrestored = await _roll_back(store, owner_id, submitted)
        if unrestored:
            raise RotationIncomplete(
                f"Rotation failed ({type(err).__name__}) and {len(unrestored)} "
                "record(s) remain sealed under the new password",
                unrestored,
            ) from err
        raise
    finally:
        if not installed:
            new_key.destroy()

    logger.info("Master password rotation complete: %s", stats)
    return stats


def _reseal(codec, records, old_key, new_key, stats: dict) -> list:
    """Open each record under the old key and seal it under the new one."""
    resealed: list[tuple[str, Envelope, Envelope]] = []
    for record in records:
        try:
            item = codec.decrypt(record.envelope, old_key)
        except DecryptionError as err:
            logger.error(
                "Cannot open record id=%s for rotation: %s",
                record.id, type(err).__name__,
            )
            stats["errors"] += 1
            continue
        resealed.append((record.id, record.envelope, codec.encrypt(item, new_key)))
    return resealed


async def _roll_back(store, owner_id: str, submitted: list) -> list:
    """Restore original envelopes, newest first; return ids left unrestored."""
    unrestored = []
    for record_id, original in reversed(submitted):
        try:
            await store.update_record(owner_id, record_id, original)
        except Exception as err:
            logger.error(
                "Rollback failed for record id=%s: %s", record_id, type(err).__name__,
            )
            unrestored.append(record_id)
    return unrestored
