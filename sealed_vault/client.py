"""
VaultAPIClient - ``RecordStore`` and salt source over the vault HTTP API.

Network retries, if wanted, belong here or in the session passed in; the
crypto core never retries.
"""
import logging
from typing import Any, Optional

import orjson
import aiohttp

from .storage import RecordStore
from .vault.config import DEFAULT_OWNER_HEADER, VaultConfig
from .vault.exceptions import (
    RecordNotFound,
    SaltAlreadyExists,
    StorageError,
    UnknownAccount,
)
from .vault.models import Envelope, VaultRecord
from .vault.salt import decode_salt

logger = logging.getLogger("sealed_vault.client")


class VaultAPIClient(RecordStore):
    """HTTP client for the vault API.

    Usable as an async context manager; a session passed in by the caller
    is not closed by the client.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[dict] = None,
        owner_header: str = DEFAULT_OWNER_HEADER,
        timeout: float = 30.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._headers = dict(headers or {})
        self._owner_header = owner_header
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @classmethod
    def from_config(cls, config: VaultConfig, **kwargs) -> "VaultAPIClient":
        return cls(
            config.api_url,
            owner_header=config.owner_header,
            timeout=config.request_timeout,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "VaultAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        owner_id: Optional[str] = None,
        payload: Optional[dict] = None,
        params: Optional[dict] = None,
        not_found: type = RecordNotFound,
    ) -> Any:
        headers = dict(self._headers)
        if owner_id is not None:
            headers[self._owner_header] = owner_id
        data = None
        if payload is not None:
            data = orjson.dumps(payload)
            headers["Content-Type"] = "application/json"
        url = f"{self._base_url}{path}"
        try:
            async with self._get_session().request(
                method, url, data=data, headers=headers, params=params,
            ) as response:
                body = await response.read()
                status = response.status
        except aiohttp.ClientError as err:
            logger.error("Vault API %s %s failed: %s", method, path, type(err).__name__)
            raise StorageError(f"Vault API request failed: {method} {path}") from err
        try:
            result = orjson.loads(body) if body else None
        except orjson.JSONDecodeError:
            raise StorageError(f"Vault API answered {status} with a non-JSON body") from None
        if status < 400:
            return result
        message = result.get("error") if isinstance(result, dict) else None
        message = message or f"Vault API answered {status}"
        if status == 404:
            raise not_found(message)
        if status == 409:
            raise SaltAlreadyExists(message)
        raise StorageError(f"{message} ({status})")

    # ------------------------------------------------------------------
    # Salt
    # ------------------------------------------------------------------

    async def fetch_salt(self, account_id: str) -> bytes:
        """Fetch and decode the public salt of an account."""
        result = await self._request(
            "GET", f"/crypto/salt/{account_id}", not_found=UnknownAccount,
        )
        return decode_salt((result or {}).get("salt"))

    async def register_account(self, account_id: str) -> bytes:
        """Ask the server to create the account salt; returns it decoded."""
        result = await self._request("POST", f"/accounts/{account_id}")
        return decode_salt((result or {}).get("salt"))

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------

    @staticmethod
    def _record(data: Any) -> VaultRecord:
        try:
            return VaultRecord.model_validate(data)
        except ValueError:
            raise StorageError("Vault API returned an invalid record") from None

    async def list_records(
        self, owner_id: str, title_hint: Optional[str] = None
    ) -> list[VaultRecord]:
        params = {"q": title_hint} if title_hint else None
        result = await self._request("GET", "/vault", owner_id=owner_id, params=params)
        if not isinstance(result, list):
            raise StorageError("Vault API returned an invalid record list")
        return [self._record(r) for r in result]

    async def create_record(self, owner_id: str, envelope: Envelope) -> VaultRecord:
        result = await self._request(
            "POST", "/vault", owner_id=owner_id, payload=envelope.to_wire(),
        )
        return self._record(result)

    async def update_record(
        self, owner_id: str, record_id: str, envelope: Envelope
    ) -> VaultRecord:
        result = await self._request(
            "PUT", f"/vault/{record_id}", owner_id=owner_id, payload=envelope.to_wire(),
        )
        return self._record(result)

    async def delete_record(self, owner_id: str, record_id: str) -> None:
        await self._request("DELETE", f"/vault/{record_id}", owner_id=owner_id)
