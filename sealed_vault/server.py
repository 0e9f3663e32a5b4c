"""
Vault HTTP API - a dumb store of opaque records.

Routes:
    POST   /accounts/{account_id}     register the account salt
    GET    /crypto/salt/{account_id}  public salt, available before login
    GET    /vault[?q=hint]            owner's records, newest first
    POST   /vault                     store a sealed record
    PUT    /vault/{record_id}         replace a sealed record
    DELETE /vault/{record_id}         hard delete

The server never sees plaintext or keys. Who the owner is comes from a
pluggable resolver; authenticating that owner is the job of whatever sits
in front of this application.
"""
import logging
from typing import Callable, Optional

import orjson
from aiohttp import web
from pydantic import ValidationError

from .storage import RecordStore
from .vault.config import DEFAULT_OWNER_HEADER
from .vault.exceptions import (
    RecordNotFound,
    SaltAlreadyExists,
    UnknownAccount,
    VaultError,
)
from .vault.models import Envelope
from .vault.salt import SaltRegistry

logger = logging.getLogger("sealed_vault.server")

OwnerResolver = Callable[[web.Request], Optional[str]]

RECORDS_KEY = web.AppKey("records", RecordStore)
SALTS_KEY = web.AppKey("salts", SaltRegistry)
OWNER_RESOLVER_KEY = web.AppKey("owner_resolver", object)


def _dumps(obj) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_response(data, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def error_response(message: str, status: int) -> web.Response:
    return json_response({"error": message}, status=status)


def header_owner(header: str = DEFAULT_OWNER_HEADER) -> OwnerResolver:
    """Owner resolver reading the owner id from a request header."""
    def resolve(request: web.Request) -> Optional[str]:
        return request.headers.get(header) or None
    return resolve


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except (RecordNotFound, UnknownAccount) as err:
        return error_response(str(err), 404)
    except SaltAlreadyExists as err:
        return error_response(str(err), 409)
    except ValueError as err:
        return error_response(str(err), 400)
    except VaultError as err:
        logger.error(
            "Vault error on %s %s: %s", request.method, request.path, type(err).__name__,
        )
        return error_response("Internal server error", 500)


def _owner(request: web.Request) -> str:
    owner_id = request.app[OWNER_RESOLVER_KEY](request)
    if not owner_id:
        raise web.HTTPUnauthorized(
            text=_dumps({"error": "Authentication required"}),
            content_type="application/json",
        )
    return owner_id


async def _envelope(request: web.Request) -> Envelope:
    try:
        body = await request.json(loads=orjson.loads)
    except orjson.JSONDecodeError:
        raise ValueError("Request body must be JSON") from None
    if not isinstance(body, dict) or not body.get("cipher") or not body.get("iv"):
        raise ValueError("Cipher and IV are required")
    try:
        return Envelope.model_validate(body)
    except ValidationError:
        raise ValueError("Invalid vault record") from None


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def register_account(request: web.Request) -> web.Response:
    account_id = request.match_info["account_id"]
    salt = await request.app[SALTS_KEY].register(account_id)
    return json_response({"salt": salt}, status=201)


async def get_salt(request: web.Request) -> web.Response:
    account_id = request.match_info["account_id"]
    salt = await request.app[SALTS_KEY].get_salt(account_id)
    return json_response({"salt": salt})


async def list_items(request: web.Request) -> web.Response:
    owner_id = _owner(request)
    hint = request.query.get("q") or None
    records = await request.app[RECORDS_KEY].list_records(owner_id, title_hint=hint)
    return json_response([r.to_wire() for r in records])


async def create_item(request: web.Request) -> web.Response:
    owner_id = _owner(request)
    envelope = await _envelope(request)
    record = await request.app[RECORDS_KEY].create_record(owner_id, envelope)
    return json_response(record.to_wire(), status=201)


async def update_item(request: web.Request) -> web.Response:
    owner_id = _owner(request)
    envelope = await _envelope(request)
    record = await request.app[RECORDS_KEY].update_record(
        owner_id, request.match_info["record_id"], envelope,
    )
    return json_response(record.to_wire())


async def delete_item(request: web.Request) -> web.Response:
    owner_id = _owner(request)
    await request.app[RECORDS_KEY].delete_record(
        owner_id, request.match_info["record_id"],
    )
    return json_response({"success": True})


def create_app(
    records: RecordStore,
    salts: SaltRegistry,
    owner_resolver: Optional[OwnerResolver] = None,
) -> web.Application:
    """Build the vault API application.

    Args:
        records: Record store; enforces owner matching.
        salts: Salt registry for account salts.
        owner_resolver: Maps a request to its authenticated owner id.
            Defaults to reading the ``X-Vault-Owner`` header.
    """
    app = web.Application(middlewares=[error_middleware])
    app[RECORDS_KEY] = records
    app[SALTS_KEY] = salts
    app[OWNER_RESOLVER_KEY] = owner_resolver or header_owner()
    app.router.add_post("/accounts/{account_id}", register_account)
    app.router.add_get("/crypto/salt/{account_id}", get_salt)
    app.router.add_get("/vault", list_items)
    app.router.add_post("/vault", create_item)
    app.router.add_put("/vault/{record_id}", update_item)
    app.router.add_delete("/vault/{record_id}", delete_item)
    return app
