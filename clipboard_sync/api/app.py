"""
HTTP and WebSocket surface for the clipboard service.

A thin aiohttp application: every handler parses JSON, calls one
ClipboardService operation and serializes the result. Errors from the
service are mapped to status codes by a middleware:

    SessionNotFoundError -> 404 NOT_FOUND
    ValidationError      -> 400 INVALID_INPUT
    ConflictError        -> 409 CONFLICT
    StoreFailure         -> 503 STORE_FAILURE
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from ..config import ClipboardConfig
from ..exceptions import (
    ClipboardSyncError,
    ConflictError,
    SessionNotFoundError,
    StoreFailure,
    ValidationError,
)
from ..id_utils import build_share_link, parse_link_token
from ..ledger.service import ClipboardService
from ..protocol import HistoryItem
from ..sync.server import RelayServer

logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("service", ClipboardService)
CONFIG_KEY = web.AppKey("config", ClipboardConfig)
RELAY_KEY = web.AppKey("relay", RelayServer)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_ERROR_STATUS: list[tuple[type[ClipboardSyncError], int, str]] = [
    (SessionNotFoundError, 404, "NOT_FOUND"),
    (ValidationError, 400, "INVALID_INPUT"),
    (ConflictError, 409, "CONFLICT"),
    (StoreFailure, 503, "STORE_FAILURE"),
]


# =============================================================================
# Helpers
# =============================================================================


def error_response(error: ClipboardSyncError) -> web.Response:
    status, code = 500, "INTERNAL"
    for error_type, error_status, error_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            status, code = error_status, error_code
            break
    return web.json_response(
        {"error": code, "message": error.message, "details": error.details},
        status=status,
    )


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except ClipboardSyncError as e:
        response = error_response(e)
        if response.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        else:
            logger.debug(f"{request.method} {request.path} -> {response.status}: {e.message}")
        return response


async def read_json(request: web.Request) -> dict[str, Any]:
    """Request body as a JSON object; an empty body reads as {}."""
    if not request.body_exists:
        return {}
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("body", "must be valid UTF-8 JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("body", "must be a JSON object")
    return data


def _service(request: web.Request) -> ClipboardService:
    return request.app[SERVICE_KEY]


def _version(request: web.Request) -> int:
    # Route pattern guarantees digits
    return int(request.match_info["version"])


# =============================================================================
# Session Handlers
# =============================================================================


async def create_session(request: web.Request) -> web.Response:
    created = await _service(request).create_session()
    base_url = request.app[CONFIG_KEY].public_base_url or str(request.url.origin())
    body = created.to_dict()
    body["link"] = build_share_link(base_url, created.link_token)
    return web.json_response(body, status=201)


async def get_session(request: web.Request) -> web.Response:
    info = await _service(request).get_session_by_code(request.match_info["code"])
    return web.json_response(info.to_dict())


async def join_session(request: web.Request) -> web.Response:
    try:
        token = parse_link_token(request.match_info["token"])
    except ValueError:
        raise ValidationError("link_token", "must not be empty") from None
    info = await _service(request).join_by_link_token(token)
    return web.json_response(info.to_dict())


async def update_prefs(request: web.Request) -> web.Response:
    body = await read_json(request)
    info = await _service(request).update_session_prefs(
        request.match_info["code"],
        auto_format=body.get("auto_format"),
        lang_hint=body.get("lang_hint"),
    )
    return web.json_response(info.to_dict())


async def toggle_history(request: web.Request) -> web.Response:
    allow = await _service(request).toggle_history(request.match_info["code"])
    return web.json_response({"allow_history": allow})


# =============================================================================
# Version Handlers
# =============================================================================


async def update_clipboard(request: web.Request) -> web.Response:
    body = await read_json(request)
    result = await _service(request).update_clipboard(
        request.match_info["code"],
        body.get("ciphertext"),
        body.get("replace_latest", False),
        lang_hint=body.get("lang_hint"),
        expected_version=body.get("expected_version"),
    )
    return web.json_response(result.to_dict())


async def get_history(request: web.Request) -> web.Response:
    records = await _service(request).get_history(request.match_info["code"])
    items = [HistoryItem.from_record(record).to_dict() for record in records]
    return web.json_response({"items": items})


async def get_latest(request: web.Request) -> web.Response:
    latest = await _service(request).latest_ciphertext(request.match_info["code"])
    return web.json_response(latest.to_dict())


async def delete_version(request: web.Request) -> web.Response:
    deleted = await _service(request).delete_history(request.match_info["code"], _version(request))
    return web.json_response({"deleted": deleted})


async def delete_versions(request: web.Request) -> web.Response:
    body = await read_json(request)
    deleted = await _service(request).delete_history_batch(
        request.match_info["code"], body.get("versions")
    )
    return web.json_response({"deleted": deleted})


async def restore_versions(request: web.Request) -> web.Response:
    body = await read_json(request)
    restored = await _service(request).restore_history_items(
        request.match_info["code"], body.get("items")
    )
    return web.json_response({"restored": restored})


async def edit_version(request: web.Request) -> web.Response:
    body = await read_json(request)
    result = await _service(request).update_history_version(
        request.match_info["code"],
        _version(request),
        body.get("ciphertext"),
        lang_hint=body.get("lang_hint"),
    )
    return web.json_response(result.to_dict())


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "connections": len(request.app[RELAY_KEY].rooms)})


# =============================================================================
# Application
# =============================================================================


def create_app(
    service: ClipboardService,
    config: ClipboardConfig | None = None,
    relay: RelayServer | None = None,
) -> web.Application:
    """Build the aiohttp application around a ready service.

    Args:
        service: Initialized clipboard service
        config: Runtime config; defaults to the service's config
        relay: Broadcast relay to mount at /ws; a fresh one by default
    """
    config = config or service.config
    app = web.Application(middlewares=[error_middleware], client_max_size=config.max_body_bytes)
    app[SERVICE_KEY] = service
    app[CONFIG_KEY] = config
    app[RELAY_KEY] = relay or RelayServer()

    app.router.add_get("/health", health)
    app.router.add_get("/ws", app[RELAY_KEY].websocket_endpoint)

    app.router.add_post("/session", create_session)
    app.router.add_get("/session/{code}", get_session)
    app.router.add_get("/join/{token}", join_session)
    app.router.add_post("/session/{code}/prefs", update_prefs)

    app.router.add_post("/session/{code}/update", update_clipboard)
    app.router.add_get("/session/{code}/latest", get_latest)
    app.router.add_get("/session/{code}/history", get_history)
    # Fixed segments first; /history/{version} would otherwise shadow them
    app.router.add_post("/session/{code}/history/toggle", toggle_history)
    app.router.add_post("/session/{code}/history/delete", delete_versions)
    app.router.add_post("/session/{code}/history/restore", restore_versions)
    app.router.add_post(r"/session/{code}/history/{version:\d+}", edit_version)
    app.router.add_delete(r"/session/{code}/history/{version:\d+}", delete_version)

    return app


async def build_app(config: ClipboardConfig | None = None) -> web.Application:
    """Open the store described by config and return a ready application."""
    config = config or ClipboardConfig.from_env()
    service = await ClipboardService.create(config)
    app = create_app(service, config)

    async def close_service(app: web.Application) -> None:
        await app[SERVICE_KEY].close()

    app.on_cleanup.append(close_service)
    return app
