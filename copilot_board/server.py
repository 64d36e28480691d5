"""aiohttp application exposing the chat and meta endpoints.

Every JSON response carries ``success``; failures add ``error``.  Besides the
two LLM-backed endpoints the app serves the small CRUD surface the board UI
needs (conversations, message thread, meta point visibility, export).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

from copilot_board.analysis import MetaAnalyzer
from copilot_board.chat import ChatService
from copilot_board.config import Settings
from copilot_board.context import ContextBuilder
from copilot_board.errors import CopilotBoardError, NotFoundError, ValidationError
from copilot_board.llm import CompletionClient
from copilot_board.models import AnalysisExport
from copilot_board.store import ConversationStore
from copilot_board.summarizer import Summarizer

logger = logging.getLogger(__name__)

_CORS_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"
_CORS_ALLOW_METHODS = "GET, POST, PATCH, DELETE, OPTIONS"


@dataclass
class Services:
    """Components wired once at startup and shared by all requests."""

    settings: Settings
    store: ConversationStore
    chat: ChatService
    analyzer: MetaAnalyzer


def build_services(
    settings: Settings,
    store: ConversationStore | None = None,
    completion: CompletionClient | None = None,
) -> Services:
    store = store or ConversationStore(settings)
    completion = completion or CompletionClient(settings)
    summarizer = Summarizer(settings, store, completion)
    chat = ChatService(settings, store, ContextBuilder(settings, store), completion, summarizer)
    analyzer = MetaAnalyzer(settings, store, completion)
    return Services(settings=settings, store=store, chat=chat, analyzer=analyzer)


SERVICES = web.AppKey("services", Services)


# -- Helpers -----------------------------------------------------------------


def _ok(payload: dict[str, Any] | None = None, status: int = 200) -> web.Response:
    return web.json_response({**(payload or {}), "success": True}, status=status)


def _fail(message: str, status: int) -> web.Response:
    return web.json_response({"error": message, "success": False}, status=status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except Exception as exc:
        logger.warning("Bad request: invalid JSON (%s)", request.path)
        raise ValidationError("Invalid JSON in request body") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return value


def _services(request: web.Request) -> Services:
    return request.app[SERVICES]


# -- Middleware --------------------------------------------------------------


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer preflight requests and tag every response with CORS headers."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response()
    else:
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(_cors_headers(request))
            raise
    response.headers.update(_cors_headers(request))
    return response


def _cors_headers(request: web.Request) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": request.app[SERVICES].settings.cors_allow_origin,
        "Access-Control-Allow-Headers": _CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Methods": _CORS_ALLOW_METHODS,
    }


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Turn every failure into the ``{error, success: false}`` envelope."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except CopilotBoardError as exc:
        if exc.status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, exc.message)
        return _fail(exc.message, exc.status)
    except Exception as exc:
        logger.exception("%s %s failed", request.method, request.path)
        return _fail(str(exc), 500)


# -- LLM endpoints -----------------------------------------------------------


async def _handle_chat(request: web.Request) -> web.Response:
    """POST /chat: answer one user message."""
    payload = await _read_json(request)
    message = payload.get("message")
    conversation_id = payload.get("conversation_id")
    if not isinstance(message, str) or not isinstance(conversation_id, str):
        raise ValidationError("Message and conversation_id are required")

    record = await _services(request).chat.send(conversation_id, message)
    return _ok({"message": record.assistant_message, "record": record.to_dict()})


async def _handle_meta(request: web.Request) -> web.Response:
    """POST /meta: refresh the meta analysis (optionally only some categories)."""
    payload = await _read_json(request)
    conversation_id = _required_str(payload, "conversation_id")
    categories = payload.get("categories")
    if categories is not None and not isinstance(categories, list):
        raise ValidationError("categories must be a list of category names")

    result = await _services(request).analyzer.analyze(conversation_id, categories)
    return _ok(result.to_dict())


# -- Conversations -----------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


async def _list_conversations(request: web.Request) -> web.Response:
    conversations = await _services(request).store.list_conversations()
    return _ok({"conversations": [c.to_dict() for c in conversations]})


async def _create_conversation(request: web.Request) -> web.Response:
    payload = await _read_json(request) if request.can_read_body else {}
    title = payload.get("title")
    if title is not None and not isinstance(title, str):
        raise ValidationError("title must be a string")
    conversation = await _services(request).store.create_conversation(title)
    return _ok({"conversation": conversation.to_dict()}, status=201)


async def _get_conversation(request: web.Request) -> web.Response:
    conversation_id = request.match_info["conversation_id"]
    conversation = await _services(request).store.get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError(f"Conversation not found: {conversation_id}")
    return _ok({"conversation": conversation.to_dict()})


async def _rename_conversation(request: web.Request) -> web.Response:
    payload = await _read_json(request)
    title = _required_str(payload, "title")
    conversation = await _services(request).store.rename_conversation(
        request.match_info["conversation_id"], title.strip()
    )
    return _ok({"conversation": conversation.to_dict()})


async def _list_messages(request: web.Request) -> web.Response:
    messages = await _services(request).store.list_messages(request.match_info["conversation_id"])
    return _ok({"messages": [m.to_dict() for m in messages]})


# -- Meta points -------------------------------------------------------------


async def _list_points(request: web.Request) -> web.Response:
    hidden = request.query.get("hidden", "false").lower() in ("1", "true", "yes")
    points = await _services(request).store.list_points(
        request.match_info["conversation_id"], hidden=hidden
    )
    return _ok({"points": [p.to_dict() for p in points]})


async def _hide_point(request: web.Request) -> web.Response:
    point = await _services(request).store.set_point_hidden(request.match_info["point_id"], True)
    return _ok({"point": point.to_dict()})


async def _restore_point(request: web.Request) -> web.Response:
    point = await _services(request).store.set_point_hidden(request.match_info["point_id"], False)
    return _ok({"point": point.to_dict()})


async def _delete_point(request: web.Request) -> web.Response:
    point = await _services(request).store.delete_point(request.match_info["point_id"])
    return _ok({"point": point.to_dict()})


async def _export_analysis(request: web.Request) -> web.Response:
    """GET /conversations/{id}/export: download the current analysis as JSON."""
    analysis = await _services(request).analyzer.current(request.match_info["conversation_id"])
    document = AnalysisExport.from_analysis(analysis)
    filename = f"copilot-board-analysis-{datetime.now(UTC).date().isoformat()}.json"
    return web.Response(
        text=document.to_json(),
        content_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app(services: Services) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[SERVICES] = services

    app.router.add_get("/health", _health)
    app.router.add_post("/chat", _handle_chat)
    app.router.add_post("/meta", _handle_meta)

    app.router.add_get("/conversations", _list_conversations)
    app.router.add_post("/conversations", _create_conversation)
    app.router.add_get("/conversations/{conversation_id}", _get_conversation)
    app.router.add_patch("/conversations/{conversation_id}", _rename_conversation)
    app.router.add_get("/conversations/{conversation_id}/messages", _list_messages)
    app.router.add_get("/conversations/{conversation_id}/points", _list_points)
    app.router.add_get("/conversations/{conversation_id}/export", _export_analysis)

    app.router.add_post("/points/{point_id}/hide", _hide_point)
    app.router.add_post("/points/{point_id}/restore", _restore_point)
    app.router.add_delete("/points/{point_id}", _delete_point)
    return app
