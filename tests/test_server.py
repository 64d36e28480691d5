"""Tests for the HTTP surface."""

import json

from aiohttp.test_utils import TestClient, TestServer

from copilot_board.config import Settings
from copilot_board.errors import StoreError
from copilot_board.models import Analysis, AnalysisExport, Category
from copilot_board.server import build_services, create_app
from copilot_board.store import ConversationStore
from tests.conftest import FakeCompletion

ANALYSIS_JSON = json.dumps(
    {
        "kernideen": ["Begrüßung"],
        "erkenntnisse": [],
        "offene_fragen": ["Worum geht es?"],
        "todos": [],
    }
)


# -- Helpers -----------------------------------------------------------------


async def _make_client(store: ConversationStore, completion: FakeCompletion | None = None):
    """Create a TestClient for the board app."""
    services = build_services(Settings(), store=store, completion=completion or FakeCompletion())
    client = TestClient(TestServer(create_app(services)))
    await client.start_server()
    return client


# -- Health / CORS -----------------------------------------------------------


async def test_health_check(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.get("/health")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ok"
    finally:
        await client.close()


async def test_preflight(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.options("/chat")
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "content-type" in resp.headers["Access-Control-Allow-Headers"]
    finally:
        await client.close()


async def test_cors_headers_on_errors(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/chat", data="{broken")
        assert resp.status == 400
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
    finally:
        await client.close()


async def test_get_on_chat_not_allowed(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.get("/chat")
        assert resp.status == 405
    finally:
        await client.close()


# -- /chat -------------------------------------------------------------------


async def test_chat_invalid_json(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/chat", data="not json")
        assert resp.status == 400
        assert await resp.json() == {"error": "Invalid JSON in request body", "success": False}
    finally:
        await client.close()


async def test_chat_missing_fields(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/chat", json={"message": "Hallo"})
        assert resp.status == 400
        data = await resp.json()
        assert data["success"] is False
        assert "conversation_id" in data["error"]
    finally:
        await client.close()


async def test_chat_blank_conversation_id(store: ConversationStore) -> None:
    completion = FakeCompletion("Hallo!")
    client = await _make_client(store, completion)
    try:
        resp = await client.post("/chat", json={"message": "Hallo", "conversation_id": "   "})
        assert resp.status == 400
        assert (await resp.json())["success"] is False
        assert completion.calls == []
        assert await store.list_messages("   ") == []
    finally:
        await client.close()


async def test_chat_upstream_error_is_500(
    store: ConversationStore, failing_completion: FakeCompletion
) -> None:
    client = await _make_client(store, failing_completion)
    try:
        resp = await client.post("/chat", json={"message": "Hallo", "conversation_id": "c1"})
        assert resp.status == 500
        assert await resp.json() == {
            "error": "Anthropic API error: overloaded",
            "success": False,
        }
    finally:
        await client.close()


async def test_store_error_message_is_surfaced(store: ConversationStore) -> None:
    async def _broken(*args, **kwargs):
        raise StoreError("Database error: disk I/O error")

    store.recent_messages = _broken
    client = await _make_client(store)
    try:
        resp = await client.post("/chat", json={"message": "Hallo", "conversation_id": "c1"})
        assert resp.status == 500
        assert (await resp.json())["error"] == "Database error: disk I/O error"
    finally:
        await client.close()


async def test_end_to_end_chat_then_meta(store: ConversationStore) -> None:
    completion = FakeCompletion("Hallo! Wie kann ich helfen?", "Begrüßung", ANALYSIS_JSON)
    client = await _make_client(store, completion)
    try:
        resp = await client.post("/conversations", json={})
        conversation_id = (await resp.json())["conversation"]["id"]

        resp = await client.post(
            "/chat", json={"message": "Hallo", "conversation_id": conversation_id}
        )
        assert resp.status == 200
        data = await resp.json()
        assert data["success"] is True
        assert data["message"] == "Hallo! Wie kann ich helfen?"
        assert await store.count_messages(conversation_id) == 1

        resp = await client.post("/meta", json={"conversation_id": conversation_id})
        assert resp.status == 200
        data = await resp.json()
        assert data["success"] is True
        assert data["message_count"] == 1
        for key in ("kernideen", "erkenntnisse", "offene_fragen", "todos"):
            assert isinstance(data["analysis"][key], list)
        assert data["analysis"]["kernideen"] == ["Begrüßung"]
        assert [p["text"] for p in data["points"]["offene_fragen"]] == ["Worum geht es?"]
    finally:
        await client.close()


# -- /meta -------------------------------------------------------------------


async def test_meta_empty_conversation(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/meta", json={"conversation_id": "c1"})
        data = await resp.json()
        assert data == {
            "analysis": {"kernideen": [], "erkenntnisse": [], "offene_fragen": [], "todos": []},
            "message_count": 0,
            "points": {},
            "success": True,
        }
    finally:
        await client.close()


async def test_meta_unknown_category(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/meta", json={"conversation_id": "c1", "categories": ["x"]})
        assert resp.status == 400
        assert (await resp.json())["success"] is False
    finally:
        await client.close()


async def test_meta_categories_must_be_list(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/meta", json={"conversation_id": "c1", "categories": "todos"})
        assert resp.status == 400
    finally:
        await client.close()


async def test_meta_requires_conversation_id(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/meta", json={})
        assert resp.status == 400
    finally:
        await client.close()


# -- Conversations -----------------------------------------------------------


async def test_conversation_crud(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/conversations", json={"title": "Urlaub"})
        assert resp.status == 201
        created = (await resp.json())["conversation"]

        resp = await client.patch(f"/conversations/{created['id']}", json={"title": "Reise"})
        assert (await resp.json())["conversation"]["title"] == "Reise"

        resp = await client.get(f"/conversations/{created['id']}")
        assert (await resp.json())["conversation"]["title"] == "Reise"

        resp = await client.get("/conversations")
        assert [c["id"] for c in (await resp.json())["conversations"]] == [created["id"]]
    finally:
        await client.close()


async def test_create_conversation_without_body(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.post("/conversations")
        assert resp.status == 201
        assert (await resp.json())["conversation"]["title"] == "Neuer Chat"
    finally:
        await client.close()


async def test_unknown_conversation_is_404(store: ConversationStore) -> None:
    client = await _make_client(store)
    try:
        resp = await client.get("/conversations/nope")
        assert resp.status == 404
        assert (await resp.json())["success"] is False
        resp = await client.patch("/conversations/nope", json={"title": "x"})
        assert resp.status == 404
    finally:
        await client.close()


async def test_message_thread(store: ConversationStore) -> None:
    client = await _make_client(store, FakeCompletion("eins", "sum", "zwei"))
    try:
        await client.post("/chat", json={"message": "a", "conversation_id": "c1"})
        await client.post("/chat", json={"message": "b", "conversation_id": "c1"})
        resp = await client.get("/conversations/c1/messages")
        messages = (await resp.json())["messages"]
        assert [m["user_message"] for m in messages] == ["a", "b"]
        assert [m["assistant_message"] for m in messages] == ["eins", "zwei"]
    finally:
        await client.close()


# -- Points ------------------------------------------------------------------


async def test_point_visibility_round_trip(store: ConversationStore) -> None:
    written = await store.save_analysis("c1", Analysis(todos=["t"]), {Category.TODO: ["t"]})
    point_id = written[Category.TODO][0].id
    client = await _make_client(store)
    try:
        resp = await client.post(f"/points/{point_id}/hide")
        assert (await resp.json())["point"]["hidden"] is True

        resp = await client.get("/conversations/c1/points")
        assert (await resp.json())["points"] == []
        resp = await client.get("/conversations/c1/points?hidden=true")
        assert [p["id"] for p in (await resp.json())["points"]] == [point_id]

        resp = await client.post(f"/points/{point_id}/restore")
        assert (await resp.json())["point"]["hidden"] is False

        resp = await client.delete(f"/points/{point_id}")
        assert (await resp.json())["point"]["id"] == point_id
        resp = await client.delete(f"/points/{point_id}")
        assert resp.status == 404
    finally:
        await client.close()


async def test_export_round_trip(store: ConversationStore) -> None:
    analysis = Analysis(kernideen=["k"], todos=["t1", "t2"], message_count=4)
    await store.save_analysis(
        "c1", analysis, {Category.CORE_IDEA: ["k"], Category.TODO: ["t1", "t2"]}
    )
    client = await _make_client(store)
    try:
        resp = await client.get("/conversations/c1/export")
        assert resp.status == 200
        assert "attachment" in resp.headers["Content-Disposition"]
        restored = AnalysisExport.from_json(await resp.text()).to_analysis()
        assert restored == analysis
    finally:
        await client.close()
