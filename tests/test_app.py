"""
HTTP tests for web/app.py using Flask's test client.

Each app gets a fresh MemoryStore and a scripted gateway, so no network
or database is involved.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from config.settings import Settings
from core.gateway import UNCONFIGURED_ANSWER, AIGateway
from core.memory_store import MemoryStore
from tests.conftest import ANSWER_JSON, FakeBackend
from web.app import create_app


@pytest.fixture
def settings() -> Settings:
    return Settings(anthropic_api_key="", openai_api_key="", backend_order=["anthropic", "openai"])


@pytest.fixture
def store() -> MemoryStore:
    store = MemoryStore()
    store.seed_demo_data()
    return store


@pytest.fixture
def client(settings, store):
    app = create_app(settings, store=store, gateway=AIGateway([FakeBackend(ANSWER_JSON)]))
    return app.test_client()


@pytest.fixture
def offline_client(settings, store):
    app = create_app(settings, store=store, gateway=AIGateway([]))
    return app.test_client()


# ── Search ─────────────────────────────────────────────────────────────────────


class TestSearchRoutes:
    def test_submit_search(self, client):
        resp = client.post("/api/search", json={"query": "What is AI?"})
        data = resp.get_json()

        assert resp.status_code == 200
        assert set(data) == {"searchId", "query", "response", "sources", "category"}
        assert data["response"].startswith("AI is")
        assert data["sources"][0]["title"] == "Wikipedia"

    def test_submit_search_offline_is_still_200(self, offline_client):
        resp = offline_client.post("/api/search", json={"query": "What is AI?"})
        assert resp.status_code == 200
        assert resp.get_json()["response"] == UNCONFIGURED_ANSWER

    def test_missing_query_is_400(self, client):
        resp = client.post("/api/search", json={})
        assert resp.status_code == 400
        assert resp.get_json() == {"message": "Query is required"}

    def test_space_category_is_accepted(self, client):
        resp = client.post("/api/search", json={"query": "best laptops", "category": "business"})
        assert resp.status_code == 200
        assert resp.get_json()["category"] == "business"

    def test_known_category_normalised(self, client):
        resp = client.post("/api/search", json={"query": "index funds", "category": "FINANCE"})
        assert resp.get_json()["category"] == "Finance"

    def test_non_json_body_is_400(self, client):
        resp = client.post("/api/search", data="query=hi")
        assert resp.status_code == 400

    def test_get_search(self, client):
        search_id = client.post("/api/search", json={"query": "q"}).get_json()["searchId"]
        resp = client.get(f"/api/search/{search_id}")
        assert resp.status_code == 200
        assert resp.get_json()["id"] == search_id
        assert "createdAt" in resp.get_json()

    def test_get_unknown_search_is_404(self, client):
        resp = client.get("/api/search/nope")
        assert resp.status_code == 404
        assert resp.get_json() == {"message": "Search not found"}

    def test_history_requires_identity(self, client):
        assert client.get("/api/search/history").status_code == 401

    def test_history_for_caller(self, client):
        headers = {"X-User-Id": "u1"}
        first = client.post("/api/search", json={"query": "a"}, headers=headers).get_json()
        client.post("/api/search", json={"query": "b"}, headers={"X-User-Id": "u2"})

        resp = client.get("/api/search/history", headers=headers)
        assert [s["id"] for s in resp.get_json()] == [first["searchId"]]
        assert resp.get_json()[0]["userId"] == "u1"

    def test_suggestions(self, offline_client):
        resp = offline_client.get("/api/search/suggestions?q=rust")
        assert resp.status_code == 200
        assert resp.get_json()["suggestions"][0] == "What is rust?"

    def test_suggestions_without_query(self, client):
        resp = client.get("/api/search/suggestions")
        assert resp.status_code == 200
        assert resp.get_json() == {"suggestions": []}

    def test_category(self, settings, store):
        gateway = AIGateway([FakeBackend('{"category": "shopping"}')])
        client = create_app(settings, store=store, gateway=gateway).test_client()
        assert client.get("/api/search/category?q=cheap laptops").get_json() == {
            "category": "Shopping"
        }

    def test_category_gibberish_is_null(self, settings, store):
        gateway = AIGateway([FakeBackend('{"category": null}')])
        client = create_app(settings, store=store, gateway=gateway).test_client()
        assert client.get("/api/search/category?q=asdfasdf").get_json() == {"category": None}


# ── Catalogue ──────────────────────────────────────────────────────────────────


class TestCatalogueRoutes:
    def test_trending_sorted_by_views(self, client):
        topics = client.get("/api/trending").get_json()
        counts = [t["viewCount"] for t in topics]
        assert counts == sorted(counts, reverse=True)
        assert len(topics) == 6

    def test_view_increments(self, client):
        topic = client.get("/api/trending").get_json()[-1]
        resp = client.post(f"/api/trending/{topic['id']}/view")
        assert resp.get_json() == {"success": True}

        updated = {t["id"]: t for t in client.get("/api/trending").get_json()}
        assert updated[topic["id"]]["viewCount"] == topic["viewCount"] + 1

    def test_spaces(self, client):
        assert len(client.get("/api/spaces").get_json()) == 3

    def test_spaces_by_category(self, client):
        spaces = client.get("/api/spaces?category=Technology").get_json()
        assert [s["title"] for s in spaces] == ["Developer Tools"]
        assert spaces[0]["templateCount"] == 8

    def test_categories(self, client):
        categories = client.get("/api/categories").get_json()
        assert [c["id"] for c in categories] == ["finance", "travel", "shopping", "academic"]

    def test_trending_store_fault_is_empty_list(self, settings):
        store = MagicMock()
        store.list_trending_topics.side_effect = RuntimeError("db down")
        client = create_app(settings, store=store, gateway=AIGateway([])).test_client()
        resp = client.get("/api/trending")
        assert resp.status_code == 200
        assert resp.get_json() == []


# ── Chat threads ───────────────────────────────────────────────────────────────


class TestChatThreadRoutes:
    def test_new_thread_then_follow_up(self, client):
        first = client.post("/api/chat/threads", json={"message": "What is AI?"})
        data = first.get_json()

        assert first.status_code == 200
        assert data["threadId"]
        assert data["response"]
        assert [m["role"] for m in data["thread"]["messages"]] == ["user", "assistant"]
        assert data["persisted"] is True

        second = client.post(
            "/api/chat/threads", json={"message": "And ML?", "threadId": data["threadId"]}
        ).get_json()

        assert second["threadId"] == data["threadId"]
        assert len(second["thread"]["messages"]) == 4
        assert second["thread"]["messages"][:2] == data["thread"]["messages"]

    def test_missing_message_is_400(self, client):
        resp = client.post("/api/chat/threads", json={})
        assert resp.status_code == 400
        assert resp.get_json() == {"message": "Message is required"}

    def test_unknown_thread_turn_is_404(self, client):
        resp = client.post("/api/chat/threads", json={"message": "hi", "threadId": "nope"})
        assert resp.status_code == 404

    def test_list_threads(self, client):
        client.post("/api/chat/threads", json={"message": "What is AI?"})
        threads = client.get("/api/chat/threads?limit=5").get_json()
        assert len(threads) == 1
        assert set(threads[0]) >= {"id", "title", "createdAt", "updatedAt", "lastMessagePreview"}

    def test_list_threads_bad_limit_uses_default(self, client):
        client.post("/api/chat/threads", json={"message": "What is AI?"})
        assert client.get("/api/chat/threads?limit=abc").status_code == 200

    def test_get_thread(self, client):
        thread_id = client.post(
            "/api/chat/threads", json={"message": "What is AI?"}
        ).get_json()["threadId"]
        thread = client.get(f"/api/chat/threads/{thread_id}").get_json()
        assert thread["id"] == thread_id
        assert thread["title"] == "What is AI?"
        assert len(thread["messages"]) == 2

    def test_get_unknown_thread_is_404(self, client):
        resp = client.get("/api/chat/threads/nope")
        assert resp.status_code == 404
        assert resp.get_json() == {"message": "Thread not found"}

    def test_delete_thread(self, client, store):
        thread_id = client.post(
            "/api/chat/threads", json={"message": "What is AI?"}
        ).get_json()["threadId"]

        resp = client.delete(f"/api/chat/threads/{thread_id}")

        assert resp.get_json() == {"success": True}
        assert store.list_messages(thread_id) == []
        assert client.get(f"/api/chat/threads/{thread_id}").status_code == 404

    def test_delete_unknown_thread_is_404(self, client):
        resp = client.delete("/api/chat/threads/nope")
        assert resp.status_code == 404
        assert resp.get_json() == {"message": "Thread not found"}

    def test_other_callers_thread_is_403(self, client):
        thread_id = client.post(
            "/api/chat/threads", json={"message": "secret"}, headers={"X-User-Id": "alice"}
        ).get_json()["threadId"]
        resp = client.get(f"/api/chat/threads/{thread_id}", headers={"X-User-Id": "bob"})
        assert resp.status_code == 403

    def test_rename_thread(self, client):
        thread_id = client.post(
            "/api/chat/threads", json={"message": "What is AI?"}
        ).get_json()["threadId"]
        resp = client.patch(f"/api/chat/threads/{thread_id}", json={"title": "AI 101"})
        assert resp.get_json()["title"] == "AI 101"

    def test_search_threads(self, client):
        client.post("/api/chat/threads", json={"message": "Quantum computing"})
        client.post("/api/chat/threads", json={"message": "Pasta recipes"})
        found = client.get("/api/chat/search?q=quantum&limit=5").get_json()
        assert [t["title"] for t in found] == ["Quantum computing"]

    def test_search_threads_without_query(self, client):
        assert client.get("/api/chat/search").get_json() == []


class TestLegacyChat:
    def test_conversation_id_round_trip(self, client):
        first = client.post("/api/chat", json={"message": "What is AI?"}).get_json()
        assert set(first) == {"conversationId", "response", "sources"}

        second = client.post(
            "/api/chat", json={"message": "And ML?", "conversationId": first["conversationId"]}
        ).get_json()
        assert second["conversationId"] == first["conversationId"]


# ── Identity and errors ────────────────────────────────────────────────────────


class TestAuthRoutes:
    def test_callback_then_user(self, client):
        resp = client.post("/api/auth/callback", json={"id": "u1", "email": "a@example.com"})
        assert resp.status_code == 200

        user = client.get("/api/auth/user", headers={"X-User-Id": "u1"}).get_json()
        assert user["email"] == "a@example.com"

    def test_callback_without_id_is_400(self, client):
        assert client.post("/api/auth/callback", json={"email": "x"}).status_code == 400

    def test_user_without_identity_is_401(self, client):
        assert client.get("/api/auth/user").status_code == 401


class TestErrors:
    def test_unknown_route_is_json_404(self, client):
        resp = client.get("/api/nowhere")
        assert resp.status_code == 404
        assert "message" in resp.get_json()

    def test_unexpected_fault_is_500(self, settings):
        store = MagicMock()
        store.create_search.side_effect = RuntimeError("db exploded")
        client = create_app(settings, store=store, gateway=AIGateway([])).test_client()

        resp = client.post("/api/search", json={"query": "What is AI?"})

        assert resp.status_code == 500
        assert resp.get_json() == {"message": "Internal server error"}
