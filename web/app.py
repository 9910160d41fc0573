"""
Flask web server for the search/chat assistant.

Routes
──────
POST   /api/auth/callback            Upsert the user from identity claims
GET    /api/auth/user                The caller's user record
POST   /api/search                   Answer a query and store it
GET    /api/search/suggestions?q=    Query completions (always 200)
GET    /api/search/category?q=       Classify a query (always 200)
GET    /api/search/history           The caller's past searches
GET    /api/search/<id>              A stored search
GET    /api/trending                 Active trending topics, most viewed first
POST   /api/trending/<id>/view       Count a view
GET    /api/spaces?category=         Spaces, optionally filtered
GET    /api/categories               The four category cards
POST   /api/chat/threads             Run a chat turn (new or existing thread)
GET    /api/chat/threads?limit=      Recent thread summaries
GET    /api/chat/threads/<id>        A thread with its messages
PATCH  /api/chat/threads/<id>        Rename a thread / set its summary
DELETE /api/chat/threads/<id>        Delete a thread and its messages
GET    /api/chat/search?q=&limit=    Search thread titles and summaries
POST   /api/chat                     Legacy chat turn keyed by conversationId

The caller's identity arrives in the ``X-User-Id`` header, set by the
identity proxy in front of this service; no header means anonymous.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from core.errors import AppError
from core.gateway import AIGateway
from core.orchestrator import Orchestrator
from core.storage import Store, build_store

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"
MAX_LIMIT = 100


def _orchestrator() -> Orchestrator:
    return current_app.extensions["orchestrator"]


def _caller_id() -> Optional[str]:
    value = request.headers.get(USER_HEADER, "").strip()
    return value or None


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _limit(default: int) -> int:
    limit = request.args.get("limit", default=default, type=int)
    return min(max(limit, 1), MAX_LIMIT)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    gateway: Optional[AIGateway] = None,
) -> Flask:
    """Build the Flask app with its store and gateway wired in.

    Args:
        settings: Configuration; read from the environment when omitted.
        store: Storage backend; built from ``settings`` when omitted.
        gateway: AI gateway; built from ``settings`` when omitted.
    """
    settings = settings or Settings()
    settings.validate()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    store = store if store is not None else build_store(settings)
    gateway = gateway if gateway is not None else AIGateway.from_settings(settings)

    if not gateway.configured:
        logger.warning("No AI backend configured; answers will be placeholders")

    app = Flask(__name__)
    app.extensions["orchestrator"] = Orchestrator.from_settings(store, gateway, settings)

    # ── Error handling ─────────────────────────────────────────────────────

    @app.errorhandler(AppError)
    def handle_app_error(exc: AppError):
        return jsonify({"message": exc.message}), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_internal_error(exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"message": "Internal server error"}), 500

    # ── Auth ───────────────────────────────────────────────────────────────

    @app.post("/api/auth/callback")
    def auth_callback():
        user = _orchestrator().record_login(_body())
        return jsonify(user.dump())

    @app.get("/api/auth/user")
    def auth_user():
        return jsonify(_orchestrator().current_user(_caller_id()).dump())

    # ── Search ─────────────────────────────────────────────────────────────

    @app.post("/api/search")
    def submit_search():
        body = _body()
        result = _orchestrator().submit_search(
            body.get("query"), body.get("category"), caller_id=_caller_id()
        )
        return jsonify(result)

    @app.get("/api/search/suggestions")
    def search_suggestions():
        return jsonify({"suggestions": _orchestrator().suggestions(request.args.get("q"))})

    @app.get("/api/search/category")
    def search_category():
        return jsonify({"category": _orchestrator().categorize(request.args.get("q"))})

    @app.get("/api/search/history")
    def search_history():
        searches = _orchestrator().search_history(_caller_id(), _limit(50))
        return jsonify([s.dump() for s in searches])

    @app.get("/api/search/<search_id>")
    def get_search(search_id: str):
        return jsonify(_orchestrator().get_search(search_id).dump())

    # ── Catalogue ──────────────────────────────────────────────────────────

    @app.get("/api/trending")
    def trending():
        return jsonify([t.dump() for t in _orchestrator().trending(10)])

    @app.post("/api/trending/<topic_id>/view")
    def view_topic(topic_id: str):
        _orchestrator().view_topic(topic_id)
        return jsonify({"success": True})

    @app.get("/api/spaces")
    def spaces():
        spaces = _orchestrator().spaces(request.args.get("category") or None)
        return jsonify([s.dump() for s in spaces])

    @app.get("/api/categories")
    def categories():
        return jsonify(_orchestrator().categories())

    # ── Chat threads ───────────────────────────────────────────────────────

    @app.post("/api/chat/threads")
    def chat_thread_turn():
        body = _body()
        turn = _orchestrator().chat_turn(
            body.get("message"), body.get("threadId") or None, caller_id=_caller_id()
        )
        return jsonify(
            {
                "threadId": turn.thread_id,
                "response": turn.answer.content,
                "sources": [s.dump() for s in turn.answer.sources],
                "thread": turn.thread.dump(),
                "persisted": turn.persisted,
            }
        )

    @app.get("/api/chat/threads")
    def list_threads():
        threads = _orchestrator().list_threads(_limit(10), caller_id=_caller_id())
        return jsonify([t.dump() for t in threads])

    @app.get("/api/chat/threads/<thread_id>")
    def get_thread(thread_id: str):
        return jsonify(_orchestrator().get_thread(thread_id, _caller_id()).dump())

    @app.patch("/api/chat/threads/<thread_id>")
    def update_thread(thread_id: str):
        body = _body()
        thread = _orchestrator().update_thread(
            thread_id, body.get("title"), body.get("summary"), caller_id=_caller_id()
        )
        return jsonify(thread.dump())

    @app.delete("/api/chat/threads/<thread_id>")
    def delete_thread(thread_id: str):
        _orchestrator().delete_thread(thread_id, _caller_id())
        return jsonify({"success": True})

    @app.get("/api/chat/search")
    def search_threads():
        threads = _orchestrator().search_threads(
            request.args.get("q"), _limit(10), caller_id=_caller_id()
        )
        return jsonify([t.dump() for t in threads])

    @app.post("/api/chat")
    def legacy_chat():
        body = _body()
        turn = _orchestrator().chat_turn(
            body.get("message"), body.get("conversationId") or None, caller_id=_caller_id()
        )
        return jsonify(
            {
                "conversationId": turn.thread_id,
                "response": turn.answer.content,
                "sources": [s.dump() for s in turn.answer.sources],
            }
        )

    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    create_app(settings).run(debug=settings.debug, host="0.0.0.0", port=settings.port)
