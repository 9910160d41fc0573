"""
Assistant core package.

Modules
───────
models        — Pydantic data models (Search, Conversation, Message, …)
errors        — AppError hierarchy mapped onto HTTP statuses
categorizer   — Query category enum, validation, category cards
gateway       — AI provider gateway with ordered backend fallback
storage       — Store interface and backend selection
memory_store  — In-process Store
sqlite_store  — SQLite-backed Store
seed          — Demo trending topics and spaces
orchestrator  — Search, suggestion and chat-thread operations
"""
