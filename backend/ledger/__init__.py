"""
Ledger API — Application Package Initializer
=============================================

What: Marks the `ledger` directory as a Python package.
Who:  Imported by uvicorn (ledger.main:app), Alembic, and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │     Middleware (request pipeline)   │  ← ids, envelope, logging, throttling
    ├─────────────────────────────────────┤
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← auth, operations
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
