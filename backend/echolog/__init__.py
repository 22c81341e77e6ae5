"""
EchoLog Backend — Application Package Initializer
===================================================

What: Marks the `echolog` directory as a Python package.
Why:  Enables module imports like `from echolog.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend is a thin orchestration layer in front of managed cloud services:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Orchestration)    │  ← Transcription workflow, analysis,
    │                                     │    billing breakdown, dashboard
    ├──────────────────┬──────────────────┤
    │  Repository (DB) │  Collaborators   │  ← Blob store, speech, Gemini,
    │                  │                  │    billing warehouse, extractors
    ├──────────────────┴──────────────────┤
    │   Models & Schemas (SQLAlchemy +    │
    │   Pydantic)                         │
    └─────────────────────────────────────┘

    External collaborators are constructor-injected into the services so the
    whole workflow can be exercised with in-memory fakes.
"""

__version__ = "1.0.0"
