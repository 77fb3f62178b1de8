"""
MathMentor Scheduling Backend — Application Package Initializer
===============================================================

What: Marks the `app` directory as a Python package.
Why:  Enables module imports like `from app.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The scheduling core follows a layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, actor headers
    ├─────────────────────────────────────┤
    │   SchedulingService (façade)        │  ← ORM rows → response schemas
    ├─────────────────────────────────────┤
    │  ClassService  │  BookingService    │  ← lifecycles / state machines
    ├────────────────┴────────────────────┤
    │ CapacityLedger │ ConflictDetector   │  ← seat accounting, overlap queries
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Seat accounting and every state transition are expressed as conditional
    UPDATE statements, so concurrent workers sharing one database can never
    overbook a class or apply two transitions from the same prior state.
"""

__version__ = "1.0.0"
