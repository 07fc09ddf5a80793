"""
AuditPulse - Routers Package

FastAPI route handlers.

Routers:
- audit_engine: audit runs, simulations, auditor packs and run history
"""

from app.routers import audit_engine

__all__ = [
    "audit_engine",
]
