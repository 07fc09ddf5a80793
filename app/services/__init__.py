"""
AuditPulse - Services Package

Business logic services. Modules are imported directly, e.g.
``from app.services.audit_run_service import AuditRunService``.
"""
