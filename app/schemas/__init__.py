"""
AuditPulse - Schemas Package

Pydantic schemas for request/response validation and for the audit
intelligence contract.
"""
