"""
AuditPulse - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, OrganizationScopedMixin, JSONType
from app.models.user import Profile
from app.models.accounting import (
    AccountType,
    NormalBalance,
    JournalEntryStatus,
    GLAccount,
    JournalEntry,
    JournalLine,
)
from app.models.customer import Customer
from app.models.vendor import Vendor, Bill
from app.models.invoice import Invoice, InvoiceStatus
from app.models.financial_record import FinancialRecord, RecordType, PaymentMode
from app.models.fixed_asset import Asset, AssetStatus, DepreciationMethod
from app.models.payroll import PayrollRecord
from app.models.bank_transaction import BankTransaction, BankTransactionType
# Audit trail and audit engine models
from app.models.audit_consolidated import (
    AuditLog,
    AuditRunType,
    AuditRunStatus,
    ComplianceModule,
    CheckSeverity,
    CheckStatus,
    IFCCheckType,
    IFCRating,
    AuditComplianceRun,
    ComplianceCheck,
    IFCAssessment,
    AIAnomaly,
    RiskTheme,
    AISample,
    AINarrative,
    AuditPackExport,
)

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "OrganizationScopedMixin",
    "JSONType",
    # Identity
    "Profile",
    # Ledger
    "AccountType",
    "NormalBalance",
    "JournalEntryStatus",
    "GLAccount",
    "JournalEntry",
    "JournalLine",
    # Parties and documents
    "Customer",
    "Vendor",
    "Bill",
    "Invoice",
    "InvoiceStatus",
    "FinancialRecord",
    "RecordType",
    "PaymentMode",
    "Asset",
    "AssetStatus",
    "DepreciationMethod",
    "PayrollRecord",
    "BankTransaction",
    "BankTransactionType",
    # Audit
    "AuditLog",
    "AuditRunType",
    "AuditRunStatus",
    "ComplianceModule",
    "CheckSeverity",
    "CheckStatus",
    "IFCCheckType",
    "IFCRating",
    "AuditComplianceRun",
    "ComplianceCheck",
    "IFCAssessment",
    "AIAnomaly",
    "RiskTheme",
    "AISample",
    "AINarrative",
    "AuditPackExport",
]
