"""Import all models so SQLAlchemy metadata is fully registered."""

from fieldledger.db.base import Base

from fieldledger.models.approval import ApprovalDecision, ApprovalRequest
from fieldledger.models.audit import ActivityLog
from fieldledger.models.company import Company, CompanyEmployee, CompanyOwner, Profile
from fieldledger.models.customer import Customer, Job
from fieldledger.models.enums import (
    ApprovalAction,
    ApprovalStatus,
    Decision,
    DepositType,
    InvoiceAuditAction,
    InvoiceLineType,
    InvoiceStatus,
    JobStatus,
    OwnerChangeAction,
    OwnerChangeStatus,
    PaymentMethod,
)
from fieldledger.models.idempotency import IdempotencyKey
from fieldledger.models.invoice import Invoice, InvoiceAuditLog, InvoiceCounter, InvoiceLine
from fieldledger.models.owner_change import OwnerChangeApproval, OwnerChangeRequest
from fieldledger.models.payment import Payment, PaymentApplication

__all__ = [
    "Base",
    "Profile",
    "Company",
    "CompanyOwner",
    "CompanyEmployee",
    "Customer",
    "Job",
    "JobStatus",
    "Invoice",
    "InvoiceLine",
    "InvoiceAuditLog",
    "InvoiceCounter",
    "InvoiceStatus",
    "InvoiceLineType",
    "InvoiceAuditAction",
    "Payment",
    "PaymentApplication",
    "PaymentMethod",
    "DepositType",
    "ApprovalRequest",
    "ApprovalDecision",
    "ApprovalAction",
    "ApprovalStatus",
    "Decision",
    "OwnerChangeRequest",
    "OwnerChangeApproval",
    "OwnerChangeAction",
    "OwnerChangeStatus",
    "ActivityLog",
    "IdempotencyKey",
]
