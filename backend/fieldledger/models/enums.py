from __future__ import annotations

import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"
    VOID = "void"


class InvoiceLineType(str, enum.Enum):
    SERVICE = "service"
    LABOR = "labor"
    PARTS = "parts"
    SUPPLIES = "supplies"
    ADJUSTMENT = "adjustment"
    OTHER = "other"
    DEPOSIT_APPLIED = "deposit_applied"


class InvoiceAuditAction(str, enum.Enum):
    CREATE = "create"
    EDIT = "edit"
    ISSUE = "issue"
    DELETE = "delete"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class DepositType(str, enum.Enum):
    GENERAL = "general"
    PARTS = "parts"
    SUPPLIES = "supplies"


class JobStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


class ApprovalAction(str, enum.Enum):
    EMPLOYEE_PAY_CHANGE = "employee_pay_change"
    JOB_UPDATE = "job_update"
    INVOICE_UPDATE = "invoice_update"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    APPLIED = "applied"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class OwnerChangeAction(str, enum.Enum):
    ADD_OWNER = "add_owner"
    REMOVE_OWNER = "remove_owner"


class OwnerChangeStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXECUTED = "executed"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values (not member names) so rows read like the API payloads."""
    return [member.value for member in enum_cls]
