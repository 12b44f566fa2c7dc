"""
Typed service errors.

Services raise these instead of ``HTTPException`` so they stay usable outside a
request (scripts, tests, the approval engine re-entering the invoice engine).
``main`` registers a handler that renders them as ``{"detail", "code"}`` with
the carried status code.

    ServiceError
    +-- NotFoundOrUnauthorized      404
    +-- ValidationError             422
    |   +-- MissingField            422
    +-- DepositExceedsBalance       400
    +-- Conflict                    409
    +-- Forbidden                   403
    |   +-- CannotApproveOwnRequest 403
    +-- IllegalStateTransition      400
    |   +-- CooldownNotElapsed      400
    |   +-- CannotRemoveLastOwner   400
    +-- UnsupportedAction           422
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import status


class ServiceError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "service_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.data:
            payload["data"] = self.data
        return payload


class NotFoundOrUnauthorized(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationError(ServiceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class MissingField(ValidationError):
    code = "missing_field"


class DepositExceedsBalance(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "deposit_exceeds_balance"


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class CannotApproveOwnRequest(Forbidden):
    code = "cannot_approve_own_request"


class IllegalStateTransition(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "illegal_state_transition"


class CooldownNotElapsed(IllegalStateTransition):
    code = "cooldown_not_elapsed"


class CannotRemoveLastOwner(IllegalStateTransition):
    code = "cannot_remove_last_owner"


class UnsupportedAction(ServiceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "unsupported_action"
