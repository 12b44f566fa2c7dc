from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldledger.core.deps import get_company_ids, get_current_profile
from fieldledger.db.session import get_db
from fieldledger.models.company import Profile
from fieldledger.models.enums import DepositType
from fieldledger.schemas.payment import (
    PaymentApplicationCreate,
    PaymentApplicationResult,
    PaymentCreate,
    PaymentRead,
    UnappliedPaymentRead,
)
from fieldledger.services import idempotency
from fieldledger.services import ledger

router = APIRouter(prefix="/api", tags=["payments"])

APPLY_SCOPE = "payment_application"


@router.post("/payments", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> PaymentRead:
    payment = ledger.create_payment(
        db,
        company_ids=company_ids,
        actor_id=current_profile.id,
        customer_id=payload.customer_id,
        company_id=payload.company_id,
        job_id=payload.job_id,
        amount=payload.amount,
        method=payload.method,
        is_deposit=payload.is_deposit,
        deposit_type=payload.deposit_type,
        memo=payload.memo,
    )
    db.commit()
    db.refresh(payment)
    return PaymentRead.model_validate(payment)


@router.get("/customers/{customer_id}/unapplied-payments", response_model=List[UnappliedPaymentRead])
def list_unapplied_payments(
    customer_id: int,
    deposit_type: Optional[DepositType] = Query(None),
    db: Session = Depends(get_db),
    company_ids: List[int] = Depends(get_company_ids),
) -> List[UnappliedPaymentRead]:
    rows = ledger.list_unapplied_payments(db, company_ids=company_ids, customer_id=customer_id, deposit_type=deposit_type)
    return [
        UnappliedPaymentRead.model_validate(
            {**PaymentRead.model_validate(row.payment).model_dump(), "unapplied_amount": row.unapplied_amount}
        )
        for row in rows
    ]


@router.post(
    "/payment-applications",
    response_model=PaymentApplicationResult,
    status_code=status.HTTP_201_CREATED,
)
def apply_payment(
    payload: PaymentApplicationCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> PaymentApplicationResult:
    request_hash = idempotency.hash_payload(payload.model_dump(mode="json"))
    replay = idempotency.find_replay(
        db,
        key=idempotency_key,
        scope=APPLY_SCOPE,
        profile_id=current_profile.id,
        request_hash=request_hash,
    )
    if replay is not None:
        return PaymentApplicationResult.model_validate(replay)

    result = ledger.apply_payment_to_invoice(
        db,
        company_ids=company_ids,
        actor_id=current_profile.id,
        invoice_id=payload.invoice_id,
        amount=payload.amount,
        payment_id=payload.payment_id,
        customer_id=payload.customer_id,
        method=payload.method,
        memo=payload.memo,
    )
    idempotency.store_response(
        db,
        key=idempotency_key,
        scope=APPLY_SCOPE,
        profile_id=current_profile.id,
        request_hash=request_hash,
        response_payload=idempotency.jsonable(result),
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # A concurrent request with the same key committed first.
        replay = idempotency.find_replay(
            db,
            key=idempotency_key,
            scope=APPLY_SCOPE,
            profile_id=current_profile.id,
            request_hash=request_hash,
        )
        if replay is not None:
            return PaymentApplicationResult.model_validate(replay)
        raise
    return PaymentApplicationResult.model_validate(result)
