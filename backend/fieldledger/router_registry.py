"""Central router registry."""
from __future__ import annotations

from fastapi import FastAPI

from fieldledger.routers.approvals import router as approvals_router
from fieldledger.routers.invoices import router as invoices_router
from fieldledger.routers.owners import router as owners_router
from fieldledger.routers.payments import router as payments_router

ALL_ROUTERS = (
    invoices_router,
    payments_router,
    approvals_router,
    owners_router,
)


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
