# carebill/api/router.py
from fastapi import APIRouter
from carebill.api import (
    # OPD
    routes_opd,

    # IPD
    routes_ipd,

    # Billing
    routes_billing,
)

api_router = APIRouter()

api_router.include_router(routes_opd.router)
api_router.include_router(routes_ipd.router)
api_router.include_router(routes_billing.router)
