from fastapi import APIRouter

from waghl.api.v1.endpoints import (
    admin_auth,
    admin_customers,
    admin_stats,
    auth,
    customer,
    subaccounts,
)

router = APIRouter()
router.include_router(auth.router)
router.include_router(customer.router)
router.include_router(subaccounts.router)
router.include_router(admin_auth.router)
router.include_router(admin_customers.router)
router.include_router(admin_stats.router)
