"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from rentcore.api.v1 import admin, bookings, disputes, escrow, payments, payouts, webhooks

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Escrow
api_router.include_router(escrow.router, prefix="/escrow", tags=["Escrow"])

# Disputes
api_router.include_router(disputes.router, prefix="/disputes", tags=["Disputes"])

# Payouts
api_router.include_router(payouts.router, prefix="/payouts", tags=["Payouts"])

# Admin
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
