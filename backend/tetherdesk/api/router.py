from fastapi import APIRouter

from tetherdesk.api.routes import (
    admin,
    auth,
    health,
    market,
    orders,
    payment_methods,
    profiles,
    rates,
    storage,
    tickets,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(profiles.router)
api_router.include_router(rates.router)
api_router.include_router(orders.router)
api_router.include_router(tickets.router)
api_router.include_router(payment_methods.router)
api_router.include_router(market.router)
api_router.include_router(storage.router)
api_router.include_router(admin.router)
