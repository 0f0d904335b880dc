from app.routes.payment_intent import router as payment_intent_router
from app.routes.payment_plan import router as payment_plan_router
from app.routes.bookings import router as bookings_router
from app.routes.stripe_webhook import router as stripe_webhook_router
from app.routes.admin import router as admin_router

__all__ = [
    "payment_intent_router", "payment_plan_router", "bookings_router",
    "stripe_webhook_router", "admin_router",
]
