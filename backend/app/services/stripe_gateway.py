"""
Stripe Gateway — thin adapter over the Stripe SDK.
Products, prices, customers, checkout sessions, payment links, refunds and
webhook verification. Every SDK failure surfaces as UpstreamError.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict

import stripe

from app.config import get_settings
from app.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # Stored datetimes are naive UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class StripeGateway:
    """Wraps the Stripe calls the payment workflow needs.

    The API key is passed per request instead of being set on the ``stripe``
    module, so several gateways (e.g. test and live) can coexist.
    """

    def __init__(self, api_key: str, api_version: Optional[str] = None, webhook_secret: str = ""):
        self.api_key = api_key
        self.api_version = api_version
        self.webhook_secret = webhook_secret

    def _opts(self) -> dict:
        opts = {"api_key": self.api_key}
        if self.api_version:
            opts["stripe_version"] = self.api_version
        return opts

    def _call(self, action: str, fn, **params):
        try:
            return fn(**params, **self._opts())
        except stripe.StripeError as e:
            logger.error("Stripe %s failed: %s", action, e)
            raise UpstreamError(f"Payment provider error during {action}: {e.user_message or str(e)}")

    # ─── Catalog ────────────────────────────────────────────────────
    def create_price(
        self,
        name: str,
        unit_amount: int,
        currency: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create a one-off product and its price; return the price id.

        A fresh product is created on every call so each booking or stage gets
        its own line item in the Stripe dashboard.
        """
        product_params = {"name": name, "metadata": metadata or {}}
        if description:
            product_params["description"] = description
        product = self._call("product creation", stripe.Product.create, **product_params)
        price = self._call(
            "price creation",
            stripe.Price.create,
            product=product.id,
            unit_amount=unit_amount,
            currency=currency.lower(),
        )
        return price.id

    def create_customer(self, email: str, name: str, metadata: Optional[Dict[str, str]] = None) -> str:
        customer = self._call(
            "customer creation", stripe.Customer.create,
            email=email, name=name, metadata=metadata or {},
        )
        return customer.id

    # ─── Checkout sessions ──────────────────────────────────────────
    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        expires_at: datetime,
        customer_id: Optional[str] = None,
    ):
        """Create a card checkout session for a single price."""
        params = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "payment_intent_data": {"metadata": metadata},
            "metadata": metadata,
            "expires_at": int(_as_utc(expires_at).timestamp()),
        }
        if customer_id:
            params["customer"] = customer_id
        return self._call("checkout session creation", stripe.checkout.Session.create, **params)

    def checkout_urls(self, session_id: Optional[str] = None) -> Dict[str, str]:
        base = get_settings().frontend_base_url
        session_ref = session_id or "{CHECKOUT_SESSION_ID}"
        return {
            "success_url": f"{base}/payment-confirmation?session_id={session_ref}",
            "cancel_url": f"{base}/payment-cancelled",
        }

    # ─── Payment links ──────────────────────────────────────────────
    def create_payment_link(self, price_id: str, metadata: Dict[str, str], redirect_url: str):
        """Single-use payment link that redirects to ``redirect_url`` once paid."""
        return self._call(
            "payment link creation",
            stripe.PaymentLink.create,
            line_items=[{"price": price_id, "quantity": 1}],
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
            restrictions={"completed_sessions": {"limit": 1}},
            after_completion={"type": "redirect", "redirect": {"url": redirect_url}},
        )

    def retrieve_payment_link_url(self, link_id: str) -> str:
        link = self._call("payment link lookup", stripe.PaymentLink.retrieve, id=link_id)
        return link.url

    def deactivate_payment_link(self, link_id: str) -> None:
        self._call("payment link deactivation", stripe.PaymentLink.modify, id=link_id, active=False)

    # ─── Refunds ────────────────────────────────────────────────────
    def create_refund(
        self,
        payment_intent_id: str,
        amount: int,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ):
        params = {}
        if idempotency_key:
            # Stripe returns the original refund when the same key is replayed
            params["idempotency_key"] = idempotency_key
        return self._call(
            "refund",
            stripe.Refund.create,
            payment_intent=payment_intent_id,
            amount=amount,
            reason="requested_by_customer",
            metadata=metadata,
            **params,
        )

    # ─── Webhooks ───────────────────────────────────────────────────
    def construct_event(self, payload: bytes, signature: Optional[str]):
        """Verify a webhook signature and parse the event."""
        if not signature:
            raise ValidationError("Missing stripe-signature header")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.StripeError) as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise ValidationError(f"Webhook Error: {e}")


def get_gateway() -> StripeGateway:
    """FastAPI dependency: gateway configured from settings."""
    settings = get_settings()
    return StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        api_version=settings.STRIPE_API_VERSION,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )
