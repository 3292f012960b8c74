# ================================================================
# services/stripe_gateway.py: Stripe Checkout + webhook verification
# ================================================================
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from core.config import settings
from core.errors import GatewayUnavailableError, SignatureInvalidError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)


class StripeGateway:
    """
    Thin adapter over the Stripe SDK.

    Shapes requests and translates SDK failures into GatewayUnavailableError /
    SignatureInvalidError. Holds no workflow state.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str],
        timeout_seconds: int = 20,
        max_network_retries: int = 2,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

        if self.secret_key:
            stripe.api_key = self.secret_key
            stripe.max_network_retries = max_network_retries
            stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    # ------------------------
    # Checkout
    # ------------------------
    def create_checkout_session(
        self,
        amount_minor_units: int,
        currency: str,
        title: str,
        description: Optional[str],
        customer_email: Optional[str],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        client_reference_id: Optional[str] = None,
    ) -> CheckoutSession:
        if not self.configured:
            raise GatewayUnavailableError("Stripe is not configured")

        product_data: Dict[str, Any] = {"name": title}
        if description:
            product_data["description"] = description

        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": amount_minor_units,
                        "product_data": product_data,
                    },
                }
            ],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if client_reference_id:
            params["client_reference_id"] = client_reference_id
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe checkout session creation failed: {e}")
            raise GatewayUnavailableError("Payment provider is unavailable, please retry") from e

        if not session.url:
            raise GatewayUnavailableError("Stripe session URL is missing")

        logger.info(f"✅ Stripe checkout session created: {session.id}")
        return CheckoutSession(id=session.id, url=session.url)

    # ------------------------
    # Webhooks
    # ------------------------
    def verify_and_parse_webhook(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise GatewayUnavailableError("Stripe webhook secret is not configured")

        if not signature_header:
            raise SignatureInvalidError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(
                payload=raw_body,
                sig_header=signature_header,
                secret=self.webhook_secret,
            )
            # Signature is valid; read the plain JSON for downstream handlers
            data = json.loads(raw_body)
            payload = data.get("data", {}).get("object") or {}
            if not isinstance(payload, dict):
                raise SignatureInvalidError("Malformed webhook payload")
            return WebhookEvent(
                event_id=data["id"],
                event_type=data["type"],
                payload=payload,
            )
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalidError("Invalid Stripe signature") from e
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise SignatureInvalidError("Malformed webhook payload") from e


def get_payment_gateway() -> StripeGateway:
    return StripeGateway(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        timeout_seconds=settings.STRIPE_TIMEOUT_SECONDS,
        max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
    )
