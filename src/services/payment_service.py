"""Payment gateway adapter over Stripe charges."""

import logging
from typing import Any

import stripe

from src.api.middleware.error_handler import PaymentError
from src.core.config import get_settings
from src.core.stripe import get_stripe

logger = logging.getLogger(__name__)


def _error_body(error: stripe.error.StripeError) -> dict[str, Any]:
    body = error.json_body if isinstance(error.json_body, dict) else {}
    return body or {"error": {"message": error.user_message or str(error), "code": error.code}}


class PaymentService:
    """Authorizes and captures destination charges.

    Every call passes an idempotency key, so repeating a call for the same
    order returns the original charge instead of creating a second one.
    Any gateway failure surfaces as PaymentError; nothing is retried here.
    """

    def __init__(self) -> None:
        self.stripe = get_stripe()
        self.settings = get_settings()

    def authorize_charge(
        self,
        source_id: str,
        customer_id: str,
        destination_id: str,
        amount: int,
        currency_code: str,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Authorize (but do not capture) a charge.

        Args:
            source_id: Gateway id of the buyer's card.
            customer_id: Gateway id of the buyer.
            destination_id: Seller's merchant account id.
            amount: Amount in cents.
            currency_code: ISO currency code.
            idempotency_key: Key making retries safe.

        Returns:
            dict: Charge data with id, amount, source_id and destination_id.

        Raises:
            PaymentError: If the gateway rejects the charge.
        """
        if not self.settings.stripe_secret_key:
            raise PaymentError("Stripe is not configured. Please set STRIPE_SECRET_KEY environment variable.")
        try:
            charge = self.stripe.Charge.create(
                amount=amount,
                currency=currency_code,
                source=source_id,
                customer=customer_id,
                destination={"account": destination_id},
                capture=False,
                idempotency_key=idempotency_key,
            )
        except stripe.error.StripeError as e:
            logger.error("Stripe error authorizing charge: %s", str(e))
            raise PaymentError(str(e.user_message or e), body=_error_body(e)) from e

        return {
            "id": charge.id,
            "amount": amount,
            "source_id": source_id,
            "destination_id": destination_id,
        }

    def capture_charge(self, charge_id: str, idempotency_key: str | None = None) -> dict[str, Any]:
        """Capture a previously authorized charge.

        Raises:
            PaymentError: If the gateway refuses the capture.
        """
        if not self.settings.stripe_secret_key:
            raise PaymentError("Stripe is not configured. Please set STRIPE_SECRET_KEY environment variable.")
        try:
            charge = self.stripe.Charge.capture(charge_id, idempotency_key=idempotency_key)
        except stripe.error.StripeError as e:
            logger.error("Stripe error capturing charge %s: %s", charge_id, str(e))
            raise PaymentError(str(e.user_message or e), body=_error_body(e)) from e

        return {"id": charge.id, "amount": charge.amount}
