import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import stripe

from config import PAYMENT_SIGNING_SECRET, PRIMARY_CURRENCY, STRIPE_SECRET
from errors import UpstreamError, ValidationError

logger = logging.getLogger("elanstore.payments")


def create_payment_order(amount: float, currency: str = PRIMARY_CURRENCY, receipt: Optional[str] = None) -> Dict[str, Any]:
    if not STRIPE_SECRET:
        raise ValidationError("Payment gateway not configured")
    if amount is None or amount <= 0:
        raise ValidationError("amount must be positive")
    metadata = {"receipt": receipt} if receipt else {}
    try:
        intent = stripe.PaymentIntent.create(
            amount=int(round(amount * 100)),
            currency=currency.lower(),
            metadata=metadata,
            api_key=STRIPE_SECRET,
        )
    except stripe.StripeError as e:
        logger.warning("Payment order creation failed: %s", e)
        raise UpstreamError("Payment gateway error") from e
    return {"id": intent.id, "amount": intent.amount, "currency": intent.currency,
            "client_secret": intent.client_secret}


def sign(gateway_order_id: str, payment_id: str, secret: str) -> str:
    message = f"{gateway_order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(gateway_order_id: str, payment_id: str, signature: Optional[str],
                     secret: Optional[str] = None) -> bool:
    """Check an HMAC-SHA256 payment signature. A mismatch returns False rather than raising."""
    secret = secret or PAYMENT_SIGNING_SECRET
    if not secret:
        raise ValidationError("Payment verification not configured")
    if not signature:
        return False
    expected = sign(gateway_order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature)
