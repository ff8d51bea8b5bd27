"""
Payment collaborator (AbacatePay REST API).
Sells analysis credits; settlement itself happens at the provider. Without
an API key the service runs in mock mode, as in development.
"""
import uuid
from typing import Any, Dict

import requests

from core.config import get_settings
from core.exceptions import PaymentError
from core.logger import setup_logger
from core.schema import CheckoutSession
from core.session import Session

logger = setup_logger(__name__)

MOCK_BILLING_PREFIX = "mock-bill-"
MOCK_CHECKOUT_URL = "https://abacatepay.com/pay/mock"
PAID_STATUS = "PAID"


class PaymentService:
    """Creates checkouts and credits sessions once a billing is paid."""

    def __init__(self):
        self.settings = get_settings()
        self.api_url = self.settings.abacatepay_api_url.rstrip("/")
        self.api_key = self.settings.abacatepay_api_key
        if self.mock_mode:
            logger.warning("ABACATEPAY_API_KEY not set, payments run in mock mode")

    @property
    def mock_mode(self) -> bool:
        return not self.api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = requests.request(
                method,
                f"{self.api_url}{path}",
                headers=self._headers(),
                timeout=30,
                **kwargs
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"AbacatePay {path} failed: {e}")
            raise PaymentError(
                "Payment provider request failed",
                details={"path": path, "status_code": getattr(e.response, "status_code", None)}
            )
        except ValueError as e:
            raise PaymentError("Payment provider returned invalid JSON", details={"path": path, "error": str(e)})

    def create_checkout(self, email: str) -> CheckoutSession:
        """
        Create a one-time billing for a credit pack.

        Args:
            email: Customer email

        Returns:
            CheckoutSession with billing id and payment URL

        Raises:
            PaymentError: If the provider rejects the request
        """
        if self.mock_mode:
            return CheckoutSession(
                billing_id=f"{MOCK_BILLING_PREFIX}{uuid.uuid4().hex[:12]}",
                url=MOCK_CHECKOUT_URL,
            )

        base_url = self.settings.public_base_url.rstrip("/")
        body = {
            "frequency": "ONE_TIME",
            "methods": ["PIX", "CREDIT_CARD"],
            "products": [
                {
                    "externalId": "quantoda-credits",
                    "name": "QuantoDá? Créditos de análise",
                    "quantity": 1,
                    "price": self.settings.product_price_cents,
                    "description": f"{self.settings.credits_per_purchase} análises de extrato com IA.",
                }
            ],
            "returnUrl": f"{base_url}/?status=cancel",
            "completionUrl": f"{base_url}/?status=success",
            "customer": {"email": email},
        }
        data = self._request("POST", "/billing/create", json=body).get("data") or {}

        if not data.get("id") or not data.get("url"):
            raise PaymentError("Payment provider returned an incomplete billing", details={"keys": sorted(data)})

        logger.info(f"Checkout {data['id']} created")
        return CheckoutSession(
            billing_id=data["id"],
            url=data["url"],
            pix_code=(data.get("pix") or {}).get("code"),
        )

    def check_status(self, billing_id: str) -> bool:
        """
        Ask the provider whether a billing was paid.

        Raises:
            PaymentError: If the provider cannot be queried
        """
        if self.mock_mode:
            return True

        billings = self._request("GET", "/billing/list", params={"id": billing_id}).get("data") or []
        billing = next((b for b in billings if b.get("id") == billing_id), None)
        return bool(billing and billing.get("status") == PAID_STATUS)

    def confirm_purchase(self, session: Session, billing_id: str) -> bool:
        """
        Credit the session once for a paid billing.

        Returns:
            True if the billing is paid
        """
        session.require_authenticated()
        paid = self.check_status(billing_id)
        if paid and billing_id not in session.credited_billings:
            session.add_credits(self.settings.credits_per_purchase)
            session.credited_billings.add(billing_id)
        return paid
