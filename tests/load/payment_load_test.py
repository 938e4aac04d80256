"""Load tests for Payment Service webhooks."""

import logging
import os
import random
import string
from datetime import datetime
from locust import task, tag
from tests.load.base import BaseLoadTestUser, PAYMENT_SERVICE_URL

logger = logging.getLogger(__name__)

WEBHOOK_TOKEN = os.getenv("MPESA_WEBHOOK_TOKEN", "")


def receipt_number() -> str:
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=10))


class PaymentServiceLoadTest(BaseLoadTestUser):
    """Load test suite for the M-Pesa callback endpoints."""

    host = PAYMENT_SERVICE_URL

    def on_start(self):
        super().on_start()
        self.headers = {"X-Webhook-Token": WEBHOOK_TOKEN} if WEBHOOK_TOKEN else {}
        self.create_lease()

    def _c2b(self, trans_id: str, amount: str = "1500") -> dict:
        return {
            "TransactionType": "Pay Bill",
            "TransID": trans_id,
            "TransTime": datetime.utcnow().strftime("%Y%m%d%H%M%S"),
            "TransAmount": amount,
            "BusinessShortCode": "600638",
            "BillRefNumber": self.test_data["lease_id"],
            "MSISDN": "254708374149",
        }

    @task(2)
    @tag("payment", "validate")
    def validate_c2b(self):
        if "lease_id" not in self.test_data:
            return

        response = self.client.post(
            "/api/v1/payments/webhooks/mpesa/c2b/validate",
            json=self._c2b(receipt_number()),
            headers=self.headers,
            name="/api/v1/payments/webhooks/mpesa/c2b/validate",
        )
        if self.record(response, "POST c2b validate") and response.json()["ResultCode"] != 0:
            logger.warning(f"Validation rejected: {response.json()['ResultDesc']}")

    @task(3)
    @tag("payment", "confirm")
    def confirm_c2b_with_redelivery(self):
        """Each confirmation is delivered twice; the ledger must record it once."""
        if "lease_id" not in self.test_data:
            return

        payload = self._c2b(receipt_number())
        for attempt in ("", " [redelivery]"):
            response = self.client.post(
                "/api/v1/payments/webhooks/mpesa/c2b/confirm",
                json=payload,
                headers=self.headers,
                name=f"/api/v1/payments/webhooks/mpesa/c2b/confirm{attempt}",
            )
            self.record(response, "POST c2b confirm")

    @task(1)
    @tag("payment", "health")
    def health_check(self):
        self.record(self.client.get("/health"), "GET /health")
