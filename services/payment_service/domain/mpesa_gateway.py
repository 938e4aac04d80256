"""M-Pesa Daraja client: OAuth, STK push and webhook authenticity."""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

import httpx

from shared.config import settings
from shared.exceptions import GatewayError

logger = logging.getLogger(__name__)

PROVIDER_CODE = "MPESA"

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"


@dataclass
class StkPushResult:
    """Daraja acknowledgement of an STK push request."""

    checkout_id: str
    merchant_request_id: Optional[str]
    message: str


def daraja_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """base64(shortcode + passkey + timestamp)."""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


class MpesaGateway:
    """Thin async wrapper around the Daraja REST API."""

    def __init__(
        self,
        consumer_key: Optional[str] = None,
        consumer_secret: Optional[str] = None,
        passkey: Optional[str] = None,
        shortcode: Optional[str] = None,
        paybill_number: Optional[str] = None,
        till_number: Optional[str] = None,
        callback_url: Optional[str] = None,
        environment: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        webhook_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.consumer_key = consumer_key if consumer_key is not None else settings.mpesa_consumer_key
        self.consumer_secret = consumer_secret if consumer_secret is not None else settings.mpesa_consumer_secret
        self.passkey = passkey if passkey is not None else settings.mpesa_passkey
        self.shortcode = shortcode or settings.mpesa_shortcode
        self.paybill_number = paybill_number or settings.mpesa_paybill_number
        self.till_number = till_number or settings.mpesa_till_number
        self.callback_url = callback_url or settings.mpesa_callback_url
        self.environment = environment or settings.mpesa_environment
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.mpesa_webhook_secret
        self.webhook_token = webhook_token if webhook_token is not None else settings.mpesa_webhook_token
        self.timeout = timeout or settings.mpesa_timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        if self.environment == "production":
            return PRODUCTION_BASE_URL
        return SANDBOX_BASE_URL

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def get_access_token(self, client: httpx.AsyncClient) -> str:
        """Fetch an OAuth bearer token with the consumer key/secret."""
        response = await client.get(
            "/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            auth=(self.consumer_key, self.consumer_secret),
        )
        if response.status_code != 200:
            logger.error(f"M-Pesa OAuth failed: {response.status_code} {response.text}")
            raise GatewayError("M-Pesa OAuth failed")
        return response.json()["access_token"]

    async def stk_push(
        self,
        amount: Decimal,
        phone: str,
        account_reference: str,
        description: str = "Lease Payment",
    ) -> StkPushResult:
        """
        Ask Daraja to prompt the payer's phone for a payment.

        Raises:
            GatewayError: OAuth or STK push rejected, or transport failure
        """
        timestamp = daraja_timestamp()
        body = {
            "BusinessShortCode": self.shortcode,
            "Password": stk_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": (
                "CustomerPayBillOnline" if self.paybill_number else "CustomerBuyGoodsOnline"
            ),
            # Daraja accepts whole shillings only
            "Amount": int(amount.to_integral_value()),
            "PartyA": phone,
            "PartyB": self.paybill_number or self.till_number or self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }

        try:
            async with self._client() as client:
                token = await self.get_access_token(client)
                response = await client.post(
                    "/mpesa/stkpush/v1/processrequest",
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"M-Pesa STK push transport error: {e}")
            raise GatewayError(f"M-Pesa unreachable: {e}") from e

        if response.status_code != 200:
            logger.error(f"M-Pesa STK push failed: {response.status_code} {response.text}")
            raise GatewayError("STK push failed")

        data = response.json()
        checkout_id = data.get("CheckoutRequestID") or data.get("MerchantRequestID")
        if not checkout_id:
            raise GatewayError("STK push response carried no checkout reference")

        return StkPushResult(
            checkout_id=checkout_id,
            merchant_request_id=data.get("MerchantRequestID"),
            message=data.get("ResponseDescription") or data.get("CustomerMessage") or "STK push initiated",
        )

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        """
        Check a webhook's authenticity.

        HMAC-SHA256 of the raw body in ``X-Signature`` when a secret is
        configured, else the shared ``X-Webhook-Token``; with neither
        configured every request is accepted.
        """
        lowered = {k.lower(): v for k, v in headers.items()}

        if self.webhook_secret:
            provided = lowered.get("x-signature")
            if not provided:
                return False
            expected = hmac.new(
                self.webhook_secret.encode(), raw_body, hashlib.sha256
            ).hexdigest()
            return hmac.compare_digest(provided, expected)

        if self.webhook_token:
            provided = lowered.get("x-webhook-token") or ""
            return hmac.compare_digest(provided, self.webhook_token)

        return True
