"""Typed views of inbound M-Pesa Daraja payloads.

Webhook bodies are parsed once, at the boundary, into one of the event
models below. Anything that does not match a known shape becomes an
``UnparsedEvent`` that the caller logs and acknowledges.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Daraja timestamp format (e.g. 20191219102115)
DARAJA_TIME_FORMAT = "%Y%m%d%H%M%S"


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_daraja_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return datetime.strptime(str(value), DARAJA_TIME_FORMAT)
    except ValueError:
        return None


class _DarajaModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CallbackItem(_DarajaModel):
    name: str = Field(alias="Name")
    value: Any = Field(default=None, alias="Value")


class StkCallbackEvent(_DarajaModel):
    """Lipa Na M-Pesa Online (STK push) result callback."""

    kind: Literal["stk_callback"] = "stk_callback"
    merchant_request_id: Optional[str] = Field(default=None, alias="MerchantRequestID")
    checkout_request_id: str = Field(alias="CheckoutRequestID")
    result_code: int = Field(alias="ResultCode")
    result_desc: Optional[str] = Field(default=None, alias="ResultDesc")
    items: List[CallbackItem] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    def item(self, name: str) -> Any:
        for entry in self.items:
            if entry.name == name:
                return entry.value
        return None

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0

    @property
    def amount(self) -> Optional[Decimal]:
        return _to_decimal(self.item("Amount"))

    @property
    def receipt_number(self) -> Optional[str]:
        value = self.item("MpesaReceiptNumber")
        return str(value) if value else None

    @property
    def phone(self) -> Optional[str]:
        value = self.item("PhoneNumber")
        return str(value) if value else None

    @property
    def transaction_time(self) -> Optional[datetime]:
        return parse_daraja_time(self.item("TransactionDate"))

    @property
    def account_reference(self) -> Optional[str]:
        value = self.item("AccountReference")
        return str(value) if value else None

    @property
    def dedup_key(self) -> str:
        return self.receipt_number or self.checkout_request_id


class _C2BPayload(_DarajaModel):
    transaction_type: Optional[str] = Field(default=None, alias="TransactionType")
    trans_id: Optional[str] = Field(default=None, alias="TransID")
    trans_time: Optional[str] = Field(default=None, alias="TransTime")
    trans_amount: Optional[Decimal] = Field(default=None, alias="TransAmount")
    business_short_code: Optional[str] = Field(default=None, alias="BusinessShortCode")
    bill_ref_number: Optional[str] = Field(default=None, alias="BillRefNumber")
    msisdn: Optional[str] = Field(default=None, alias="MSISDN")
    first_name: Optional[str] = Field(default=None, alias="FirstName")
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @field_validator("trans_amount", mode="before")
    @classmethod
    def _amount(cls, value):
        return _to_decimal(value)

    @field_validator("trans_id", "trans_time", "business_short_code", "bill_ref_number", "msisdn", mode="before")
    @classmethod
    def _stringify(cls, value):
        if value is None or value == "":
            return None
        return str(value).strip()

    @property
    def transaction_time(self) -> Optional[datetime]:
        return parse_daraja_time(self.trans_time)


class C2BValidationEvent(_C2BPayload):
    """Customer-to-business validation request (answer synchronously)."""

    kind: Literal["c2b_validation"] = "c2b_validation"


class C2BConfirmationEvent(_C2BPayload):
    """Customer-to-business confirmation (money has moved)."""

    kind: Literal["c2b_confirmation"] = "c2b_confirmation"
    trans_id: str = Field(alias="TransID")

    @property
    def dedup_key(self) -> str:
        return self.trans_id


class UnparsedEvent(BaseModel):
    """Payload that matched no known gateway shape."""

    kind: Literal["unparsed"] = "unparsed"
    reason: str
    raw: Any = None


GatewayEvent = Union[StkCallbackEvent, C2BValidationEvent, C2BConfirmationEvent, UnparsedEvent]

C2B_VALIDATION = "c2b_validation"
C2B_CONFIRMATION = "c2b_confirmation"


def _parse_stk(payload: dict) -> GatewayEvent:
    body = payload.get("Body")
    stk = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(stk, dict):
        return UnparsedEvent(reason="missing Body.stkCallback", raw=payload)

    metadata = stk.get("CallbackMetadata") or {}
    if not isinstance(metadata, dict):
        return UnparsedEvent(reason="CallbackMetadata is not an object", raw=payload)
    items = metadata.get("Item") or []
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        return UnparsedEvent(reason="CallbackMetadata.Item is not a list", raw=payload)
    data = dict(stk)
    data["items"] = [i for i in items if isinstance(i, dict) and "Name" in i]
    data["raw"] = payload
    return StkCallbackEvent.model_validate(data)


def parse_gateway_event(payload: Any, expected: Optional[str] = None) -> GatewayEvent:
    """
    Parse an inbound Daraja body.

    Args:
        payload: Decoded JSON body (any type)
        expected: ``c2b_validation`` or ``c2b_confirmation`` for the C2B
            endpoints, whose bodies share one shape; None for STK callbacks

    Returns:
        The matching event model, or UnparsedEvent. Never raises.
    """
    if not isinstance(payload, dict):
        return UnparsedEvent(reason=f"payload is {type(payload).__name__}, not an object", raw=payload)

    try:
        if "Body" in payload:
            return _parse_stk(payload)

        if expected == C2B_VALIDATION:
            return C2BValidationEvent.model_validate({**payload, "raw": payload})

        if "TransID" in payload:
            return C2BConfirmationEvent.model_validate({**payload, "raw": payload})

    except ValidationError as e:
        logger.warning(f"Gateway payload failed validation: {e.error_count()} errors")
        return UnparsedEvent(reason=f"invalid payload: {e.errors()[0].get('msg')}", raw=payload)
    except (TypeError, AttributeError) as e:
        logger.warning(f"Gateway payload has an unexpected structure: {e}")
        return UnparsedEvent(reason=f"malformed payload: {e}", raw=payload)

    return UnparsedEvent(reason="unrecognized payload shape", raw=payload)
