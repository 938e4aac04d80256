"""Integration tests for Payment Service."""

import pytest
from uuid import uuid4
from decimal import Decimal
from unittest.mock import AsyncMock

from services.payment_service.main import app
from services.payment_service.api.routes import get_gateway
from services.payment_service.domain.mpesa_gateway import MpesaGateway, StkPushResult
from services.payment_service.domain.reconciliation_service import ReconciliationService
from services.lease_service.domain.lease_service import LeaseService
from shared.exceptions import GatewayError, InvalidTransitionError, NotFoundError, ValidationError
from shared.models.checkout import CheckoutStatus
from shared.repositories.checkout import CheckoutRepository
from shared.repositories.payment import PaymentRepository
from tests.mpesa_payloads import c2b_payload, stk_payload

CHECKOUT_ID = "ws_CO_191220191020363925"


@pytest.fixture
def gateway():
    """Daraja client with webhooks open and the STK push stubbed."""
    fake = MpesaGateway(webhook_secret="", webhook_token="")
    fake.stk_push = AsyncMock(return_value=StkPushResult(
        checkout_id=CHECKOUT_ID,
        merchant_request_id="29115-34620561-1",
        message="Success. Request accepted for processing",
    ))
    return fake


@pytest.fixture
def reconciliation(test_db_session, gateway, directory):
    return ReconciliationService(test_db_session, gateway=gateway, directory=directory)


class TestInitiatePayment:
    """Test STK push initiation."""

    @pytest.mark.asyncio
    async def test_initiate_uses_tenant_phone(self, make_lease, reconciliation, gateway, test_db_session):
        lease = await make_lease()

        checkout = await reconciliation.initiate_payment(lease.id, Decimal("10"))

        assert checkout.checkout_id == CHECKOUT_ID
        assert checkout.status == CheckoutStatus.PENDING
        assert checkout.phone == "254700000001"
        gateway.stk_push.assert_awaited_once_with(
            amount=Decimal("10"),
            phone="254700000001",
            account_reference=str(lease.id),
        )
        # Nothing reaches the ledger before confirmation
        assert await PaymentRepository(test_db_session).count_for_lease(lease.id) == 0

    @pytest.mark.asyncio
    async def test_initiate_with_explicit_phone(self, make_lease, reconciliation):
        lease = await make_lease()

        checkout = await reconciliation.initiate_payment(lease.id, Decimal("10"), phone="254799999999")

        assert checkout.phone == "254799999999"

    @pytest.mark.asyncio
    async def test_initiate_rejections(self, make_lease, reconciliation, directory):
        active = await make_lease()
        pending = await make_lease(unit_id="UNIT-2", esignatures=[{"user_id": "TENANT-1"}])

        with pytest.raises(ValidationError):
            await reconciliation.initiate_payment(active.id, Decimal("0"))
        with pytest.raises(ValidationError):
            await reconciliation.initiate_payment(active.id, Decimal("99999999"))
        with pytest.raises(NotFoundError):
            await reconciliation.initiate_payment(uuid4(), Decimal("10"))
        with pytest.raises(InvalidTransitionError):
            await reconciliation.initiate_payment(pending.id, Decimal("10"))

        directory.add_tenant("TENANT-1", phone=None)
        with pytest.raises(ValidationError):
            await reconciliation.initiate_payment(active.id, Decimal("10"))

    @pytest.mark.asyncio
    async def test_gateway_failure_stores_nothing(self, make_lease, reconciliation, gateway, test_db_session):
        lease = await make_lease()
        gateway.stk_push.side_effect = GatewayError("Daraja rejected STK push")

        with pytest.raises(GatewayError):
            await reconciliation.initiate_payment(lease.id, Decimal("10"))

        assert await CheckoutRepository(test_db_session).get_by_id(CHECKOUT_ID) is None


class TestConfirmations:
    """Test gateway confirmations against the ledger."""

    @pytest.mark.asyncio
    async def test_duplicate_stk_callbacks_record_once(self, make_lease, reconciliation, test_db_session):
        lease_id = (await make_lease()).id
        await reconciliation.initiate_payment(lease_id, Decimal("10"))

        first = await reconciliation.confirm_callback(stk_payload())
        second = await reconciliation.confirm_callback(stk_payload())

        assert first.status == "recorded"
        assert second.status == "duplicate"
        assert second.payment_id == first.payment_id
        assert first.ack == {"ResultCode": 0, "ResultDesc": "Received"}

        payments = await PaymentRepository(test_db_session).get_by_lease_id(lease_id)
        assert len(payments) == 1
        assert payments[0].amount == Decimal("10")
        assert payments[0].provider == "MPESA"
        assert payments[0].provider_transaction_id == "NLJ7RT61SV"

        checkout = await CheckoutRepository(test_db_session).get_by_id(CHECKOUT_ID)
        assert checkout.status == CheckoutStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_duplicate_c2b_confirmations_record_once(self, make_lease, reconciliation, test_db_session):
        lease_id = (await make_lease()).id
        payload = c2b_payload(TransID="NLJ7RT61SV", TransAmount="10", BillRefNumber=str(lease_id))

        first = await reconciliation.confirm_c2b_callback(payload)
        second = await reconciliation.confirm_c2b_callback(payload)

        assert (first.status, second.status) == ("recorded", "duplicate")
        payments = await PaymentRepository(test_db_session).get_by_lease_id(lease_id)
        assert [p.amount for p in payments] == [Decimal("10")]
        assert payments[0].payment_metadata["msisdn"] == "254708374149"

    @pytest.mark.asyncio
    async def test_failed_stk_marks_checkout_failed(self, make_lease, reconciliation, test_db_session):
        lease_id = (await make_lease()).id
        await reconciliation.initiate_payment(lease_id, Decimal("10"))

        outcome = await reconciliation.confirm_callback(stk_payload(result_code=1032))

        assert outcome.status == "failed"
        assert (await CheckoutRepository(test_db_session).get_by_id(CHECKOUT_ID)).status == CheckoutStatus.FAILED
        assert await PaymentRepository(test_db_session).count_for_lease(lease_id) == 0

    @pytest.mark.asyncio
    async def test_late_failure_keeps_completed_checkout(self, make_lease, reconciliation, test_db_session):
        lease_id = (await make_lease()).id
        await reconciliation.initiate_payment(lease_id, Decimal("10"))
        await reconciliation.confirm_callback(stk_payload())

        outcome = await reconciliation.confirm_callback(stk_payload(result_code=1032))

        assert outcome.status == "ignored"
        assert (await CheckoutRepository(test_db_session).get_by_id(CHECKOUT_ID)).status == CheckoutStatus.COMPLETED
        assert await PaymentRepository(test_db_session).count_for_lease(lease_id) == 1

    @pytest.mark.asyncio
    async def test_stk_without_checkout_uses_account_reference(self, make_lease, reconciliation, test_db_session):
        lease_id = (await make_lease()).id
        payload = stk_payload(checkout_id="ws_CO_unknown")
        payload["Body"]["stkCallback"]["CallbackMetadata"]["Item"].append(
            {"Name": "AccountReference", "Value": str(lease_id)}
        )

        outcome = await reconciliation.confirm_callback(payload)

        assert outcome.status == "recorded"
        assert outcome.lease_id == lease_id

    @pytest.mark.asyncio
    async def test_unknown_account_is_ignored(self, make_lease, reconciliation):
        await make_lease()

        outcome = await reconciliation.confirm_c2b_callback(c2b_payload(BillRefNumber="invoice008"))

        assert outcome.status == "ignored"
        assert outcome.ack["ResultCode"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [None, "garbage", {"hello": "world"}, {"Body": {}}])
    async def test_unparsed_payload_is_ignored(self, reconciliation, payload):
        outcome = await reconciliation.confirm_callback(payload)

        assert outcome.status == "ignored"
        assert outcome.reason


class TestValidation:
    """Test synchronous C2B validation."""

    @pytest.mark.asyncio
    async def test_accepts_active_lease(self, make_lease, reconciliation):
        lease = await make_lease()

        result = await reconciliation.validate_callback(c2b_payload(BillRefNumber=str(lease.id)))

        assert result == {"ResultCode": 0, "ResultDesc": "Accepted"}

    @pytest.mark.asyncio
    async def test_rejections(self, make_lease, reconciliation, test_db_session, directory):
        lease_id = (await make_lease()).id
        ref = str(lease_id)

        cases = [
            (c2b_payload(BillRefNumber=ref, TransAmount="0"), "Invalid amount"),
            (c2b_payload(BillRefNumber=ref, TransAmount=""), "Invalid amount"),
            (c2b_payload(BillRefNumber=ref, MSISDN=""), "Missing MSISDN"),
            (c2b_payload(BillRefNumber=ref, TransAmount="99999999"), "Amount exceeds limit"),
            (c2b_payload(BillRefNumber="invoice008"), "Unknown account"),
            ("not a dict", "Malformed request"),
        ]
        for payload, reason in cases:
            assert await reconciliation.validate_callback(payload) == {"ResultCode": 1, "ResultDesc": reason}

        await LeaseService(test_db_session, directory=directory).suspend_lease(lease_id)
        assert await reconciliation.validate_callback(c2b_payload(BillRefNumber=ref)) == {
            "ResultCode": 1,
            "ResultDesc": "Lease not active",
        }


class TestPaymentAPI:
    """Test Payment API endpoints."""

    @pytest.mark.asyncio
    async def test_initiate_endpoint(self, make_lease, client_for, gateway):
        lease = await make_lease()

        async with client_for(app, {get_gateway: lambda: gateway}) as client:
            response = await client.post(
                f"/api/v1/leases/{lease.id}/payments/initiate",
                json={"amount": "10.00"},
            )
            missing = await client.post(
                f"/api/v1/leases/{uuid4()}/payments/initiate",
                json={"amount": "10.00"},
            )

        assert response.status_code == 202
        assert response.json()["checkout_id"] == CHECKOUT_ID
        assert response.json()["status"] == "pending"
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_c2b_confirmation_endpoint_is_idempotent(self, make_lease, client_for, gateway, test_db_session):
        lease_id = (await make_lease()).id
        payload = c2b_payload(TransID="NLJ7RT61SV", BillRefNumber=str(lease_id))

        async with client_for(app, {get_gateway: lambda: gateway}) as client:
            first = await client.post("/api/v1/payments/webhooks/mpesa/c2b/confirm", json=payload)
            second = await client.post("/api/v1/payments/webhooks/mpesa/c2b/confirm", json=payload)
            garbage = await client.post(
                "/api/v1/payments/webhooks/mpesa/c2b/confirm",
                content=b"<xml/>",
                headers={"Content-Type": "application/xml"},
            )

        for response in (first, second, garbage):
            assert response.status_code == 200
            assert response.json()["ResultCode"] == 0
        assert await PaymentRepository(test_db_session).count_for_lease(lease_id) == 1

    @pytest.mark.asyncio
    async def test_validation_endpoint(self, make_lease, client_for, gateway):
        lease = await make_lease()

        async with client_for(app, {get_gateway: lambda: gateway}) as client:
            accepted = await client.post(
                "/api/v1/payments/webhooks/mpesa/c2b/validate",
                json=c2b_payload(BillRefNumber=str(lease.id)),
            )
            malformed = await client.post("/api/v1/payments/webhooks/mpesa/c2b/validate", content=b"nope")

        assert accepted.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}
        assert malformed.json() == {"ResultCode": 1, "ResultDesc": "Malformed request"}

    @pytest.mark.asyncio
    async def test_stk_callback_endpoint(self, make_lease, client_for, gateway, test_db_session):
        lease_id = (await make_lease()).id
        await ReconciliationService(test_db_session, gateway=gateway).initiate_payment(
            lease_id, Decimal("10"), phone="254708374149"
        )

        async with client_for(app, {get_gateway: lambda: gateway}) as client:
            response = await client.post("/api/v1/payments/webhooks/mpesa", json=stk_payload())

        assert response.json() == {"ResultCode": 0, "ResultDesc": "Received"}
        assert await PaymentRepository(test_db_session).count_for_lease(lease_id) == 1

    @pytest.mark.asyncio
    async def test_unauthenticated_webhook_rejected(self, client_for):
        secured = MpesaGateway(webhook_secret="", webhook_token="tok")

        async with client_for(app, {get_gateway: lambda: secured}) as client:
            denied = await client.post("/api/v1/payments/webhooks/mpesa", json=stk_payload())
            allowed = await client.post(
                "/api/v1/payments/webhooks/mpesa",
                json={"unexpected": True},
                headers={"X-Webhook-Token": "tok"},
            )

        assert denied.status_code == 401
        assert allowed.status_code == 200
        assert allowed.json()["ResultCode"] == 0
