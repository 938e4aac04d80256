"""Integration tests for Lease Service."""

import pytest
from uuid import uuid4
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from services.lease_service.main import app
from services.lease_service.domain import schedule
from services.lease_service.domain.lease_service import LeaseService, LeaseStateMachine
from shared.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from shared.models.lease import EsignatureStatus, LeaseStatus
from shared.models.payment import LeasePayment
from shared.repositories.lease import LeaseRepository
from shared.repositories.payment import PaymentRepository


class TestLeaseStateMachine:
    """Test lease state machine."""

    def test_valid_transitions(self):
        assert LeaseStateMachine.can_transition(LeaseStatus.PENDING, LeaseStatus.ACTIVE)
        assert LeaseStateMachine.can_transition(LeaseStatus.ACTIVE, LeaseStatus.SUSPENDED)
        assert LeaseStateMachine.can_transition(LeaseStatus.SUSPENDED, LeaseStatus.ACTIVE)
        assert LeaseStateMachine.can_transition(LeaseStatus.ACTIVE, LeaseStatus.EXPIRED)

    def test_terminal_states(self):
        for terminal in (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED):
            for target in LeaseStatus:
                assert not LeaseStateMachine.can_transition(terminal, target)

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError):
            LeaseStateMachine.validate_transition(LeaseStatus.PENDING, LeaseStatus.SUSPENDED)


class TestCreateLease:
    """Test lease creation."""

    @pytest.mark.asyncio
    async def test_create_lease_active_without_signatures(self, make_lease, test_db_session, directory):
        lease = await make_lease()

        assert lease.status == LeaseStatus.ACTIVE
        assert lease.property_id == "PROP-1"
        assert lease.organization_id == "ORG-1"
        assert lease.first_payment_date == date(2024, 1, 1)
        assert lease.terms["billing"]["billing_cycle_day"] == 1
        assert lease.terms["billing"]["estimated_periods"] == 12
        assert "next_due_date" not in lease.terms["billing"]

        history = await LeaseService(test_db_session, directory=directory).get_lease_history(lease.id)
        assert [e.event_type for e in history] == ["LEASE_CREATED"]

    @pytest.mark.asyncio
    async def test_create_lease_pending_until_signed(self, make_lease, test_db_session, directory):
        lease = await make_lease(esignatures=[
            {"user_id": "TENANT-1", "role": "tenant"},
            {"user_id": "LANDLORD-1", "role": "landlord", "status": "signed"},
        ])
        assert lease.status == LeaseStatus.PENDING

        service = LeaseService(test_db_session, directory=directory)
        lease = await service.update_esignature(lease.id, "TENANT-1", EsignatureStatus.SIGNED)

        assert lease.status == LeaseStatus.ACTIVE
        assert all(p["status"] == "signed" for p in lease.esignatures)
        history = await service.get_lease_history(lease.id)
        assert [e.event_type for e in history] == [
            "LEASE_CREATED",
            "ESIGNATURE_UPDATED",
            "LEASE_ACTIVATED",
        ]

    @pytest.mark.asyncio
    async def test_rejected_signature_keeps_lease_pending(self, make_lease, test_db_session, directory):
        lease = await make_lease(esignatures=[{"user_id": "TENANT-1"}])
        service = LeaseService(test_db_session, directory=directory)

        lease = await service.update_esignature(lease.id, "TENANT-1", EsignatureStatus.REJECTED)
        assert lease.status == LeaseStatus.PENDING
        lease_id = lease.id

        with pytest.raises(ValidationError):
            await service.update_esignature(lease_id, "TENANT-1", EsignatureStatus.SIGNED)
        with pytest.raises(NotFoundError):
            await service.update_esignature(lease_id, "NOBODY", EsignatureStatus.SIGNED)

    @pytest.mark.asyncio
    async def test_overlapping_lease_conflicts(self, make_lease):
        await make_lease()

        with pytest.raises(ConflictError):
            await make_lease(start_date=date(2024, 6, 1), end_date=date(2025, 6, 1))

    @pytest.mark.asyncio
    async def test_overlap_checks_run_under_unit_lock(self, make_lease, test_db_session, directory):
        with patch.object(LeaseRepository, "lock_unit", new_callable=AsyncMock) as lock:
            lease = await make_lease()
            await LeaseService(test_db_session, directory=directory).extend_lease(lease.id, date(2025, 6, 30))

        assert [c.args for c in lock.await_args_list] == [("UNIT-1",), ("UNIT-1",)]

    @pytest.mark.asyncio
    async def test_adjacent_lease_allowed(self, make_lease):
        await make_lease()

        follow_up = await make_lease(start_date=date(2024, 12, 31), end_date=date(2025, 12, 31))

        assert follow_up.status == LeaseStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_other_unit_not_affected(self, make_lease):
        await make_lease()

        other = await make_lease(unit_id="UNIT-2", tenant_id="TENANT-2")

        assert other.unit_id == "UNIT-2"

    @pytest.mark.asyncio
    async def test_organization_mismatch_rejected(self, make_lease):
        with pytest.raises(ValidationError):
            await make_lease(organization_id="ORG-OTHER")

    @pytest.mark.asyncio
    async def test_unknown_unit_or_tenant(self, make_lease):
        with pytest.raises(NotFoundError):
            await make_lease(unit_id="UNIT-404")
        with pytest.raises(NotFoundError):
            await make_lease(tenant_id="TENANT-404")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"amount": Decimal("0")},
        {"amount": Decimal("-5")},
        {"end_date": date(2024, 1, 1)},
        {"end_date": date(2023, 12, 31)},
        {"first_payment_date": date(2025, 2, 1)},
    ])
    async def test_invalid_inputs(self, make_lease, overrides):
        with pytest.raises(ValidationError):
            await make_lease(**overrides)


class TestTermChanges:
    """Test extend and terminate."""

    @pytest.mark.asyncio
    async def test_extend_lease_keeps_billing_past_old_end(self, make_lease, test_db_session, directory):
        lease = await make_lease(start_date=date(2025, 1, 1), end_date=date(2025, 6, 1))
        service = LeaseService(test_db_session, directory=directory)

        lease = await service.extend_lease(lease.id, date(2026, 1, 1))

        assert lease.end_date == date(2026, 1, 1)
        assert lease.terms["billing"]["estimated_periods"] == 13
        day = date(2025, 6, 2)
        while day <= date(2026, 1, 1):
            assert schedule.next_due_date(lease, day) is not None
            day += timedelta(days=1)
        assert schedule.next_due_date(lease, date(2025, 6, 2)) == date(2025, 7, 1)

    @pytest.mark.asyncio
    async def test_extend_with_new_amount(self, make_lease, test_db_session, directory):
        lease = await make_lease()
        service = LeaseService(test_db_session, directory=directory)

        lease = await service.extend_lease(lease.id, date(2025, 6, 30), Decimal("32000"))

        assert lease.amount == Decimal("32000")
        steps = [(s["effective_from"], Decimal(s["amount"])) for s in lease.terms["amount_history"]]
        assert steps == [("2024-01-01", Decimal("30000")), ("2025-01-01", Decimal("32000"))]
        assert schedule.amount_on(lease, date(2024, 12, 1)) == Decimal("30000")
        assert schedule.amount_on(lease, date(2025, 1, 1)) == Decimal("32000")
        history = await service.get_lease_history(lease.id)
        assert history[-1].event_type == "LEASE_EXTENDED"
        assert history[-1].amount == Decimal("32000")

    @pytest.mark.asyncio
    async def test_extend_rejections(self, make_lease, test_db_session, directory):
        lease_id = (await make_lease()).id
        await make_lease(start_date=date(2025, 3, 1), end_date=date(2025, 12, 31))
        pending_id = (await make_lease(unit_id="UNIT-2", esignatures=[{"user_id": "TENANT-1"}])).id
        service = LeaseService(test_db_session, directory=directory)

        with pytest.raises(ValidationError):
            await service.extend_lease(lease_id, date(2024, 6, 30))
        with pytest.raises(ValidationError):
            await service.extend_lease(lease_id, date(2024, 12, 31), Decimal("31000"))
        with pytest.raises(ConflictError):
            await service.extend_lease(lease_id, date(2025, 6, 30))
        with pytest.raises(InvalidTransitionError):
            await service.extend_lease(pending_id, date(2025, 6, 30))
        with pytest.raises(NotFoundError):
            await service.extend_lease(uuid4(), date(2025, 6, 30))

    @pytest.mark.asyncio
    async def test_terminate_lease_stops_anchors(self, make_lease, test_db_session, directory):
        lease = await make_lease(start_date=date(2025, 1, 1), end_date=date(2025, 12, 31))
        await PaymentRepository(test_db_session).create(LeasePayment(
            lease_id=lease.id,
            tenant_id=lease.tenant_id,
            unit_id=lease.unit_id,
            property_id=lease.property_id,
            organization_id=lease.organization_id,
            amount=Decimal("30000"),
            paid_at=datetime(2025, 1, 3),
            type_code="RENT",
        ))
        await test_db_session.commit()
        service = LeaseService(test_db_session, directory=directory)

        lease = await service.terminate_lease(lease.id, date(2025, 4, 15), reason="moved out")

        assert lease.status == LeaseStatus.TERMINATED
        assert lease.end_date == date(2025, 4, 15)
        assert lease.terms["termination"]["reason"] == "moved out"
        assert schedule.billing_schedule(lease).dates()[-1] == date(2025, 4, 1)
        assert len(schedule.periods_between(lease, date(2025, 5, 1), date(2025, 5, 31))) == 0
        assert await PaymentRepository(test_db_session).get_total_for_lease(lease.id) == Decimal("30000")

    @pytest.mark.asyncio
    async def test_terminate_rejections(self, make_lease, test_db_session, directory):
        lease_id = (await make_lease()).id
        service = LeaseService(test_db_session, directory=directory)

        with pytest.raises(ValidationError):
            await service.terminate_lease(lease_id, date(2025, 2, 1))

        await service.terminate_lease(lease_id, date(2024, 6, 30))
        with pytest.raises(InvalidTransitionError):
            await service.terminate_lease(lease_id, date(2024, 6, 1))

    @pytest.mark.asyncio
    async def test_terminated_lease_frees_unit(self, make_lease, test_db_session, directory):
        lease = await make_lease()
        await LeaseService(test_db_session, directory=directory).terminate_lease(lease.id, date(2024, 6, 30))

        replacement = await make_lease(start_date=date(2024, 7, 1), end_date=date(2025, 6, 30))

        assert replacement.status == LeaseStatus.ACTIVE


class TestStatusTransitions:
    """Test suspend, resume, expire and delete."""

    @pytest.mark.asyncio
    async def test_suspend_and_resume(self, make_lease, test_db_session, directory):
        lease = await make_lease()
        service = LeaseService(test_db_session, directory=directory)

        lease = await service.suspend_lease(lease.id, reason="dispute")
        assert lease.status == LeaseStatus.SUSPENDED
        assert schedule.next_due_date(lease, date(2024, 3, 1)) is None

        lease = await service.resume_lease(lease.id)
        assert lease.status == LeaseStatus.ACTIVE

        with pytest.raises(InvalidTransitionError):
            await service.resume_lease(lease.id)

    @pytest.mark.asyncio
    async def test_pending_lease_cannot_be_suspended(self, make_lease, test_db_session, directory):
        lease = await make_lease(esignatures=[{"user_id": "TENANT-1"}])

        with pytest.raises(InvalidTransitionError):
            await LeaseService(test_db_session, directory=directory).suspend_lease(lease.id)

    @pytest.mark.asyncio
    async def test_expire_leases(self, make_lease, test_db_session, directory):
        ended = await make_lease()
        running = await make_lease(unit_id="UNIT-2", end_date=date(2025, 12, 31))
        service = LeaseService(test_db_session, directory=directory)

        expired = await service.expire_leases(date(2025, 1, 1))

        assert expired == [ended.id]
        assert (await service.get_lease(ended.id)).status == LeaseStatus.EXPIRED
        assert (await service.get_lease(running.id)).status == LeaseStatus.ACTIVE
        assert await service.expire_leases(date(2025, 1, 1)) == []

    @pytest.mark.asyncio
    async def test_lease_ending_today_not_expired(self, make_lease, test_db_session, directory):
        await make_lease()

        service = LeaseService(test_db_session, directory=directory)

        assert await service.expire_leases(date(2024, 12, 31)) == []

    @pytest.mark.asyncio
    async def test_deleted_lease_hidden(self, make_lease, test_db_session, directory):
        lease = await make_lease()
        service = LeaseService(test_db_session, directory=directory)

        await service.delete_lease(lease.id)

        with pytest.raises(NotFoundError):
            await service.get_lease(lease.id)
        assert await service.list_by_tenant("TENANT-1") == []
        assert await service.list_by_unit("UNIT-1") == []
        replacement = await make_lease()
        assert replacement.status == LeaseStatus.ACTIVE


class TestScans:
    """Test scheduler scans."""

    @pytest.mark.asyncio
    async def test_esignature_reminder_scan(self, make_lease, test_db_session, directory):
        pending = await make_lease(esignatures=[{"user_id": "TENANT-1"}])
        await make_lease(unit_id="UNIT-2")
        service = LeaseService(test_db_session, directory=directory)

        later = datetime.utcnow() + timedelta(days=2)

        assert [l.id for l in await service.find_leases_needing_esignature_reminders(1, now=later)] == [pending.id]
        assert await service.find_leases_needing_esignature_reminders(1) == []

    @pytest.mark.asyncio
    async def test_missing_payment_scan(self, make_lease, test_db_session, directory):
        unpaid = await make_lease()
        paid = await make_lease(unit_id="UNIT-2", tenant_id="TENANT-2")
        await PaymentRepository(test_db_session).create(LeasePayment(
            lease_id=paid.id,
            tenant_id=paid.tenant_id,
            unit_id=paid.unit_id,
            property_id=paid.property_id,
            organization_id=paid.organization_id,
            amount=Decimal("30000"),
            paid_at=datetime(2024, 3, 2),
            type_code="RENT",
        ))
        await test_db_session.commit()
        service = LeaseService(test_db_session, directory=directory)

        missing = await service.find_leases_with_missing_payments(date(2024, 3, 10))

        assert [lease.id for lease in missing] == [unpaid.id]

    @pytest.mark.asyncio
    async def test_upcoming_renewals(self, make_lease, test_db_session, directory):
        lease = await make_lease()
        service = LeaseService(test_db_session, directory=directory)

        assert [l.id for l in await service.find_upcoming_renewals(30, date(2024, 12, 15))] == [lease.id]
        assert await service.find_upcoming_renewals(30, date(2024, 11, 1)) == []
        with pytest.raises(ValidationError):
            await service.find_upcoming_renewals(-1, date(2024, 11, 1))


class TestReminders:
    """Test SMS reminders."""

    @pytest.mark.asyncio
    async def test_due_reminder_sent_on_due_date(self, make_lease, test_db_session, directory, notifier):
        lease = await make_lease()
        service = LeaseService(test_db_session, directory=directory, notifier=notifier)

        result = await service.send_due_payment_reminder(lease.id, date(2024, 3, 1))

        assert result["sent"] is True
        assert result["next_due_date"] == date(2024, 3, 1)
        phone, message, purpose = notifier.call_args.args
        assert phone == "254700000001"
        assert "2024-03-01" in message
        assert purpose == "LEASE_PAYMENT_DUE"

    @pytest.mark.asyncio
    async def test_due_reminder_skipped_before_due_date(self, make_lease, test_db_session, directory, notifier):
        lease = await make_lease()
        service = LeaseService(test_db_session, directory=directory, notifier=notifier)

        result = await service.send_due_payment_reminder(lease.id, date(2024, 3, 2))

        assert result == {"sent": False, "reason": "not yet due", "next_due_date": date(2024, 4, 1)}
        notifier.assert_not_called()

    @pytest.mark.asyncio
    async def test_due_reminder_for_terminated_lease(self, make_lease, test_db_session, directory, notifier):
        lease = await make_lease()
        service = LeaseService(test_db_session, directory=directory, notifier=notifier)
        await service.terminate_lease(lease.id, date(2024, 6, 30))

        result = await service.send_due_payment_reminder(lease.id, date(2024, 3, 1))

        assert result["sent"] is False
        assert result["next_due_date"] is None

    @pytest.mark.asyncio
    async def test_esignature_reminder_uses_party_phone_or_directory(
        self, make_lease, test_db_session, directory, notifier
    ):
        lease = await make_lease(esignatures=[
            {"user_id": "TENANT-1"},
            {"user_id": "LANDLORD-1", "phone": "254711111111"},
            {"user_id": "AGENT-1", "status": "signed", "phone": "254722222222"},
        ])
        service = LeaseService(test_db_session, directory=directory, notifier=notifier)

        queued = await service.send_esignature_reminder(lease)

        assert queued == 2
        phones = sorted(call.args[0] for call in notifier.call_args_list)
        assert phones == ["254700000001", "254711111111"]


class TestLeaseAPI:
    """Test Lease API endpoints."""

    CREATE_BODY = {
        "tenant_id": "TENANT-1",
        "unit_id": "UNIT-1",
        "start_date": "2024-01-01",
        "end_date": "2024-12-31",
        "amount": "30000.00",
    }

    @pytest.mark.asyncio
    async def test_create_and_get_lease(self, client_for):
        async with client_for(app) as client:
            response = await client.post("/api/v1/leases", json=self.CREATE_BODY)
            assert response.status_code == 201
            body = response.json()
            assert body["status"] == "active"
            assert body["property_id"] == "PROP-1"

            response = await client.get(f"/api/v1/leases/{body['lease_id']}")
            assert response.status_code == 200
            assert response.json()["unit_id"] == "UNIT-1"

    @pytest.mark.asyncio
    async def test_create_lease_errors(self, client_for):
        async with client_for(app) as client:
            await client.post("/api/v1/leases", json=self.CREATE_BODY)

            conflict = await client.post("/api/v1/leases", json=self.CREATE_BODY)
            unknown = await client.post("/api/v1/leases", json={**self.CREATE_BODY, "unit_id": "UNIT-404"})
            bad_range = await client.post(
                "/api/v1/leases",
                json={**self.CREATE_BODY, "unit_id": "UNIT-2", "end_date": "2023-01-01"},
            )
            missing = await client.post("/api/v1/leases", json={"tenant_id": "TENANT-1"})

        assert conflict.status_code == 409
        assert unknown.status_code == 404
        assert bad_range.status_code == 400
        assert missing.status_code == 422

    @pytest.mark.asyncio
    async def test_get_unknown_lease(self, client_for):
        async with client_for(app) as client:
            response = await client.get(f"/api/v1/leases/{uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_terminate_and_history(self, client_for):
        async with client_for(app) as client:
            lease_id = (await client.post("/api/v1/leases", json=self.CREATE_BODY)).json()["lease_id"]

            response = await client.post(
                f"/api/v1/leases/{lease_id}/terminate",
                json={"termination_date": "2024-04-15", "reason": "moved out"},
            )
            assert response.status_code == 200
            assert response.json()["end_date"] == "2024-04-15"
            assert response.json()["next_due_date"] is None

            again = await client.post(
                f"/api/v1/leases/{lease_id}/terminate",
                json={"termination_date": "2024-04-10"},
            )
            assert again.status_code == 400

            history = await client.get(f"/api/v1/leases/{lease_id}/history")
            assert [e["event_type"] for e in history.json()["events"]] == [
                "LEASE_CREATED",
                "LEASE_TERMINATED",
            ]
            assert history.json()["total_events"] == 2

            terminated = await client.get(
                f"/api/v1/leases/{lease_id}/history", params={"event_type": "LEASE_TERMINATED"}
            )
            assert [e["payload"]["reason"] for e in terminated.json()["events"]] == ["moved out"]
            assert terminated.json()["total_events"] == 2

    @pytest.mark.asyncio
    async def test_delete_lease(self, client_for):
        async with client_for(app) as client:
            lease_id = (await client.post("/api/v1/leases", json=self.CREATE_BODY)).json()["lease_id"]

            response = await client.delete(f"/api/v1/leases/{lease_id}")
            assert response.status_code == 204

            assert (await client.get(f"/api/v1/leases/{lease_id}")).status_code == 404
            assert (await client.get("/api/v1/leases/tenant/TENANT-1")).json() == []

    @pytest.mark.asyncio
    async def test_expire_endpoint(self, client_for):
        async with client_for(app) as client:
            lease_id = (await client.post("/api/v1/leases", json=self.CREATE_BODY)).json()["lease_id"]

            response = await client.post("/api/v1/leases/expire", json={"as_of": "2025-01-01"})

        assert response.status_code == 200
        assert response.json()["expired"] == [lease_id]
