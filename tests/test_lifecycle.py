"""Tests for the job lifecycle state machine."""

from decimal import Decimal

import pytest

from core.gateways.base import PaymentGatewayError
from jobs import lifecycle
from jobs.catalog import get_service, get_services
from jobs.models import JobRequest
from users.models import Mechanic

Status = JobRequest.Status

pytestmark = pytest.mark.django_db


def book(customer, ids=("d1",), **kwargs):
    kwargs.setdefault("latitude", 37.77)
    kwargs.setdefault("longitude", -122.41)
    return lifecycle.create_job_request(customer, "2018 Honda Civic", get_services(ids), **kwargs)


def advance(job, mechanic, target):
    steps = [
        (Status.ACCEPTED, lifecycle.accept_job),
        (Status.ARRIVED, lifecycle.mark_arrived),
        (Status.IN_PROGRESS, lifecycle.start_job),
    ]
    for status, step in steps:
        job = step(job.id, mechanic)
        if status == target:
            return job
    raise AssertionError(f"cannot advance to {target}")


def details(description="Replaced brake pads", parts_cost="0.00", **kwargs):
    return lifecycle.CompletionDetails(description=description, parts_cost=Decimal(parts_cost), **kwargs)


# --- Transition table ---

@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (Status.NEW, Status.ACCEPTED, True),
        (Status.ACCEPTED, Status.ARRIVED, True),
        (Status.ARRIVED, Status.IN_PROGRESS, True),
        (Status.IN_PROGRESS, Status.COMPLETED, True),
        (Status.NEW, Status.IN_PROGRESS, False),
        (Status.ACCEPTED, Status.COMPLETED, False),
        (Status.COMPLETED, Status.NEW, False),
        (Status.ARRIVED, Status.ACCEPTED, False),
        (Status.NEW, "DECLINED", False),
    ],
)
def test_can_transition(current, target, allowed):
    assert lifecycle.can_transition(current, target) is allowed


# --- Create ---

def test_create_job_starts_new_and_unassigned(customer, mechanic, gateway):
    job = book(customer, ("r1",), requested_mechanic=mechanic, payment_intent_id="pi_123")

    job.refresh_from_db()
    assert job.status == Status.NEW
    assert job.mechanic is None
    assert job.requested_mechanic == mechanic
    assert job.urgency == JobRequest.Urgency.HIGH
    assert job.payment_status == JobRequest.PaymentStatus.AUTHORIZED
    assert job.subtotal == Decimal("380.00")
    assert job.payout == job.mechanic_payout == Decimal("304.00")
    assert job.issue == "Alternator Replacement"
    assert job.services[0]["id"] == "r1"

    phone, message = gateway.notifications.sms[-1]
    assert phone == str(mechanic.user.mobile_number)
    assert message == "New Job: 2018 Honda Civic - Alternator Replacement. Payout: $304.00"


def test_create_job_without_repairs_is_normal_and_pending(customer, gateway):
    job = book(customer, ("m1", "m7"))

    assert job.urgency == JobRequest.Urgency.NORMAL
    assert job.payment_status == JobRequest.PaymentStatus.PENDING
    assert gateway.notifications.sms == []


def test_create_job_requires_services(customer):
    with pytest.raises(lifecycle.JobValidationError):
        lifecycle.create_job_request(customer, "Civic", [])
    assert JobRequest.objects.count() == 0


# --- Accept ---

def test_accept_binds_mechanic_and_notifies_customer(customer, mechanic, gateway):
    job = book(customer)

    job = lifecycle.accept_job(job.id, mechanic)

    assert job.status == Status.ACCEPTED
    assert job.mechanic == mechanic
    mechanic.refresh_from_db()
    assert mechanic.availability == Mechanic.AvailabilityChoices.ON_ANOTHER_JOB
    assert gateway.notifications.sms[-1] == (str(customer.mobile_number), "MechanicNow: Your mechanic is on the way!")


def test_second_accept_is_rejected(customer, make_mechanic, gateway):
    first, second = make_mechanic(), make_mechanic()
    job = book(customer)
    lifecycle.accept_job(job.id, first)

    with pytest.raises(lifecycle.JobUnavailableError) as exc_info:
        lifecycle.accept_job(job.id, second)

    assert str(exc_info.value) == "This job is no longer available."
    job.refresh_from_db()
    assert job.mechanic == first
    second.refresh_from_db()
    assert second.availability == Mechanic.AvailabilityChoices.AVAILABLE_NOW


def test_accept_missing_job(mechanic):
    with pytest.raises(lifecycle.JobNotFoundError):
        lifecycle.accept_job(999999, mechanic)


# --- Arrive / start ---

def test_only_assigned_mechanic_can_advance(customer, make_mechanic, gateway):
    owner, other = make_mechanic(), make_mechanic()
    job = book(customer)
    lifecycle.accept_job(job.id, owner)

    with pytest.raises(lifecycle.NotAssignedMechanicError):
        lifecycle.mark_arrived(job.id, other)

    job.refresh_from_db()
    assert job.status == Status.ACCEPTED


def test_states_cannot_be_skipped(customer, mechanic, gateway):
    job = book(customer)
    lifecycle.accept_job(job.id, mechanic)

    with pytest.raises(lifecycle.InvalidTransitionError):
        lifecycle.start_job(job.id, mechanic)

    job.refresh_from_db()
    assert job.status == Status.ACCEPTED


def test_arrive_and_start_notify_customer(customer, mechanic, gateway):
    job = book(customer)

    advance(job, mechanic, Status.IN_PROGRESS)

    messages = [message for _, message in gateway.notifications.sms]
    assert "MechanicNow: Your mechanic has arrived." in messages
    assert "MechanicNow: Work on your vehicle has started." in messages


# --- Complete ---

def test_complete_with_card_captures_and_pays_out(customer, mechanic, gateway):
    job = book(customer, payment_intent_id="pi_123")
    advance(job, mechanic, Status.IN_PROGRESS)

    job = lifecycle.complete_job(
        job.id, mechanic, details(parts="Pads", parts_cost="40.00"), JobRequest.SettlementMethod.CARD
    )

    assert gateway.payment.captures == [(job.id, Decimal("175.00"))]
    job.refresh_from_db()
    assert job.status == Status.COMPLETED
    assert job.payment_status == JobRequest.PaymentStatus.CAPTURED
    assert job.settlement_method == JobRequest.SettlementMethod.CARD
    assert job.completion_description == "Replaced brake pads"
    assert job.parts_cost == Decimal("40.00")
    assert job.payout_summary == {
        "base_labor": "100.00",
        "parts_cost": "40.00",
        "customer_total": "140.00",
        "platform_fee": "20.00",
        "mechanic_net": "120.00",
    }

    mechanic.refresh_from_db()
    assert mechanic.earnings_today == Decimal("100.00")
    assert mechanic.earnings_week == Decimal("100.00")
    assert mechanic.earnings_month == Decimal("100.00")
    assert mechanic.jobs_completed == 1
    assert mechanic.availability == Mechanic.AvailabilityChoices.AVAILABLE_NOW

    assert gateway.notifications.sms[-1][1] == "MechanicNow: Your service is complete. Total: $140.00"
    assert gateway.notifications.emails[-1][:2] == (customer.email, "Your MechanicNow receipt")


def test_complete_requires_description(customer, mechanic, gateway):
    job = book(customer)
    advance(job, mechanic, Status.IN_PROGRESS)

    with pytest.raises(lifecycle.CompletionValidationError):
        lifecycle.complete_job(job.id, mechanic, details(description="   "), "CASH")

    job.refresh_from_db()
    assert job.status == Status.IN_PROGRESS
    assert job.completion_description == ""


def test_complete_rejects_unknown_settlement(customer, mechanic, gateway):
    job = book(customer)
    advance(job, mechanic, Status.IN_PROGRESS)

    with pytest.raises(lifecycle.CompletionValidationError):
        lifecycle.complete_job(job.id, mechanic, details(), "BITCOIN")


def test_capture_failure_leaves_job_in_progress(customer, mechanic, gateway):
    gateway.payment.fail_capture = True
    job = book(customer, payment_intent_id="pi_123")
    advance(job, mechanic, Status.IN_PROGRESS)

    with pytest.raises(lifecycle.PaymentCaptureError):
        lifecycle.complete_job(job.id, mechanic, details(), "CARD")

    job.refresh_from_db()
    assert job.status == Status.IN_PROGRESS
    assert job.payment_status == JobRequest.PaymentStatus.AUTHORIZED
    assert job.payout_summary == {}
    mechanic.refresh_from_db()
    assert mechanic.earnings_week == Decimal("0.00")
    assert mechanic.jobs_completed == 0


def test_capture_runs_after_local_writes(customer, mechanic, gateway):
    seen = []

    def capture(job_id, amount):
        row = JobRequest.objects.get(pk=job_id)
        seen.append((row.status, row.payment_status))
        return {"success": True}

    gateway.payment.capture = capture
    job = book(customer, payment_intent_id="pi_123")
    advance(job, mechanic, Status.IN_PROGRESS)

    lifecycle.complete_job(job.id, mechanic, details(), "CARD")

    assert seen == [(Status.COMPLETED, JobRequest.PaymentStatus.CAPTURED)]


def test_completion_keeps_offline_mechanic_offline(customer, mechanic, gateway):
    job = book(customer)
    advance(job, mechanic, Status.IN_PROGRESS)
    lifecycle.set_online(mechanic, False)

    lifecycle.complete_job(job.id, mechanic, details(), "CASH")

    mechanic.refresh_from_db()
    assert mechanic.availability == Mechanic.AvailabilityChoices.OFFLINE
    assert mechanic.jobs_completed == 1


def test_completion_keeps_mechanic_busy_with_another_open_job(customer, mechanic, gateway):
    first = book(customer)
    advance(first, mechanic, Status.IN_PROGRESS)
    second = book(customer)
    lifecycle.accept_job(second.id, mechanic)

    lifecycle.complete_job(first.id, mechanic, details(), "CASH")

    mechanic.refresh_from_db()
    assert mechanic.availability == Mechanic.AvailabilityChoices.ON_ANOTHER_JOB


@pytest.mark.parametrize("method", ["CASH", "EXTERNAL"])
def test_non_card_settlement_never_captures(customer, mechanic, gateway, method):
    job = book(customer, payment_intent_id="pi_123")
    advance(job, mechanic, Status.IN_PROGRESS)

    job = lifecycle.complete_job(job.id, mechanic, details(), method)

    assert gateway.payment.captures == []
    assert job.payment_status == JobRequest.PaymentStatus.PENDING


def test_card_without_authorization_does_not_capture(customer, mechanic, gateway):
    job = book(customer)
    advance(job, mechanic, Status.IN_PROGRESS)

    job = lifecycle.complete_job(job.id, mechanic, details(), "CARD")

    assert gateway.payment.captures == []
    assert job.payment_status == JobRequest.PaymentStatus.CAPTURED


def test_replayed_completion_counts_earnings_once(customer, mechanic, gateway):
    job = book(customer, payment_intent_id="pi_123")
    advance(job, mechanic, Status.IN_PROGRESS)
    lifecycle.complete_job(job.id, mechanic, details(), "CARD")

    with pytest.raises(lifecycle.InvalidTransitionError):
        lifecycle.complete_job(job.id, mechanic, details(), "CARD")

    mechanic.refresh_from_db()
    assert mechanic.earnings_week == Decimal("100.00")
    assert mechanic.jobs_completed == 1
    assert len(gateway.payment.captures) == 1


def test_parts_can_be_included_in_earnings(settings, customer, mechanic, gateway):
    settings.MECHANICNOW = {**settings.MECHANICNOW, "EARNINGS_INCLUDE_PARTS": True}
    job = book(customer)
    advance(job, mechanic, Status.IN_PROGRESS)

    lifecycle.complete_job(job.id, mechanic, details(parts_cost="40.00"), "CASH")

    mechanic.refresh_from_db()
    assert mechanic.earnings_week == Decimal("140.00")


# --- Decline ---

def test_decline_removes_new_job(customer, mechanic):
    job = book(customer)

    lifecycle.decline_job(job.id, mechanic)

    assert not JobRequest.objects.filter(pk=job.id).exists()


def test_decline_after_accept_is_rejected(customer, mechanic, gateway):
    job = book(customer)
    lifecycle.accept_job(job.id, mechanic)

    with pytest.raises(lifecycle.InvalidTransitionError):
        lifecycle.decline_job(job.id, mechanic)

    assert JobRequest.objects.filter(pk=job.id).exists()


# --- Live location ---

def test_driver_location_updates_job_and_mechanic(customer, mechanic, gateway):
    job = book(customer)
    lifecycle.accept_job(job.id, mechanic)

    lifecycle.update_driver_location(job.id, mechanic, 37.8, -122.3)

    job.refresh_from_db()
    mechanic.refresh_from_db()
    assert (job.driver_latitude, job.driver_longitude) == (37.8, -122.3)
    assert (mechanic.current_latitude, mechanic.current_longitude) == (37.8, -122.3)


def test_driver_location_rejected_for_unassigned_job(customer, mechanic):
    job = book(customer)

    with pytest.raises(lifecycle.NotAssignedMechanicError):
        lifecycle.update_driver_location(job.id, mechanic, 37.8, -122.3)


def test_driver_location_rejected_after_completion(customer, mechanic, gateway):
    job = book(customer)
    advance(job, mechanic, Status.IN_PROGRESS)
    lifecycle.complete_job(job.id, mechanic, details(), "CASH")

    with pytest.raises(lifecycle.InvalidTransitionError):
        lifecycle.update_driver_location(job.id, mechanic, 37.8, -122.3)


# --- Mechanic account ---

def test_cash_out_resets_week(mechanic, gateway):
    Mechanic.objects.filter(pk=mechanic.pk).update(earnings_week=Decimal("250.00"), earnings_month=Decimal("900.00"))

    result, amount = lifecycle.cash_out(mechanic)

    assert amount == Decimal("250.00")
    assert result["payout_id"] == "po_test"
    assert gateway.payment.payouts == [(mechanic.pk, Decimal("250.00"))]
    mechanic.refresh_from_db()
    assert mechanic.earnings_week == Decimal("0.00")
    assert mechanic.earnings_month == Decimal("900.00")


def test_cash_out_with_nothing_to_pay(mechanic, gateway):
    with pytest.raises(lifecycle.JobValidationError):
        lifecycle.cash_out(mechanic)
    assert gateway.payment.payouts == []


def test_failed_payout_keeps_earnings(mechanic, gateway):
    def failing_payout(mech, amount):
        raise PaymentGatewayError("Payout failed")

    gateway.payment.payout_to_bank = failing_payout
    Mechanic.objects.filter(pk=mechanic.pk).update(earnings_week=Decimal("80.00"))

    with pytest.raises(PaymentGatewayError):
        lifecycle.cash_out(mechanic)

    mechanic.refresh_from_db()
    assert mechanic.earnings_week == Decimal("80.00")


def test_cash_out_keeps_credit_that_lands_during_payout(mechanic, gateway):
    Mechanic.objects.filter(pk=mechanic.pk).update(earnings_week=Decimal("100.00"))

    def payout_while_job_completes(mech, amount):
        gateway.mechanic.update_earnings(mech, Decimal("40.00"))
        return {"success": True, "payout_id": "po_race"}

    gateway.payment.payout_to_bank = payout_while_job_completes

    _, amount = lifecycle.cash_out(mechanic)

    assert amount == Decimal("100.00")
    mechanic.refresh_from_db()
    assert mechanic.earnings_week == Decimal("40.00")


def test_set_online_toggles_availability(mechanic):
    lifecycle.set_online(mechanic, False)
    mechanic.refresh_from_db()
    assert mechanic.availability == Mechanic.AvailabilityChoices.OFFLINE

    lifecycle.set_online(mechanic, True)
    mechanic.refresh_from_db()
    assert mechanic.availability == Mechanic.AvailabilityChoices.AVAILABLE_NOW


def test_catalog_items_are_snapshotted(customer):
    job = book(customer, ("rs2",))
    assert job.services == [get_service("rs2").to_dict()]
