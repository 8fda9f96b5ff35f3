"""HTTP tests for the jobs, users, Profile and core endpoints."""

from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from jobs import lifecycle
from jobs.catalog import get_services
from jobs.models import JobRequest
from users.models import Mechanic, Review

pytestmark = pytest.mark.django_db


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def book(customer, ids=("d1",), **kwargs):
    return lifecycle.create_job_request(customer, "2018 Honda Civic", get_services(ids), **kwargs)


def in_progress_job(customer, mechanic, **kwargs):
    job = book(customer, **kwargs)
    lifecycle.accept_job(job.id, mechanic)
    lifecycle.mark_arrived(job.id, mechanic)
    return lifecycle.start_job(job.id, mechanic)


# --- Booking ---

def test_services_catalog_is_public(api_client):
    response = api_client.get("/api/jobs/Services/")

    assert response.status_code == 200
    assert len(response.data["services"]) == 26
    assert response.data["services"][0]["id"] == "rs1"


def test_match_mechanics_ranks_best_first(customer_client, make_mechanic):
    offline = make_mechanic(rating=5.0, availability=Mechanic.AvailabilityChoices.OFFLINE)
    brakes = make_mechanic(rating=4.5, specialties=["Brake Pads"])
    plain = make_mechanic(rating=4.5, specialties=[])

    response = customer_client.post(
        "/api/jobs/MatchMechanics/",
        {"latitude": 37.77, "longitude": -122.41, "service_ids": ["m3"]},
        format="json",
    )

    assert response.status_code == 200
    ids = [row["mechanic"]["id"] for row in response.data["mechanics"]]
    assert ids == [brakes.id, plain.id, offline.id]
    assert response.data["mechanics"][0]["match_reason"] == "Brake pads Expert"


def test_match_mechanics_rejects_unknown_service(customer_client):
    response = customer_client.post(
        "/api/jobs/MatchMechanics/",
        {"latitude": 37.77, "longitude": -122.41, "service_ids": ["zz9"]},
        format="json",
    )
    assert response.status_code == 400


def test_create_payment_intent_uses_total(customer_client):
    response = customer_client.post("/api/jobs/CreatePaymentIntent/", {"service_ids": ["d1"]}, format="json")

    assert response.status_code == 200
    assert response.data["payment_intent_id"].startswith("pi_mock_")
    assert response.data["price_breakdown"]["total"] == "135.00"


def test_create_job_request(customer_client, customer, mechanic, gateway):
    response = customer_client.post(
        "/api/jobs/CreateJobRequest/",
        {
            "vehicle": "2018 Honda Civic",
            "service_ids": ["d1", "m7"],
            "latitude": 37.77,
            "longitude": -122.41,
            "location": "1 Market St",
            "mechanic_id": mechanic.id,
            "payment_intent_id": "pi_mock_abc",
        },
        format="json",
    )

    assert response.status_code == 201
    job = JobRequest.objects.get(pk=response.data["request_id"])
    assert job.customer == customer
    assert job.status == JobRequest.Status.NEW
    assert job.mechanic is None
    assert job.requested_mechanic == mechanic
    assert response.data["job"]["price_breakdown"]["subtotal"] == "165.00"
    assert gateway.notifications.sms[-1][1].startswith("New Job: 2018 Honda Civic")


def test_create_job_request_requires_services(customer_client):
    response = customer_client.post(
        "/api/jobs/CreateJobRequest/", {"vehicle": "Civic", "service_ids": []}, format="json"
    )
    assert response.status_code == 400


def test_job_detail_hidden_from_other_customers(customer, make_mechanic):
    from users.models import CustomUser

    job = book(customer)
    stranger = CustomUser.objects.create_user(email="stranger@example.com")

    assert client_for(customer).get(f"/api/jobs/JobRequest/{job.id}/").status_code == 200
    assert client_for(stranger).get(f"/api/jobs/JobRequest/{job.id}/").status_code == 404
    assert client_for(customer).get("/api/jobs/JobRequest/999999/").status_code == 404


# --- Transitions and error mapping ---

def test_accept_conflict_returns_409(customer, make_mechanic, gateway):
    first, second = make_mechanic(), make_mechanic()
    job = book(customer)

    assert client_for(first.user).post(f"/api/jobs/AcceptJobRequest/{job.id}/").status_code == 200
    response = client_for(second.user).post(f"/api/jobs/AcceptJobRequest/{job.id}/")

    assert response.status_code == 409
    assert response.data == {"error": "This job is no longer available."}


def test_customer_cannot_accept(customer_client, customer):
    job = book(customer)
    assert customer_client.post(f"/api/jobs/AcceptJobRequest/{job.id}/").status_code == 403


def test_unassigned_mechanic_gets_403(customer, make_mechanic, gateway):
    owner, other = make_mechanic(), make_mechanic()
    job = book(customer)
    lifecycle.accept_job(job.id, owner)

    response = client_for(other.user).post(f"/api/jobs/ArrivedJobRequest/{job.id}/")

    assert response.status_code == 403


def test_skipped_state_returns_400(customer, mechanic, mechanic_client, gateway):
    job = book(customer)
    lifecycle.accept_job(job.id, mechanic)

    response = mechanic_client.post(f"/api/jobs/StartJobRequest/{job.id}/")

    assert response.status_code == 400
    assert "error" in response.data


def test_missing_job_returns_404(mechanic_client):
    assert mechanic_client.post("/api/jobs/AcceptJobRequest/999999/").status_code == 404


def test_full_flow_over_http(customer, mechanic, mechanic_client, gateway):
    job = book(customer, payment_intent_id="pi_mock_abc")

    for step in ("AcceptJobRequest", "ArrivedJobRequest", "StartJobRequest"):
        assert mechanic_client.post(f"/api/jobs/{step}/{job.id}/").status_code == 200

    response = mechanic_client.post(
        f"/api/jobs/CompleteJobRequest/{job.id}/",
        {"description": "Scanned and cleared P0420", "parts_cost": "0.00", "settlement_method": "CARD"},
        format="json",
    )

    assert response.status_code == 200
    assert response.data["job"]["status"] == "COMPLETED"
    assert response.data["job"]["payment_status"] == "CAPTURED"
    assert gateway.payment.captures == [(job.id, Decimal("125.00"))]


def test_complete_without_description_returns_400(customer, mechanic, mechanic_client, gateway):
    job = in_progress_job(customer, mechanic)

    response = mechanic_client.post(
        f"/api/jobs/CompleteJobRequest/{job.id}/", {"settlement_method": "CASH"}, format="json"
    )

    assert response.status_code == 400
    job.refresh_from_db()
    assert job.status == JobRequest.Status.IN_PROGRESS


def test_capture_failure_returns_502(customer, mechanic, mechanic_client, gateway):
    gateway.payment.fail_capture = True
    job = in_progress_job(customer, mechanic, payment_intent_id="pi_mock_abc")

    response = mechanic_client.post(
        f"/api/jobs/CompleteJobRequest/{job.id}/",
        {"description": "Done", "settlement_method": "CARD"},
        format="json",
    )

    assert response.status_code == 502
    job.refresh_from_db()
    assert job.status == JobRequest.Status.IN_PROGRESS
    assert job.payment_status == JobRequest.PaymentStatus.AUTHORIZED


def test_decline_new_job(customer, mechanic_client):
    job = book(customer)

    response = mechanic_client.post(f"/api/jobs/DeclineJobRequest/{job.id}/")

    assert response.status_code == 200
    assert not JobRequest.objects.filter(pk=job.id).exists()


def test_update_location(customer, mechanic, mechanic_client, gateway):
    job = book(customer)
    lifecycle.accept_job(job.id, mechanic)

    response = mechanic_client.post(
        f"/api/jobs/UpdateLocation/{job.id}/", {"latitude": 37.8, "longitude": -122.3}, format="json"
    )

    assert response.status_code == 200
    assert response.data["job"]["driver_latitude"] == 37.8


# --- Mechanic dashboard ---

def test_dashboard_lists_open_and_own_jobs(customer, make_mechanic, gateway):
    me, other = make_mechanic(), make_mechanic()
    open_job = book(customer)
    mine = book(customer)
    theirs = book(customer)
    lifecycle.accept_job(mine.id, me)
    lifecycle.accept_job(theirs.id, other)

    response = client_for(me.user).get("/api/jobs/MechanicDashboard/")

    assert response.status_code == 200
    ids = [job["id"] for job in response.data["jobs"]]
    assert ids == [mine.id, open_job.id]
    assert response.data["is_online"] is True
    assert response.data["stripe_connected"] is False
    assert response.data["earnings"] == {"today": "0.00", "week": "0.00", "month": "0.00"}


def test_update_mechanic_status(mechanic, mechanic_client):
    response = mechanic_client.put("/api/jobs/UpdateMechanicStatus/", {"is_online": False}, format="json")

    assert response.status_code == 200
    mechanic.refresh_from_db()
    assert mechanic.availability == Mechanic.AvailabilityChoices.OFFLINE


def test_update_mechanic_status_requires_bool(mechanic_client):
    response = mechanic_client.put("/api/jobs/UpdateMechanicStatus/", {"is_online": "yes"}, format="json")
    assert response.status_code == 400


def test_cash_out(mechanic, mechanic_client, gateway):
    Mechanic.objects.filter(pk=mechanic.pk).update(earnings_week=Decimal("120.00"))

    response = mechanic_client.post("/api/jobs/CashOut/")

    assert response.status_code == 200
    assert response.data["earnings"]["week"] == "0.00"


def test_cash_out_with_nothing_returns_400(mechanic_client):
    assert mechanic_client.post("/api/jobs/CashOut/").status_code == 400


def test_sync_active_job(customer, customer_client, mechanic, mechanic_client, gateway):
    assert mechanic_client.get("/api/jobs/SyncActiveJob/").data == {"active_job": None}

    job = book(customer)
    assert customer_client.get("/api/jobs/SyncActiveJob/").data["active_job"]["id"] == job.id

    lifecycle.accept_job(job.id, mechanic)
    assert mechanic_client.get("/api/jobs/SyncActiveJob/").data["active_job"]["id"] == job.id


# --- Reviews ---

def test_review_once_per_completed_job(customer, customer_client, mechanic, gateway):
    job = in_progress_job(customer, mechanic)
    lifecycle.complete_job(job.id, mechanic, lifecycle.CompletionDetails(description="Done"), "CASH")

    response = customer_client.post(f"/api/jobs/SubmitReview/{job.id}/", {"rating": 4, "text": "Quick"}, format="json")

    assert response.status_code == 201
    mechanic.refresh_from_db()
    assert mechanic.rating == 4.0
    assert Review.objects.filter(job=job).count() == 1

    again = customer_client.post(f"/api/jobs/SubmitReview/{job.id}/", {"rating": 5}, format="json")
    assert again.status_code == 409


def test_review_requires_completed_job(customer, customer_client):
    job = book(customer)
    response = customer_client.post(f"/api/jobs/SubmitReview/{job.id}/", {"rating": 5}, format="json")
    assert response.status_code == 400


# --- Users ---

def test_otp_login_flow(api_client, gateway):
    response = api_client.post("/api/users/Login_SignUp/", {"email": "new@example.com"}, format="json")
    assert response.status_code == 200
    key, user_id = response.data["key"], response.data["id"]

    otp = cache.get(key)
    verify = api_client.post("/api/users/otp-verify/", {"key": key, "otp": otp, "id": user_id}, format="json")

    assert verify.status_code == 200
    assert "access" in verify.cookies and "refresh" in verify.cookies
    assert cache.get(key) is None


def test_otp_wrong_code(api_client):
    response = api_client.post("/api/users/Login_SignUp/", {"email": "new@example.com"}, format="json")

    verify = api_client.post(
        "/api/users/otp-verify/", {"key": response.data["key"], "otp": "000000x", "id": response.data["id"]}, format="json"
    )

    assert verify.status_code == 401


def test_otp_for_one_account_cannot_log_in_another(api_client, customer, gateway):
    response = api_client.post("/api/users/Login_SignUp/", {"email": "someone-else@example.com"}, format="json")
    key = response.data["key"]
    otp = cache.get(key)

    verify = api_client.post("/api/users/otp-verify/", {"key": key, "otp": otp, "id": customer.id}, format="json")

    assert verify.status_code == 401
    assert "access" not in verify.cookies
    # The code was not spent by the failed attempt.
    assert cache.get(key) == otp


def test_register_mechanic(customer, customer_client, gateway):
    response = customer_client.post(
        "/api/users/RegisterMechanic/",
        {"bio": "Mobile tech", "years_experience": 8, "specialties": ["Brakes"], "certifications": ["ASE"]},
        format="json",
    )

    assert response.status_code == 201
    mechanic = Mechanic.objects.get(user=customer)
    assert mechanic.availability == Mechanic.AvailabilityChoices.OFFLINE
    assert mechanic.rating == 5.0
    assert mechanic.specialties == ["Brakes"]
    customer.refresh_from_db()
    assert customer.is_mechanic is True
    assert gateway.notifications.emails[-1][1] == "Welcome to MechanicNow Partner"


def test_set_users_detail(customer, customer_client):
    response = customer_client.post("/api/users/SetUsersDetail/", {"first_name": "Dee"}, format="json")

    assert response.status_code == 200
    customer.refresh_from_db()
    assert customer.first_name == "Dee"


# --- Profile and core ---

def test_mechanic_history(customer, mechanic, mechanic_client, gateway):
    job = in_progress_job(customer, mechanic)
    lifecycle.complete_job(job.id, mechanic, lifecycle.CompletionDetails(description="Done"), "CASH")

    response = mechanic_client.get("/api/Profile/MechanicHistory/")

    assert response.status_code == 200
    assert response.data["statistics"]["total_jobs"] == 1
    assert response.data["statistics"]["earnings"]["week"] == "100.00"
    assert [row["id"] for row in response.data["job_history"]] == [job.id]


def test_user_history(customer, customer_client):
    job = book(customer)
    response = customer_client.get("/api/Profile/UserHistory/")
    assert [row["id"] for row in response.data] == [job.id]


def test_connection_info(api_client):
    response = api_client.get("/api/core/connection/")
    assert response.data == {"mode": "MOCK", "connected": True, "provider": "Local Database"}


def test_mechanic_profile_cache_is_dropped_on_save(mechanic, mechanic_client):
    first = mechanic_client.get("/api/Profile/MechanicProfile/")
    assert first.status_code == 200
    assert first.data["bio"] == ""

    mechanic.bio = "Twenty years on European imports."
    mechanic.save()

    second = mechanic_client.get("/api/Profile/MechanicProfile/")
    assert second.data["bio"] == "Twenty years on European imports."


def test_user_profile_cache_is_dropped_on_edit(customer_client):
    assert customer_client.get("/api/Profile/UserProfile/").data["first_name"] == "Dana"

    edit = customer_client.post("/api/Profile/EditUserProfile/", {"first_name": "Dee"}, format="json")
    assert edit.status_code == 200

    assert customer_client.get("/api/Profile/UserProfile/").data["first_name"] == "Dee"
