"""Tests for the HTTP surface: request/response shapes and error mapping."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.deps import get_coordinator, get_db, get_ledger_service
from app.core.security import create_service_token
from app.main import app


@pytest_asyncio.fixture
async def client(coordinator, ledger, session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_ledger_service] = lambda: ledger
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    headers = {"Authorization": f"Bearer {create_service_token('crud-api')}"}
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
        yield client

    app.dependency_overrides.clear()


class TestAuth:

    async def test_missing_token_is_refused(self, client):
        response = await client.post(
            "/api/v1/transitions",
            json={},
            headers={"Authorization": ""},
        )
        assert response.status_code in (401, 403)

    async def test_invalid_token_is_refused(self, client):
        response = await client.get(
            f"/api/v1/accounts/{uuid4()}/balance",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    async def test_expired_token_is_refused(self, client):
        token = create_service_token("crud-api", expires_delta=timedelta(minutes=-1))
        response = await client.get(
            f"/api/v1/accounts/{uuid4()}/balance",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401


class TestTransitionEndpoint:

    async def test_accept_returns_new_state_and_effects(self, client, seed):
        internship = await seed.internship()
        application = await seed.application(internship)

        response = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "application",
                "entityId": str(application.id),
                "requestedState": "ACCEPTED",
                "actorId": "mentor-1",
            },
        )

        assert response.status_code == 200
        assert response.json() == {
            "newState": "ACCEPTED",
            "sideEffectsApplied": ["ensure-collaboration-space", "grant-credit"],
        }

        balance = await client.get(f"/api/v1/accounts/{application.applicant_id}/balance")
        assert balance.json() == {"accountId": str(application.applicant_id), "balance": 50}

    async def test_capacity_error_body(self, client, seed):
        internship = await seed.internship(max_interns=0)
        application = await seed.application(internship)

        response = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "application",
                "entityId": str(application.id),
                "requestedState": "ACCEPTED",
                "actorId": "mentor-1",
            },
        )

        assert response.status_code == 409
        body = response.json()
        assert body["errorCode"] == "CAPACITY_EXCEEDED"
        assert body["details"]["capacity"] == 0

    async def test_missing_entity_is_404(self, client):
        response = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "submission",
                "entityId": str(uuid4()),
                "requestedState": "APPROVED",
                "actorId": "mentor-1",
            },
        )
        assert response.status_code == 404
        assert response.json()["errorCode"] == "NOT_FOUND"

    async def test_unknown_entity_type_fails_validation(self, client):
        response = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "company",
                "entityId": str(uuid4()),
                "requestedState": "ACTIVE",
                "actorId": "mentor-1",
            },
        )
        assert response.status_code == 422


class TestTaskEndpoints:

    async def test_task_flow(self, client, seed):
        internship = await seed.internship()
        intern = await seed.user()

        created = await client.post(
            "/api/v1/tasks",
            json={
                "internshipId": str(internship.id),
                "assignedTo": str(intern.id),
                "title": "Ship it",
                "credits": 20,
            },
        )
        assert created.status_code == 201
        task_id = created.json()["id"]
        assert created.json()["status"] == "PENDING"

        submitted = await client.post(
            f"/api/v1/tasks/{task_id}/submissions",
            json={"submitterId": str(intern.id), "content": "https://github.com/example/pr/1"},
        )
        assert submitted.status_code == 201
        assert submitted.json()["attempt"] == 1

        deleted = await client.delete(f"/api/v1/tasks/{task_id}", params={"actorId": "mentor-1"})
        assert deleted.status_code == 409
        assert deleted.json()["errorCode"] == "HAS_DEPENDENTS"

        approved = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "submission",
                "entityId": submitted.json()["id"],
                "requestedState": "APPROVED",
                "actorId": "mentor-1",
            },
        )
        assert approved.json()["sideEffectsApplied"] == ["set-task-status", "grant-credit"]

        again = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "submission",
                "entityId": submitted.json()["id"],
                "requestedState": "APPROVED",
                "actorId": "mentor-2",
            },
        )
        assert again.status_code == 409
        assert again.json()["errorCode"] == "ALREADY_REVIEWED"

        task = await client.get(f"/api/v1/tasks/{task_id}")
        assert task.json()["status"] == "COMPLETED"
        assert task.json()["submissionCount"] == 1

    async def test_delete_task_without_submissions(self, client, seed):
        internship = await seed.internship()
        intern = await seed.user()
        task = await seed.task(internship, intern)

        response = await client.delete(f"/api/v1/tasks/{task.id}", params={"actorId": "mentor-1"})

        assert response.status_code == 200
        assert (await client.get(f"/api/v1/tasks/{task.id}")).status_code == 404

    async def test_overdue_reported_on_read(self, client, seed):
        internship = await seed.internship()
        intern = await seed.user()
        task = await seed.task(internship, intern, due_date=datetime.utcnow() - timedelta(hours=1))

        body = (await client.get(f"/api/v1/tasks/{task.id}")).json()

        assert body["status"] == "OVERDUE"
        assert body["storedStatus"] == "PENDING"

    async def test_offset_due_date_is_stored_as_utc(self, client, seed):
        internship = await seed.internship()
        intern = await seed.user()
        due = datetime.now(timezone(timedelta(hours=-10))) + timedelta(hours=1)

        response = await client.post(
            "/api/v1/tasks",
            json={
                "internshipId": str(internship.id),
                "assignedTo": str(intern.id),
                "title": "Timezone aware",
                "dueDate": due.isoformat(),
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        stored = datetime.fromisoformat(body["dueDate"])
        assert stored.tzinfo is None
        assert abs(stored - due.astimezone(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=1)

    async def test_review_feedback_is_listed(self, client, seed):
        internship = await seed.internship()
        intern = await seed.user()
        task = await seed.task(internship, intern)

        submitted = await client.post(
            f"/api/v1/tasks/{task.id}/submissions",
            json={"submitterId": str(intern.id), "content": "https://github.com/example/pr/2"},
        )
        reviewed = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "submission",
                "entityId": submitted.json()["id"],
                "requestedState": "NEEDS_REVISION",
                "actorId": "mentor-1",
                "feedback": "Please handle empty input",
            },
        )
        assert reviewed.status_code == 200

        listed = await client.get(f"/api/v1/tasks/{task.id}/submissions")

        assert listed.status_code == 200
        [submission] = listed.json()
        assert submission["status"] == "NEEDS_REVISION"
        assert submission["feedback"] == "Please handle empty input"
        assert submission["reviewedBy"] == "mentor-1"

    async def test_approving_for_inactive_task_is_409(self, client, seed):
        internship = await seed.internship()
        intern = await seed.user()
        task = await seed.task(internship, intern, status="INACTIVE")
        submission = await seed.submission(task)

        response = await client.post(
            "/api/v1/transitions",
            json={
                "entityType": "submission",
                "entityId": str(submission.id),
                "requestedState": "APPROVED",
                "actorId": "mentor-1",
            },
        )

        assert response.status_code == 409
        assert response.json()["errorCode"] == "INVALID_TRANSITION"
        assert (await client.get(f"/api/v1/tasks/{task.id}")).json()["status"] == "INACTIVE"


class TestApplicationEndpoint:

    async def test_duplicate_application_is_409(self, client, seed):
        internship = await seed.internship()
        applicant = await seed.user()
        payload = {"internshipId": str(internship.id), "applicantId": str(applicant.id)}

        first = await client.post("/api/v1/applications", json=payload)
        second = await client.post("/api/v1/applications", json=payload)

        assert first.status_code == 201
        assert first.json()["status"] == "PENDING"
        assert second.status_code == 409
        assert second.json()["errorCode"] == "DUPLICATE_APPLICATION"


class TestAccountEndpoints:

    async def test_entries_wallet_ledger_and_reconcile(self, client, seed):
        user = await seed.user()
        base = f"/api/v1/accounts/{user.id}"

        deposit = await client.post(f"{base}/entries", json={"amount": 100, "type": "DEPOSIT", "description": "Top up"})
        assert deposit.status_code == 201
        spend = await client.post(f"{base}/entries", json={"amount": -30, "type": "SPEND", "description": "Course"})
        assert spend.status_code == 201

        overdraw = await client.post(f"{base}/entries", json={"amount": -500, "type": "SPEND", "description": "Too much"})
        assert overdraw.status_code == 409
        assert overdraw.json()["errorCode"] == "INSUFFICIENT_CREDITS"

        forged = await client.post(f"{base}/entries", json={"amount": 10, "type": "BONUS", "description": "Free"})
        assert forged.status_code == 422
        assert forged.json()["errorCode"] == "INVALID_ENTRY"
        assert forged.json()["details"] == {"type": "BONUS", "amount": 10}

        wallet = (await client.get(f"{base}/wallet")).json()
        assert wallet["balance"] == 70
        assert wallet["totalEarned"] == 100
        assert wallet["totalSpent"] == 30

        history = (await client.get(f"{base}/ledger", params={"page": 1, "page_size": 1})).json()
        assert history["total"] == 2
        assert len(history["entries"]) == 1

        report = (await client.get(f"{base}/reconcile")).json()
        assert report["inSync"] is True
        assert report["drift"] == 0

        repaired = await client.post(f"{base}/repair", json={"actorId": "admin-1"})
        assert repaired.status_code == 200
        assert repaired.json()["repaired"] is False


    async def test_reference_reused_on_another_account_is_409(self, client, seed):
        first = await seed.user()
        second = await seed.user()
        payload = {"amount": 10, "type": "DEPOSIT", "description": "Top up", "reference": "ext-1"}

        created = await client.post(f"/api/v1/accounts/{first.id}/entries", json=payload)
        replay = await client.post(f"/api/v1/accounts/{first.id}/entries", json=payload)
        conflict = await client.post(f"/api/v1/accounts/{second.id}/entries", json=payload)

        assert created.status_code == 201
        assert replay.status_code == 201
        assert replay.json()["id"] == created.json()["id"]
        assert conflict.status_code == 409
        assert conflict.json()["errorCode"] == "REFERENCE_CONFLICT"
        balance = await client.get(f"/api/v1/accounts/{second.id}/balance")
        assert balance.json()["balance"] == 0

    async def test_unknown_account_is_404(self, client):
        response = await client.get(f"/api/v1/accounts/{uuid4()}/balance")
        assert response.status_code == 404
        assert response.json()["errorCode"] == "NOT_FOUND"


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
