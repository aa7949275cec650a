"""API endpoint tests.

Exercises the FastAPI routes against the in-memory database.
"""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, api_client: AsyncClient):
        """Health endpoint should return 200."""
        response = await api_client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["open_timers"] == 0
        assert data["version"]
        assert "timestamp" in data

    async def test_readiness_and_liveness(self, api_client: AsyncClient):
        assert (await api_client.get("/ready")).json() == {"status": "ready"}
        assert (await api_client.get("/live")).json() == {"status": "alive"}


class TestTimeEntryEndpoints:
    """Timer lifecycle over HTTP."""

    async def test_timer_flow(self, api_client: AsyncClient, clock, test_employees, unbudgeted_project):
        """Start, pause, resume and stop through PUT status changes."""
        alice = str(test_employees["alice"].id)
        response = await api_client.post(
            "/api/v1/time-entries",
            json={"employee_id": alice, "project_id": str(unbudgeted_project.id)},
        )
        assert response.status_code == 201, response.text
        entry = response.json()
        assert entry["status"] == "PENDING"

        clock.advance(90)
        response = await api_client.put(f"/api/v1/time-entries/{entry['id']}", json={"status": "PAUSED"})
        assert response.status_code == 200, response.text
        assert response.json()["accumulated_seconds"] == 90

        response = await api_client.put(f"/api/v1/time-entries/{entry['id']}", json={"status": "PENDING"})
        assert response.json()["status"] == "PENDING"

        clock.advance(60)
        response = await api_client.put(
            f"/api/v1/time-entries/{entry['id']}",
            json={"status": "SUBMITTED", "description": "Sprint planning"},
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "SUBMITTED"
        assert data["duration_minutes"] == 2
        assert data["description"] == "Sprint planning"
        assert data["is_edited"] is True

        active = await api_client.get("/api/v1/time-entries/active", params={"employee_id": alice})
        assert active.status_code == 200
        assert active.json() is None

    async def test_second_start_conflicts(self, api_client: AsyncClient, test_employees, unbudgeted_project):
        payload = {
            "employee_id": str(test_employees["alice"].id),
            "project_id": str(unbudgeted_project.id),
        }
        first = (await api_client.post("/api/v1/time-entries", json=payload)).json()

        response = await api_client.post("/api/v1/time-entries", json=payload)

        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "TIMER_CONFLICT"
        assert data["context"]["active_entry_id"] == first["id"]

        replaced = await api_client.post(
            "/api/v1/time-entries", params={"on_conflict": "replace"}, json=payload
        )
        assert replaced.status_code == 201

    async def test_stop_twice_is_not_found(self, api_client: AsyncClient, test_employees, unbudgeted_project):
        entry = (
            await api_client.post(
                "/api/v1/time-entries",
                json={
                    "employee_id": str(test_employees["alice"].id),
                    "project_id": str(unbudgeted_project.id),
                },
            )
        ).json()
        url = f"/api/v1/time-entries/{entry['id']}"
        assert (await api_client.put(url, json={"status": "SUBMITTED"})).status_code == 200

        response = await api_client.put(url, json={"status": "SUBMITTED"})

        assert response.status_code == 404
        assert response.json()["detail"] == "No active timer found"

    async def test_manual_entry_and_review(self, api_client: AsyncClient, test_employees, unbudgeted_project):
        response = await api_client.post(
            "/api/v1/time-entries",
            json={
                "employee_id": str(test_employees["alice"].id),
                "project_id": str(unbudgeted_project.id),
                "duration_minutes": 45,
                "date": "2026-01-02",
            },
        )
        assert response.status_code == 201, response.text
        entry = response.json()
        assert entry["status"] == "SUBMITTED"
        assert entry["date"] == "2026-01-02"

        response = await api_client.put(f"/api/v1/time-entries/{entry['id']}", json={"status": "APPROVED"})
        assert response.json()["status"] == "APPROVED"

        response = await api_client.put(f"/api/v1/time-entries/{entry['id']}", json={"status": "PAUSED"})
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    async def test_delete_and_sweep(self, api_client: AsyncClient, clock, test_employees, unbudgeted_project):
        payload = {
            "employee_id": str(test_employees["alice"].id),
            "project_id": str(unbudgeted_project.id),
        }
        stale = (await api_client.post("/api/v1/time-entries", json=payload)).json()
        clock.advance(hours=13)

        response = await api_client.post("/api/v1/time-entries/sweep-stale")
        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["entries"][0]["id"] == stale["id"]

        response = await api_client.delete(f"/api/v1/time-entries/{stale['id']}")
        assert response.status_code == 200
        assert response.json()["deleted_at"] is not None
        assert (await api_client.get(f"/api/v1/time-entries/{stale['id']}")).status_code == 404

    async def test_restore_deleted_entry(self, api_client: AsyncClient, test_employees, unbudgeted_project):
        entry = (
            await api_client.post(
                "/api/v1/time-entries",
                json={
                    "employee_id": str(test_employees["alice"].id),
                    "project_id": str(unbudgeted_project.id),
                    "duration_minutes": 30,
                },
            )
        ).json()
        url = f"/api/v1/time-entries/{entry['id']}"
        assert (await api_client.delete(url)).status_code == 200

        response = await api_client.post(f"{url}/restore")

        assert response.status_code == 200, response.text
        assert response.json()["deleted_at"] is None
        assert (await api_client.get(url)).json()["duration_minutes"] == 30

    async def test_unknown_employee(self, api_client: AsyncClient, unbudgeted_project):
        response = await api_client.post(
            "/api/v1/time-entries",
            json={
                "employee_id": "00000000-0000-0000-0000-000000000000",
                "project_id": str(unbudgeted_project.id),
            },
        )
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


class TestInvoiceEndpoints:
    async def test_overrun_invoice_and_notification(self, api_client: AsyncClient, test_employees, test_project):
        """Logging past the estimate drafts an invoice and alerts admins."""
        response = await api_client.post(
            "/api/v1/time-entries",
            json={
                "employee_id": str(test_employees["alice"].id),
                "project_id": str(test_project.id),
                "duration_minutes": 630,
            },
        )
        assert response.status_code == 201

        invoices = (
            await api_client.get("/api/v1/invoices", params={"project_id": str(test_project.id)})
        ).json()
        assert len(invoices) == 1
        assert invoices[0]["status"] == "DRAFT"
        assert invoices[0]["subtotal"] == "1050.00"

        notifications = (await api_client.get("/api/v1/notifications", params={"audience": "ADMIN"})).json()
        assert len(notifications) == 1
        assert "10.5h" in notifications[0]["message"]

        check = await api_client.post(f"/api/v1/projects/{test_project.id}/overrun-check")
        assert check.status_code == 200
        assert check.json()["action"] == "overrun"
        assert check.json()["invoice_created"] is False

    async def test_manual_invoice_and_payment(self, api_client: AsyncClient, test_project):
        response = await api_client.post(
            "/api/v1/invoices",
            json={
                "project_id": str(test_project.id),
                "status": "SENT",
                "items": [{"description": "Fixed fee", "quantity": "1", "unit_price": "1000"}],
            },
        )
        assert response.status_code == 201, response.text
        invoice = response.json()
        assert invoice["total_amount"] == "1100.00"

        response = await api_client.post(
            f"/api/v1/invoices/{invoice['id']}/payments", json={"amount": "1100.00"}
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "PAID"
        assert response.json()["balance_amount"] == "0.00"

    async def test_payment_on_draft_rejected(self, api_client: AsyncClient, test_project):
        invoice = (
            await api_client.post(
                "/api/v1/invoices",
                json={
                    "project_id": str(test_project.id),
                    "items": [{"description": "Fee", "quantity": "1", "unit_price": "10"}],
                },
            )
        ).json()

        response = await api_client.post(
            f"/api/v1/invoices/{invoice['id']}/payments", json={"amount": "5"}
        )
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_INVOICE"


    async def test_status_jump_rejected(self, api_client: AsyncClient, test_project):
        invoice = (
            await api_client.post(
                "/api/v1/invoices",
                json={
                    "project_id": str(test_project.id),
                    "status": "SENT",
                    "items": [{"description": "Fee", "quantity": "1", "unit_price": "10"}],
                },
            )
        ).json()

        response = await api_client.put(f"/api/v1/invoices/{invoice['id']}", json={"status": "PAID"})

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"
        assert response.json()["context"] == {"from_status": "SENT", "to_status": "PAID"}


class TestPayrollEndpoints:
    async def test_payroll_flow(self, api_client: AsyncClient, test_employees, unbudgeted_project):
        """Calculate, inspect, adjust, lock and pay a run."""
        await api_client.post(
            "/api/v1/time-entries",
            json={
                "employee_id": str(test_employees["alice"].id),
                "project_id": str(unbudgeted_project.id),
                "duration_minutes": 480,
                "date": "2026-01-05",
            },
        )

        response = await api_client.post("/api/v1/payroll/calculate", json={"period": "Jan 2026"})
        assert response.status_code == 200, response.text
        run = response.json()
        assert run["status"] == "DRAFT"
        assert run["total_payable"] == "960.00"

        records = (await api_client.get(f"/api/v1/payroll-runs/{run['id']}/records")).json()
        alice = next(r for r in records if r["employee_name"] == "Alice Smith")

        response = await api_client.put(
            f"/api/v1/payroll-records/{alice['id']}", json={"bonus": "40"}
        )
        assert response.status_code == 200, response.text
        assert response.json()["total_payable"] == "1000.00"

        exceptions = await api_client.get(f"/api/v1/payroll-runs/{run['id']}/exceptions")
        assert exceptions.status_code == 200
        assert exceptions.json() == []

        locked = await api_client.post(f"/api/v1/payroll-runs/{run['id']}/lock")
        assert locked.json()["status"] == "LOCKED"

        response = await api_client.put(
            f"/api/v1/payroll-records/{alice['id']}", json={"bonus": "50"}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "PAYROLL_RUN_LOCKED"

        paid = await api_client.post(f"/api/v1/payroll-runs/{run['id']}/paid")
        assert paid.json()["status"] == "PAID"

    async def test_invalid_period(self, api_client: AsyncClient):
        response = await api_client.post("/api/v1/payroll/calculate", json={"period": "Smarch"})

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_PERIOD"

    async def test_unknown_run(self, api_client: AsyncClient):
        response = await api_client.get("/api/v1/payroll-runs/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
