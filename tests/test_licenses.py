"""
Tests for company licenses, license actions and student seats.
"""

from datetime import date, timedelta

import pytest

from conftest import auth_headers
from edu_admin.models.users import User

TODAY = date.today()


def license_payload(company, data_structure, **overrides):
    payload = {
        "company_id": company.id,
        "data_structure_id": data_structure.id,
        "total_quantity": 2,
        "start_date": (TODAY - timedelta(days=10)).isoformat(),
        "end_date": (TODAY + timedelta(days=200)).isoformat(),
        "notes": " first batch ",
    }
    payload.update(overrides)
    return payload


async def create_license(client, headers, company, data_structure, **overrides):
    response = await client.post(
        "/api/licenses", json=license_payload(company, data_structure, **overrides), headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


async def create_student(client, headers, company, n):
    response = await client.post(
        "/api/students",
        json={
            "email": f"pupil{n}@example.com",
            "name": f"Pupil {n}",
            "password": "secret-pass",
            "company_id": company.id,
            "student_code": f"STU-{n}",
            "enrollment_number": f"ENR-{n}",
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestLicenses:

    @pytest.mark.asyncio()
    async def test_create_license(self, client, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)
        assert license["company_name"] == "Acme Learning"
        assert license["subject_name"] == "Chemistry"
        assert license["notes"] == "first batch"
        assert license["remaining_quantity"] == 2
        assert license["total_assigned"] == 0
        assert license["is_expired"] is False
        assert license["is_expiring_soon"] is False

    @pytest.mark.asyncio()
    async def test_duplicate_active_license(self, client, admin_headers, company, data_structure):
        await create_license(client, admin_headers, company, data_structure)

        response = await client.post(
            "/api/licenses", json=license_payload(company, data_structure), headers=admin_headers
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Cannot create duplicate license. Please use Expand, Extend, or Renew."

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("overrides,message", [
        ({"total_quantity": 0}, "Quantity must be greater than 0"),
        (
            {"start_date": "2025-05-01", "end_date": "2025-04-30"},
            "End date must be after or equal to start date",
        ),
    ])
    async def test_validation(self, client, admin_headers, company, data_structure, overrides, message):
        response = await client.post(
            "/api/licenses", json=license_payload(company, data_structure, **overrides), headers=admin_headers
        )
        assert response.status_code == 422
        assert message in response.json()["detail"][0]["msg"]

    @pytest.mark.asyncio()
    async def test_expired_filter_and_grouping(self, client, admin_headers, company, other_company, data_structure):
        await create_license(client, admin_headers, company, data_structure)
        expired = await create_license(
            client, admin_headers, other_company, data_structure,
            start_date="2020-01-01", end_date="2020-12-31", total_quantity=5,
        )
        assert expired["is_expired"] is True

        response = await client.get("/api/licenses", params={"status": "expired"}, headers=admin_headers)
        assert [lic["id"] for lic in response.json()] == [expired["id"]]

        response = await client.get("/api/licenses/by-company", headers=admin_headers)
        groups = response.json()
        assert [g["company_name"] for g in groups] == ["Acme Learning", "Globex Schools"]
        assert groups[1]["license_count"] == 1
        assert groups[1]["total_quantity"] == 5

    @pytest.mark.asyncio()
    async def test_entity_admin_sees_own_licenses(self, client, admin_headers, entity_headers, company, other_company, data_structure):
        own = await create_license(client, admin_headers, company, data_structure)
        other = await create_license(client, admin_headers, other_company, data_structure)

        response = await client.get("/api/licenses", headers=entity_headers)
        assert [lic["id"] for lic in response.json()] == [own["id"]]

        response = await client.get(f"/api/licenses/{other['id']}", headers=entity_headers)
        assert response.status_code == 403

        response = await client.post(
            "/api/licenses", json=license_payload(company, data_structure), headers=entity_headers
        )
        assert response.status_code == 403

    @pytest.mark.asyncio()
    async def test_update_period(self, client, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)

        response = await client.put(
            f"/api/licenses/{license['id']}", json={"end_date": "2001-01-01"}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "End date must be after or equal to start date"

        new_end = (TODAY + timedelta(days=20)).isoformat()
        response = await client.put(
            f"/api/licenses/{license['id']}", json={"end_date": new_end, "notes": "shortened"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["end_date"] == new_end
        assert response.json()["is_expiring_soon"] is True
        assert response.json()["notes"] == "shortened"

    @pytest.mark.asyncio()
    async def test_bulk_delete(self, client, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)
        await client.post(
            f"/api/licenses/{license['id']}/actions",
            json={"action_type": "EXPAND", "additional_quantity": 1},
            headers=admin_headers,
        )

        response = await client.delete("/api/licenses", params={"ids": [license["id"]]}, headers=admin_headers)
        assert response.json() == {"deleted": 1, "detail": "1 license(s) deleted successfully"}


class TestLicenseActions:

    @pytest.mark.asyncio()
    async def test_expand(self, client, admin_headers, system_admin, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)

        response = await client.post(
            f"/api/licenses/{license['id']}/actions",
            json={"action_type": "EXPAND", "additional_quantity": 3, "notes": "more seats"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["detail"] == "License expand completed successfully"
        assert data["license"]["total_quantity"] == 5
        assert data["action"]["change_quantity"] == 3
        assert data["action"]["new_end_date"] is None
        assert data["action"]["performed_by"] == system_admin.id

    @pytest.mark.asyncio()
    async def test_extend_and_history(self, client, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)
        new_end = (TODAY + timedelta(days=400)).isoformat()

        response = await client.post(
            f"/api/licenses/{license['id']}/actions",
            json={"action_type": "EXTEND", "new_end_date": new_end},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["license"]["end_date"] == new_end
        assert response.json()["action"]["new_end_date"] == new_end

        response = await client.get(f"/api/licenses/{license['id']}/actions", headers=admin_headers)
        assert [a["action_type"] for a in response.json()] == ["EXTEND"]

    @pytest.mark.asyncio()
    async def test_renew(self, client, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)
        start = (TODAY + timedelta(days=201)).isoformat()
        end = (TODAY + timedelta(days=566)).isoformat()

        response = await client.post(
            f"/api/licenses/{license['id']}/actions",
            json={"action_type": "RENEW", "new_total_quantity": 10, "new_start_date": start, "new_end_date": end},
            headers=admin_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["license"]["total_quantity"] == 10
        assert data["license"]["start_date"] == start
        assert data["action"]["change_quantity"] == 8

    @pytest.mark.asyncio()
    async def test_invalid_action(self, client, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)

        response = await client.post(
            f"/api/licenses/{license['id']}/actions",
            json={"action_type": "EXTEND", "new_end_date": "2001-01-01"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "New end date must be after current date"

        response = await client.get(f"/api/licenses/{license['id']}/actions", headers=admin_headers)
        assert response.json() == []


class TestStudentLicenses:

    @pytest.mark.asyncio()
    async def test_assign_activate_revoke(self, client, db_session, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)
        student = await create_student(client, admin_headers, company, 1)

        response = await client.post(
            f"/api/licenses/{license['id']}/students",
            json={"student_ids": [student["id"], student["id"]]},
            headers=admin_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert len(data["assigned"]) == 1
        seat = data["assigned"][0]
        assert seat["status"] == "ASSIGNED_PENDING_ACTIVATION"
        assert seat["valid_to_snapshot"] == license["end_date"]

        refreshed = (await client.get(f"/api/licenses/{license['id']}", headers=admin_headers)).json()
        assert refreshed["total_assigned"] == 1
        assert refreshed["remaining_quantity"] == 1

        # Already holding a seat
        response = await client.post(
            f"/api/licenses/{license['id']}/students", json={"student_ids": [student["id"]]}, headers=admin_headers
        )
        assert response.json()["skipped"] == [student["id"]]
        assert response.json()["assigned"] == []

        # The student activates their own license
        user = await db_session.get(User, student["user_id"])
        response = await client.post(
            f"/api/student-licenses/{seat['id']}/activate", headers=auth_headers(user)
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CONSUMED_ACTIVATED"
        assert response.json()["activated_on"] is not None

        response = await client.post(f"/api/student-licenses/{seat['id']}/activate", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Only licenses pending activation can be activated"

        refreshed = (await client.get(f"/api/licenses/{license['id']}", headers=admin_headers)).json()
        assert (refreshed["total_assigned"], refreshed["total_consumed"], refreshed["used_quantity"]) == (1, 1, 1)

        response = await client.post(f"/api/student-licenses/{seat['id']}/revoke", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "REVOKED"

        response = await client.post(f"/api/student-licenses/{seat['id']}/revoke", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "License is already revoked"

        refreshed = (await client.get(f"/api/licenses/{license['id']}", headers=admin_headers)).json()
        assert (refreshed["total_assigned"], refreshed["total_consumed"]) == (0, 0)

    @pytest.mark.asyncio()
    async def test_capacity_is_enforced_atomically(self, client, admin_headers, company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure, total_quantity=1)
        first = await create_student(client, admin_headers, company, 1)
        second = await create_student(client, admin_headers, company, 2)

        response = await client.post(
            f"/api/licenses/{license['id']}/students",
            json={"student_ids": [first["id"], second["id"]]},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "License has no available capacity"

        response = await client.get(f"/api/licenses/{license['id']}/students", headers=admin_headers)
        assert response.json() == []

    @pytest.mark.asyncio()
    async def test_assign_checks_students(self, client, admin_headers, company, other_company, data_structure):
        license = await create_license(client, admin_headers, company, data_structure)
        outsider = await create_student(client, admin_headers, other_company, 9)

        response = await client.post(
            f"/api/licenses/{license['id']}/students", json={"student_ids": [12345]}, headers=admin_headers
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Student(s) not found: 12345"

        response = await client.post(
            f"/api/licenses/{license['id']}/students", json={"student_ids": [outsider["id"]]}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Student does not belong to the license's company"

        response = await client.post(
            f"/api/licenses/{license['id']}/students", json={"student_ids": []}, headers=admin_headers
        )
        assert response.status_code == 422

    @pytest.mark.asyncio()
    async def test_expired_license_cannot_be_assigned(self, client, admin_headers, company, data_structure):
        license = await create_license(
            client, admin_headers, company, data_structure, start_date="2020-01-01", end_date="2020-12-31"
        )
        student = await create_student(client, admin_headers, company, 1)

        response = await client.post(
            f"/api/licenses/{license['id']}/students", json={"student_ids": [student["id"]]}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "License has expired"
