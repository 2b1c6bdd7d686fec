"""
Tests for student accounts.
"""

import pytest

from edu_admin.models.tenants import Branch, School


def student_payload(company, **overrides):
    payload = {
        "email": "Ada.Pupil@Example.com",
        "name": "Ada Pupil",
        "password": "secret-pass",
        "company_id": company.id,
        "student_code": "STU-001",
        "enrollment_number": "ENR-001",
        "grade_level": "10",
        "section": "B",
        "admission_date": "2024-09-01",
        "parent_name": "Grace Pupil",
        "parent_email": "",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio()
async def test_create_student_with_user(client, admin_headers, company, school):
    response = await client.post(
        "/api/students", json=student_payload(company, school_id=school.id), headers=admin_headers
    )
    assert response.status_code == 201
    student = response.json()
    assert student["email"] == "ada.pupil@example.com"
    assert student["name"] == "Ada Pupil"
    assert student["school_name"] == "Acme North"
    assert student["branch_name"] is None
    assert student["is_active"] is True

    login = await client.post(
        "/api/auth/login", json={"email": "ada.pupil@example.com", "password": "secret-pass"}
    )
    assert login.status_code == 200
    assert login.json()["role"] == "student"


@pytest.mark.asyncio()
@pytest.mark.parametrize("overrides,message", [
    ({"password": ""}, "Email, name, and password are required"),
    ({"student_code": " "}, "Student code and enrollment number are required"),
    ({"password": "short"}, "Password must be at least 8 characters"),
])
async def test_create_student_validation(client, admin_headers, company, overrides, message):
    response = await client.post("/api/students", json=student_payload(company, **overrides), headers=admin_headers)
    assert response.status_code == 422
    assert message in response.json()["detail"][0]["msg"]


@pytest.mark.asyncio()
async def test_create_student_uniqueness(client, admin_headers, company):
    await client.post("/api/students", json=student_payload(company), headers=admin_headers)

    response = await client.post(
        "/api/students", json=student_payload(company, email="other@example.com"), headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Student code already exists"

    response = await client.post(
        "/api/students",
        json=student_payload(company, email="other@example.com", student_code="STU-002"),
        headers=admin_headers,
    )
    assert response.json()["detail"] == "Enrollment number already exists"

    response = await client.post(
        "/api/students",
        json=student_payload(company, student_code="STU-002", enrollment_number="ENR-002"),
        headers=admin_headers,
    )
    assert response.json()["detail"] == "Email already in use"


@pytest.mark.asyncio()
async def test_placement_must_match(client, db_session, admin_headers, company, other_company, school):
    foreign_school = School(name="Globex East", company_id=other_company.id, status="active")
    db_session.add(foreign_school)
    await db_session.flush()
    foreign_branch = Branch(name="Harbour", code="", school_id=foreign_school.id)
    db_session.add(foreign_branch)
    await db_session.commit()

    response = await client.post(
        "/api/students", json=student_payload(company, school_id=foreign_school.id), headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "School does not belong to the student's company"

    response = await client.post(
        "/api/students",
        json=student_payload(company, school_id=school.id, branch_id=foreign_branch.id),
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Branch does not belong to the selected school"


@pytest.mark.asyncio()
async def test_entity_admin_limited_to_own_company(client, entity_headers, company, other_company):
    response = await client.post("/api/students", json=student_payload(other_company), headers=entity_headers)
    assert response.status_code == 403

    response = await client.post("/api/students", json=student_payload(company), headers=entity_headers)
    assert response.status_code == 201


@pytest.mark.asyncio()
async def test_list_students_filters(client, admin_headers, entity_headers, company, other_company):
    await client.post("/api/students", json=student_payload(company), headers=admin_headers)
    await client.post(
        "/api/students",
        json=student_payload(
            other_company,
            email="bo@example.com",
            name="Bo Learner",
            student_code="STU-002",
            enrollment_number="ENR-002",
            admission_date="2023-01-15",
            grade_level="11",
        ),
        headers=admin_headers,
    )

    response = await client.get("/api/students", headers=admin_headers)
    assert response.json()["total"] == 2

    response = await client.get("/api/students", params={"search": "learner"}, headers=admin_headers)
    assert [s["name"] for s in response.json()["items"]] == ["Bo Learner"]

    response = await client.get("/api/students", params={"admission_year": 2024}, headers=admin_headers)
    assert [s["student_code"] for s in response.json()["items"]] == ["STU-001"]

    response = await client.get("/api/students", params={"grade_level": "11"}, headers=admin_headers)
    assert response.json()["total"] == 1

    response = await client.get("/api/students", params={"limit": 1, "offset": 1}, headers=admin_headers)
    data = response.json()
    assert data["total"] == 2
    assert len(data["items"]) == 1

    response = await client.get("/api/students", headers=entity_headers)
    assert [s["company_id"] for s in response.json()["items"]] == [company.id]


@pytest.mark.asyncio()
async def test_update_student(client, admin_headers, company, school):
    student = (await client.post("/api/students", json=student_payload(company), headers=admin_headers)).json()

    response = await client.put(
        f"/api/students/{student['id']}",
        json={"name": "Ada Lovelace", "section": "C", "school_id": school.id, "password": "new-password"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    updated = response.json()
    assert updated["name"] == "Ada Lovelace"
    assert updated["section"] == "C"
    assert updated["school_name"] == "Acme North"

    login = await client.post(
        "/api/auth/login", json={"email": "ada.pupil@example.com", "password": "new-password"}
    )
    assert login.status_code == 200

    response = await client.put(f"/api/students/{student['id']}", json={"name": "  "}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Name cannot be empty"


@pytest.mark.asyncio()
async def test_soft_delete_deactivates_account(client, admin_headers, company):
    student = (await client.post("/api/students", json=student_payload(company), headers=admin_headers)).json()

    response = await client.delete(f"/api/students/{student['id']}", headers=admin_headers)
    assert response.json() == {"detail": "Student deactivated successfully"}

    response = await client.get(f"/api/students/{student['id']}", headers=admin_headers)
    assert response.json()["is_active"] is False

    login = await client.post(
        "/api/auth/login", json={"email": "ada.pupil@example.com", "password": "secret-pass"}
    )
    assert login.status_code == 401


@pytest.mark.asyncio()
async def test_hard_delete_removes_student_and_user(client, admin_headers, company):
    student = (await client.post("/api/students", json=student_payload(company), headers=admin_headers)).json()

    response = await client.delete(
        f"/api/students/{student['id']}", params={"hard": "true"}, headers=admin_headers
    )
    assert response.json() == {"detail": "Student deleted successfully"}

    response = await client.get(f"/api/students/{student['id']}", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Student not found"
