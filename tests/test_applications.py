from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.future import select

from edufin.models import FeeApplication, Student
from conftest import make_token


async def test_create_application_with_plan(client, seed, create_application):
    application = await create_application()

    assert application["status"] == "emi_pending"
    assert application["total_amount"] == "10000.00"
    assert application["remaining_amount"] == "10000.00"
    assert application["monthly_installment"] == "3333.33"
    assert application["student"]["id"] == seed.student_id
    assert application["emi_plan"]["installments"] == 3


async def test_create_application_without_plan(create_application):
    application = await create_application(with_plan=False)

    assert application["status"] == "onboarding_pending"
    assert application["monthly_installment"] is None
    assert application["emi_plan"] is None


async def test_create_application_for_another_parents_student(client, seed, other_parent_headers):
    response = await client.post(
        "/api/applications",
        json={"student_id": seed.student_id, "fee_structure_id": seed.fee_structure_id},
        headers=other_parent_headers,
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "Student not found"}


async def test_create_application_missing_fields(client, seed, parent_headers):
    response = await client.post("/api/applications", json={"student_id": seed.student_id}, headers=parent_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or missing fields"


async def test_requests_without_valid_token_are_rejected(client, seed):
    response = await client.get("/api/applications")
    assert response.status_code == 401

    expired = make_token(seed.parent_id, expires_in=timedelta(minutes=-5))
    response = await client.get("/api/applications", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"

    unknown = make_token(99999)
    response = await client.get("/api/applications", headers={"Authorization": f"Bearer {unknown}"})
    assert response.status_code == 401


async def test_application_list_covers_every_student(client, seed, parent_headers, create_application):
    response = await client.post(
        "/api/students",
        json={"name": "Kemi", "institution_id": seed.institution_id, "class_name": "SS2"},
        headers=parent_headers,
    )
    assert response.status_code == 201
    second_student = response.json()

    first = await create_application()
    second = await create_application(student_id=second_student["id"])

    response = await client.get("/api/applications", headers=parent_headers)

    assert response.status_code == 200
    ids = {item["id"] for item in response.json()}
    assert ids == {first["id"], second["id"]}

    response = await client.get("/api/fees/available", headers=parent_headers)
    assert response.status_code == 200
    assert len(response.json()["students"]) == 2
    assert [fee["id"] for fee in response.json()["fee_structures"]] == [seed.fee_structure_id]


async def test_application_detail_access(client, create_application, parent_headers, other_parent_headers, admin_headers):
    application = await create_application()
    url = f"/api/applications/{application['id']}"

    assert (await client.get(url, headers=parent_headers)).status_code == 200
    assert (await client.get(url, headers=admin_headers)).status_code == 200

    response = await client.get(url, headers=other_parent_headers)
    assert response.status_code == 403

    response = await client.get("/api/applications/424242", headers=parent_headers)
    assert response.status_code == 404


async def test_choose_plan_and_submit(client, seed, create_application, parent_headers):
    application = await create_application(with_plan=False)

    response = await client.post(f"/api/applications/{application['id']}/submit", headers=parent_headers)
    assert response.status_code == 400

    response = await client.put(
        f"/api/applications/{application['id']}/emi-plan",
        json={"emi_plan_id": seed.plan_id},
        headers=parent_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "emi_pending"
    assert response.json()["monthly_installment"] == "3333.33"

    response = await client.post(f"/api/applications/{application['id']}/submit", headers=parent_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "platform_review"

    response = await client.put(
        f"/api/applications/{application['id']}/emi-plan",
        json={"emi_plan_id": seed.plan_id},
        headers=parent_headers,
    )
    assert response.status_code == 400


async def test_delete_last_application_removes_student(client, seed, create_application, parent_headers, session_factory):
    application = await create_application()

    response = await client.delete(f"/api/applications/{application['id']}", headers=parent_headers)

    assert response.status_code == 200
    assert response.json()["student_removed"] is True

    async with session_factory() as session:
        result = await session.execute(select(Student).where(Student.id == seed.student_id))
        assert result.scalars().first() is None


async def test_delete_keeps_student_with_other_applications(client, seed, create_application, parent_headers, session_factory):
    first = await create_application()
    second = await create_application(with_plan=False)

    response = await client.delete(f"/api/applications/{first['id']}", headers=parent_headers)

    assert response.status_code == 200
    assert response.json()["student_removed"] is False

    async with session_factory() as session:
        result = await session.execute(select(FeeApplication.id).where(FeeApplication.student_id == seed.student_id))
        assert result.scalars().all() == [second["id"]]


async def test_delete_only_before_submission(client, create_application, parent_headers, other_parent_headers, session_factory):
    application = await create_application()
    url = f"/api/applications/{application['id']}"

    response = await client.delete(url, headers=other_parent_headers)
    assert response.status_code == 403

    async with session_factory() as session:
        for status in ("platform_review", "approved", "active", "completed"):
            await session.execute(
                update(FeeApplication).where(FeeApplication.id == application["id"]).values(status=status)
            )
            await session.commit()

            response = await client.delete(url, headers=parent_headers)
            assert response.status_code == 400
            assert response.json()["detail"] == "Cannot delete applications that are in progress or completed"
