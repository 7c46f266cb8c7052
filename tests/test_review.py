from datetime import datetime, timezone

from sqlalchemy import func, update
from sqlalchemy.future import select

from edufin.models import FeeApplication, Installment
from edufin.services.schedule import first_of_month_after


async def count_rows(session_factory, application_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count(Installment.id)).where(Installment.fee_application_id == application_id)
        )
        return result.scalar_one()


async def test_approval_generates_schedule(client, approved_application, parent_headers):
    application = await approved_application()

    response = await client.get(
        "/api/installments", params={"applicationId": application["id"]}, headers=parent_headers
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["amount"] for item in body["installments"]] == ["3333.33", "3333.33", "3333.34"]
    assert [item["installment_number"] for item in body["installments"]] == [1, 2, 3]
    assert all(item["status"] == "pending" for item in body["installments"])
    assert body["summary"]["total"] == 3
    assert body["summary"]["total_amount"] == "10000.00"
    assert body["summary"]["paid_amount"] == "0.00"

    now = datetime.now(timezone.utc)
    expected = [first_of_month_after(now, number).strftime("%Y-%m-%d") for number in (1, 2, 3)]
    assert [item["due_date"][:10] for item in body["installments"]] == expected


async def test_approve_response(client, create_application, admin_headers):
    application = await create_application()

    response = await client.patch(
        f"/api/applications/{application['id']}", json={"action": "approve"}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["installments_generated"] == 3

    response = await client.get(f"/api/applications/{application['id']}", headers=admin_headers)
    assert response.json()["approved_at"] is not None
    assert response.json()["approved_by"] is not None


async def test_generate_twice_conflicts(client, approved_application, admin_headers, session_factory):
    application = await approved_application()

    response = await client.post(
        f"/api/applications/{application['id']}/generate-installments", headers=admin_headers
    )

    assert response.status_code == 400
    assert await count_rows(session_factory, application["id"]) == 3


async def test_generate_installments_for_unscheduled_application(client, create_application, admin_headers, parent_headers, session_factory):
    application = await create_application()

    response = await client.post(
        f"/api/applications/{application['id']}/generate-installments", headers=parent_headers
    )
    assert response.status_code == 403

    response = await client.post(
        f"/api/applications/{application['id']}/generate-installments", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["count"] == 3
    assert await count_rows(session_factory, application["id"]) == 3


async def test_parent_cannot_review(client, create_application, parent_headers):
    application = await create_application()

    response = await client.patch(
        f"/api/applications/{application['id']}", json={"action": "approve"}, headers=parent_headers
    )

    assert response.status_code == 403


async def test_approve_outside_review_conflicts(client, create_application, admin_headers, session_factory):
    application = await create_application(with_plan=False)

    response = await client.patch(
        f"/api/applications/{application['id']}", json={"action": "approve"}, headers=admin_headers
    )

    # onboarding_pending is not awaiting review
    assert response.status_code == 400
    assert await count_rows(session_factory, application["id"]) == 0


async def test_unknown_action(client, create_application, admin_headers):
    application = await create_application()

    response = await client.patch(
        f"/api/applications/{application['id']}", json={"action": "escalate"}, headers=admin_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid action"


async def test_rejected_application_stays_rejected(client, create_application, admin_headers, session_factory):
    application = await create_application()
    url = f"/api/applications/{application['id']}"

    response = await client.patch(url, json={"action": "reject"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

    response = await client.patch(url, json={"action": "approve"}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.get(url, headers=admin_headers)
    assert response.json()["status"] == "rejected"
    assert response.json()["rejected_at"] is not None
    assert await count_rows(session_factory, application["id"]) == 0


async def test_admin_application_list(client, create_application, approved_application, admin_headers, parent_headers):
    submitted = await create_application()
    await client.post(f"/api/applications/{submitted['id']}/submit", headers=parent_headers)
    await approved_application()
    await create_application(with_plan=False)

    response = await client.get("/api/admin/applications", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["pending_review"] == 1

    response = await client.get(
        "/api/admin/applications", params={"status": "platform_review"}, headers=admin_headers
    )
    assert [item["id"] for item in response.json()["applications"]] == [submitted["id"]]

    response = await client.get("/api/admin/applications", headers=parent_headers)
    assert response.status_code == 403


async def test_approve_requires_plan(client, create_application, admin_headers, session_factory):
    application = await create_application()
    async with session_factory() as session:
        await session.execute(
            update(FeeApplication)
            .where(FeeApplication.id == application["id"])
            .values(emi_plan_id=None, monthly_installment=None)
        )
        await session.commit()

    response = await client.patch(
        f"/api/applications/{application['id']}", json={"action": "approve"}, headers=admin_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Application does not have EMI plan or monthly installment"
    assert await count_rows(session_factory, application["id"]) == 0


async def test_generate_installments_for_rejected_application(client, create_application, admin_headers, session_factory):
    application = await create_application()
    url = f"/api/applications/{application['id']}"
    assert (await client.patch(url, json={"action": "reject"}, headers=admin_headers)).status_code == 200

    response = await client.post(f"{url}/generate-installments", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot generate installments for an application in status 'rejected'"
    assert await count_rows(session_factory, application["id"]) == 0


async def test_approval_keeps_admin_generated_schedule(client, create_application, admin_headers, parent_headers, session_factory):
    application = await create_application()
    url = f"/api/applications/{application['id']}"

    response = await client.post(f"{url}/generate-installments", headers=admin_headers)
    assert response.json()["count"] == 3

    response = await client.patch(url, json={"action": "approve"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["installments_generated"] == 0
    assert await count_rows(session_factory, application["id"]) == 3

    response = await client.get("/api/installments", params={"applicationId": application["id"]}, headers=parent_headers)
    assert [item["installment_number"] for item in response.json()["installments"]] == [1, 2, 3]


async def test_admin_application_list_total_spans_pages(client, create_application, admin_headers):
    await create_application()
    await create_application()

    response = await client.get("/api/admin/applications", params={"limit": 1}, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert len(body["applications"]) == 1
    assert body["total"] == 2

    response = await client.get(
        "/api/admin/applications", params={"status": "platform_review", "limit": 1}, headers=admin_headers
    )
    assert response.json()["total"] == 0
    assert response.json()["applications"] == []
