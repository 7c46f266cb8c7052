import logging

from edufin.middleware.logging import RequestIdFilter


async def test_admin_creates_catalog_entries(client, admin_headers):
    response = await client.post(
        "/api/admin/institutions",
        json={"name": "Riverside College", "type": "college", "email": "bursar@riverside.test"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    institution = response.json()

    response = await client.post(
        "/api/admin/fee-structures",
        json={
            "institution_id": institution["id"],
            "name": "Semester Fee",
            "amount": "4500.50",
            "academic_year": "2026-2027",
            "semester": "Fall",
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    fee_structure = response.json()
    assert fee_structure["amount"] == "4500.50"

    response = await client.post(
        "/api/admin/emi-plans",
        json={"name": "6 Month Plan", "installments": 6, "fee_structure_id": fee_structure["id"]},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["fee_structure_id"] == fee_structure["id"]

    response = await client.get(f"/api/institutions/{institution['id']}/fee-structures", headers=admin_headers)
    assert [item["id"] for item in response.json()] == [fee_structure["id"]]


async def test_duplicate_institution_name(client, seed, admin_headers):
    response = await client.post("/api/admin/institutions", json={"name": "Greenfield School"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Institution with this name already exists"


async def test_parents_cannot_manage_catalog(client, seed, parent_headers):
    response = await client.post("/api/admin/institutions", json={"name": "Parent School"}, headers=parent_headers)
    assert response.status_code == 403

    response = await client.post(
        "/api/admin/emi-plans", json={"name": "Sneaky", "installments": 2}, headers=parent_headers
    )
    assert response.status_code == 403


async def test_invalid_catalog_entries(client, seed, admin_headers):
    response = await client.post(
        "/api/admin/fee-structures",
        json={"institution_id": seed.institution_id, "name": "Free", "amount": "0", "academic_year": "2026"},
        headers=admin_headers,
    )
    assert response.status_code == 400

    response = await client.post("/api/admin/emi-plans", json={"name": "Never", "installments": 0}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post(
        "/api/admin/fee-structures",
        json={"institution_id": 424242, "name": "Orphan", "amount": "10.00", "academic_year": "2026"},
        headers=admin_headers,
    )
    assert response.status_code == 404


async def test_plans_offered_for_a_fee_structure(client, seed, admin_headers, parent_headers):
    response = await client.post(
        "/api/admin/fee-structures",
        json={"institution_id": seed.institution_id, "name": "Bus Fee", "amount": "1200.00", "academic_year": "2026-2027"},
        headers=admin_headers,
    )
    bus_fee = response.json()
    await client.post(
        "/api/admin/emi-plans",
        json={"name": "Bus 2 Month", "installments": 2, "fee_structure_id": bus_fee["id"]},
        headers=admin_headers,
    )
    await client.post(
        "/api/admin/emi-plans",
        json={"name": "Retired", "installments": 4, "is_active": False},
        headers=admin_headers,
    )

    response = await client.get(f"/api/fee-structures/{seed.fee_structure_id}/emi-plans", headers=parent_headers)
    assert [plan["name"] for plan in response.json()] == ["3 Month Plan"]

    response = await client.get(f"/api/fee-structures/{bus_fee['id']}/emi-plans", headers=parent_headers)
    assert [plan["name"] for plan in response.json()] == ["Bus 2 Month", "3 Month Plan"]

    # a plan tied to the bus fee cannot be used for tuition
    bus_plan_id = response.json()[0]["id"]
    response = await client.post(
        "/api/applications",
        json={"student_id": seed.student_id, "fee_structure_id": seed.fee_structure_id, "emi_plan_id": bus_plan_id},
        headers=parent_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "EMI plan is not offered for this fee structure"


async def test_register_student_at_unknown_institution(client, seed, parent_headers):
    response = await client.post("/api/students", json={"name": "Nobody", "institution_id": 424242}, headers=parent_headers)

    assert response.status_code == 404

    response = await client.get("/api/students", headers=parent_headers)
    assert [student["name"] for student in response.json()] == ["Tobi"]


async def test_request_id_is_echoed(client, seed, parent_headers):
    response = await client.get("/api/institutions", headers={**parent_headers, "X-Request-ID": "trace-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "trace-123"
    assert [item["name"] for item in response.json()] == ["Greenfield School"]

    response = await client.get("/api/institutions", headers=parent_headers)
    assert len(response.headers["X-Request-ID"]) == 32


async def test_completion_log_carries_request_id(client, seed, parent_headers, caplog):
    caplog.set_level(logging.INFO, logger="edufin.request")
    caplog.handler.addFilter(RequestIdFilter())

    await client.get("/api/institutions", headers={**parent_headers, "X-Request-ID": "trace-456"})

    completed = [record for record in caplog.records if record.getMessage().startswith("Request completed")]
    assert len(completed) == 1
    assert completed[0].request_id == "trace-456"
    assert "[status: 200]" in completed[0].getMessage()
