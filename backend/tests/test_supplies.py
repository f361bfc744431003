from models import RequestStatus, SupplyRequest


def test_add_and_list_ward_supplies(client, nurse_headers, make_ward):
    ward_id = make_ward()
    created = client.post(
        "/ward-admin/supplies",
        headers=nurse_headers,
        json={"ward_id": ward_id, "supply_name": "Gauze Pads", "current_stock": 4, "minimum_stock_level": 10},
    )
    assert created.status_code == 201, created.text
    assert created.json()["data"]["stock_status"] == "low_stock"

    duplicate = client.post(
        "/ward-admin/supplies",
        headers=nurse_headers,
        json={"ward_id": ward_id, "supply_name": "Gauze Pads"},
    )
    assert duplicate.status_code == 409

    listed = client.get("/ward-admin/supplies", params={"ward_id": ward_id}, headers=nurse_headers)
    assert listed.status_code == 200
    assert [s["supply_name"] for s in listed.json()["data"]] == ["Gauze Pads"]


def test_update_stock_is_floored_at_zero(client, nurse_headers, make_ward, make_supply):
    ward_id = make_ward()
    _, supply_id = make_supply(ward_id, ward_stock=5)

    up = client.post(f"/ward-admin/supplies/{supply_id}/update-stock", headers=nurse_headers, json={"change": 7})
    assert up.status_code == 200
    assert up.json()["data"]["previous_stock"] == 5
    assert up.json()["data"]["new_stock"] == 12

    down = client.post(f"/ward-admin/supplies/{supply_id}/update-stock", headers=nurse_headers, json={"change": -50})
    assert down.status_code == 200
    assert down.json()["data"]["new_stock"] == 0
    assert down.json()["data"]["supply"]["stock_status"] == "out_of_stock"


def test_update_stock_validates_change(client, nurse_headers, make_ward, make_supply):
    ward_id = make_ward()
    _, supply_id = make_supply(ward_id)

    too_big = client.post(
        f"/ward-admin/supplies/{supply_id}/update-stock",
        headers=nurse_headers,
        json={"change": 1_000_001},
    )
    assert too_big.status_code == 400

    missing = client.post(f"/ward-admin/supplies/{supply_id}/update-stock", headers=nurse_headers, json={})
    assert missing.status_code == 400
    assert "change" in missing.json()["error"]

    unknown = client.post("/ward-admin/supplies/999/update-stock", headers=nurse_headers, json={"change": 1})
    assert unknown.status_code == 404


def test_request_for_supply_of_another_ward_rejected(client, nurse_headers, seeded_users, make_ward, make_supply):
    ward_id = make_ward()
    other_ward = make_ward(name="General Ward B", code="GWB")
    _, supply_id = make_supply(other_ward)

    response = client.post(
        "/ward-admin/supply-requests",
        headers=nurse_headers,
        json={
            "ward_id": ward_id,
            "supply_id": supply_id,
            "quantity_requested": 3,
            "requested_by": seeded_users["nurse"]["id"],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid supply_id"


def test_request_receipt_lifecycle(
    client, nurse_headers, pharmacist_headers, seeded_users, make_ward, make_supply, db_session
):
    ward_id = make_ward()
    _, supply_id = make_supply(ward_id)
    submitted = client.post(
        "/ward-admin/supply-requests",
        headers=nurse_headers,
        json={
            "ward_id": ward_id,
            "supply_id": supply_id,
            "quantity_requested": 10,
            "requested_by": seeded_users["nurse"]["id"],
        },
    )
    assert submitted.status_code == 201, submitted.text
    data = submitted.json()["data"]
    request_id = data["request"]["id"]
    assert data["pharmacy_stock"]["available"] is True

    early = client.post(f"/ward-admin/supply-requests/{request_id}/receive", headers=nurse_headers)
    assert early.status_code == 400

    approved = client.post(
        "/pharmacist/approve-request",
        headers=pharmacist_headers,
        json={"request_id": request_id, "approved_quantity": 10, "pharmacist_id": seeded_users["pharmacist"]["id"]},
    )
    assert approved.status_code == 200, approved.text

    received = client.post(f"/ward-admin/supply-requests/{request_id}/receive", headers=nurse_headers)
    assert received.status_code == 200
    assert received.json()["data"]["request_status"] == "completed"
    assert db_session.get(SupplyRequest, request_id).request_status == RequestStatus.COMPLETED

    listing = client.get("/ward-admin/supply-requests", params={"ward_id": ward_id}, headers=nurse_headers)
    assert listing.json()["data"]["total"] == 1
    assert listing.json()["data"]["pending"] == 0


def test_request_actor_must_match(client, nurse_headers, seeded_users, make_ward, make_supply):
    ward_id = make_ward()
    _, supply_id = make_supply(ward_id)

    response = client.post(
        "/ward-admin/supply-requests",
        headers=nurse_headers,
        json={
            "ward_id": ward_id,
            "supply_id": supply_id,
            "quantity_requested": 1,
            "requested_by": seeded_users["ward_admin"]["id"],
        },
    )
    assert response.status_code == 403
