from sqlmodel import select

from models import Bed, BedStatus, Ward


def test_create_ward_numbers_beds(client, ward_admin_headers, seeded_users):
    response = client.post(
        "/wards",
        headers=ward_admin_headers,
        json={
            "name": "Maternity",
            "code": "mat",
            "ward_type": "Maternity",
            "bed_count": 3,
            "head_nurse_id": seeded_users["nurse"]["id"],
        },
    )
    assert response.status_code == 201, response.text
    ward = response.json()["data"]
    assert ward["code"] == "MAT"
    assert ward["ward_type"] == "maternity"
    assert ward["total_beds"] == ward["available_beds"] == 3
    assert [bed["bed_number"] for bed in ward["beds"]] == ["MAT-01", "MAT-02", "MAT-03"]
    assert all(bed["bed_status"] == "available" for bed in ward["beds"])

    duplicate = client.post(
        "/wards",
        headers=ward_admin_headers,
        json={"name": "Maternity 2", "code": "MAT", "bed_count": 1},
    )
    assert duplicate.status_code == 409


def test_create_ward_requires_ward_admin(client, nurse_headers):
    response = client.post("/wards", headers=nurse_headers, json={"name": "X", "code": "X", "bed_count": 1})
    assert response.status_code == 403


def test_overview_reports_counter_drift_and_reconcile_fixes_it(
    client, nurse_headers, ward_admin_headers, make_ward, db_session
):
    ward_id = make_ward(bed_count=3)
    bed = db_session.exec(select(Bed).where(Bed.ward_id == ward_id, Bed.bed_number == "GWA-02")).one()
    bed.status = BedStatus.MAINTENANCE
    db_session.add(bed)
    db_session.commit()

    overview = client.get("/ward-admin/beds", headers=nurse_headers)
    assert overview.status_code == 200
    ward = overview.json()["data"][0]
    assert ward["available_beds"] == 3
    assert ward["computed_available_beds"] == 2
    assert ward["counter_drift"] == 1
    assert ward["occupied_beds"] == 0

    reconciled = client.post(f"/wards/{ward_id}/reconcile", headers=ward_admin_headers)
    assert reconciled.status_code == 200
    assert reconciled.json()["data"] == {"ward_id": ward_id, "previous_available_beds": 3, "available_beds": 2}

    db_session.expire_all()
    assert db_session.get(Ward, ward_id).available_beds == 2
    after = client.get("/ward-admin/beds", params={"ward_id": ward_id}, headers=nurse_headers).json()["data"][0]
    assert after["counter_drift"] == 0


def test_overview_names_patients_in_occupied_beds(
    client, doctor_headers, nurse_headers, seeded_users, patient_visit, make_ward
):
    make_ward(bed_count=2)
    patient_id, visit_id = patient_visit
    requested = client.post(
        "/admissions/request",
        headers=doctor_headers,
        json={
            "patientId": patient_id,
            "visitId": visit_id,
            "requestedBy": seeded_users["doctor"]["id"],
            "admissionReason": "Observation",
        },
    )
    assert requested.status_code == 201, requested.text
    admission_id = requested.json()["data"]["admission"]["id"]
    approved = client.post(
        f"/admissions/{admission_id}/approve",
        headers=nurse_headers,
        json={"approvedBy": seeded_users["nurse"]["id"]},
    )
    assert approved.status_code == 200, approved.text

    ward = client.get("/ward-admin/beds", headers=nurse_headers).json()["data"][0]
    assert ward["available_beds"] == 1
    assert ward["occupied_beds"] == 1
    assert ward["counter_drift"] == 0
    first = ward["beds"][0]
    assert first["bed_status"] == "occupied"
    assert first["patient_id"] == patient_id
    assert first["patient_name"] == "Asha Menon"
    assert ward["beds"][1]["patient_name"] is None


def test_reconcile_unknown_ward_is_404(client, admin_headers):
    response = client.post("/wards/404/reconcile", headers=admin_headers)
    assert response.status_code == 404
