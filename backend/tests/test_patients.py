from datetime import date

from models import Patient
from routers.patients import generate_patient_number


def _register(client, headers, **overrides):
    body = {"first_name": "Alice", "last_name": "Patel", "age": 50, "gender": "Female", "phone": "98450 11111"}
    body.update(overrides)
    return client.post("/patients/register", headers=headers, json=body)


def test_register_creates_patient_and_visit(client, receptionist_headers, seeded_users):
    response = _register(client, receptionist_headers, chief_complaint="Headache")
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    assert data["patient"]["full_name"] == "Alice Patel"
    assert data["patient"]["patient_number"].startswith(f"P{date.today().strftime('%y%m')}")
    assert data["visit"]["visit_status"] == "waiting"
    assert data["visit"]["chief_complaint"] == "Headache"
    assert data["visit"]["doctor_id"] in {seeded_users["doctor"]["id"], seeded_users["doctor2"]["id"]}


def test_register_spreads_visits_across_doctors(client, receptionist_headers, seeded_users):
    first = _register(client, receptionist_headers).json()["data"]["visit"]["doctor_id"]
    second = _register(client, receptionist_headers, first_name="Bob").json()["data"]["visit"]["doctor_id"]
    assert {first, second} == {seeded_users["doctor"]["id"], seeded_users["doctor2"]["id"]}


def test_register_with_explicit_doctor(client, receptionist_headers, seeded_users):
    response = _register(client, receptionist_headers, doctor_id=seeded_users["doctor2"]["id"])
    assert response.json()["data"]["visit"]["doctor_id"] == seeded_users["doctor2"]["id"]

    not_a_doctor = _register(client, receptionist_headers, doctor_id=seeded_users["nurse"]["id"])
    assert not_a_doctor.status_code == 404


def test_register_permissions(client, nurse_headers, pharmacist_headers, doctor_headers, admin_headers):
    assert _register(client, nurse_headers).status_code == 403
    assert _register(client, pharmacist_headers).status_code == 403
    assert _register(client, doctor_headers).status_code == 201
    assert _register(client, admin_headers).status_code == 201


def test_register_validates_input(client, receptionist_headers):
    response = _register(client, receptionist_headers, age=200)
    assert response.status_code == 400
    assert "age" in response.json()["error"]


def test_patient_numbers_are_sequential_within_month(db_session):
    today = date(2026, 3, 14)
    assert generate_patient_number(db_session, today) == "P2603001"
    db_session.add(Patient(patient_number="P2603001", first_name="A", age=1, gender="F"))
    db_session.add(Patient(patient_number="P2602007", first_name="B", age=1, gender="F"))
    db_session.commit()
    assert generate_patient_number(db_session, today) == "P2603002"


def test_search_and_history(client, receptionist_headers, doctor_headers):
    created = _register(client, receptionist_headers).json()["data"]
    _register(client, receptionist_headers, first_name="Bob", last_name="Singh", phone="98450 22222")

    by_name = client.get("/patients/search", params={"q": "pat"}, headers=doctor_headers)
    assert by_name.status_code == 200
    assert [p["full_name"] for p in by_name.json()["data"]] == ["Alice Patel"]

    by_number = client.get(
        "/patients/search",
        params={"q": created["patient"]["patient_number"]},
        headers=doctor_headers,
    )
    assert [p["id"] for p in by_number.json()["data"]] == [created["patient"]["id"]]

    history = client.get(f"/patients/{created['patient']['id']}", headers=doctor_headers)
    assert history.status_code == 200
    assert len(history.json()["data"]["visits"]) == 1
    assert history.json()["data"]["admissions"] == []

    assert client.get("/patients/9999", headers=doctor_headers).status_code == 404


def test_visit_status_update(client, receptionist_headers, doctor_headers):
    visit_id = _register(client, receptionist_headers).json()["data"]["visit"]["id"]

    started = client.put(f"/visits/{visit_id}/status", headers=doctor_headers, json={"status": "in_consultation"})
    assert started.status_code == 200
    assert started.json()["message"] == "Visit status updated to in_consultation"

    done = client.put(f"/visits/{visit_id}/status", headers=doctor_headers, json={"status": "completed"})
    assert done.json()["data"]["consultation_end_time"] is not None

    bogus = client.put(f"/visits/{visit_id}/status", headers=doctor_headers, json={"status": "teleported"})
    assert bogus.status_code == 400

    blocked = client.put(f"/visits/{visit_id}/status", headers=receptionist_headers, json={"status": "completed"})
    assert blocked.status_code == 403
