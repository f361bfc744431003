import httpx
import pytest

from main import app
from services.ai_assist import (
    AIAssistClient,
    AIServiceError,
    AIServiceTimeout,
    AIServiceUnavailable,
    build_case_summary,
    get_ai_client,
)


def _completion(request: httpx.Request) -> httpx.Response:
    assert request.headers["Authorization"] == "Bearer test-key"
    return httpx.Response(
        200,
        json={
            "model": "gpt-test",
            "choices": [{"message": {"content": "Differential: viral URTI"}}],
            "usage": {"total_tokens": 42},
        },
    )


def _timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("upstream too slow", request=request)


@pytest.fixture
def use_ai_transport():
    def _install(handler):
        client = AIAssistClient(api_key="test-key", base_url="https://ai.test/v1", transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_ai_client] = lambda: client
        return client

    yield _install
    app.dependency_overrides.pop(get_ai_client, None)


def test_case_summary_fills_gaps():
    summary = build_case_summary(chief_complaint="Sore throat", patient_age=31)
    assert "Age: 31" in summary
    assert "Chief complaint: Sore throat" in summary
    assert "Vital signs: Not recorded" in summary


@pytest.mark.anyio
async def test_draft_diagnosis_parses_completion():
    client = AIAssistClient(api_key="test-key", base_url="https://ai.test/v1", transport=httpx.MockTransport(_completion))
    result = await client.draft_diagnosis("Age: 31")
    assert result == {"diagnosis": "Differential: viral URTI", "model": "gpt-test", "usage": {"total_tokens": 42}}


@pytest.mark.anyio
async def test_missing_key_and_upstream_errors():
    with pytest.raises(AIServiceUnavailable):
        await AIAssistClient(api_key="").draft_diagnosis("x")

    failing = AIAssistClient(
        api_key="test-key",
        base_url="https://ai.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(429, json={"error": "quota"})),
    )
    with pytest.raises(AIServiceError) as excinfo:
        await failing.draft_diagnosis("x")
    assert excinfo.value.status_code == 502

    with pytest.raises(AIServiceTimeout):
        await AIAssistClient(
            api_key="test-key",
            base_url="https://ai.test/v1",
            transport=httpx.MockTransport(_timeout),
        ).draft_diagnosis("x")


def test_diagnosis_endpoint(client, doctor_headers, use_ai_transport):
    use_ai_transport(_completion)
    response = client.post(
        "/ai/diagnosis",
        headers=doctor_headers,
        json={"chiefComplaint": "Sore throat", "patientAge": 31, "vitalSigns": "T 38.2"},
    )
    assert response.status_code == 200, response.text
    assert response.json()["data"]["diagnosis"] == "Differential: viral URTI"


def test_diagnosis_endpoint_maps_timeout_to_504(client, doctor_headers, use_ai_transport):
    use_ai_transport(_timeout)
    response = client.post("/ai/diagnosis", headers=doctor_headers, json={"symptoms": "cough"})
    assert response.status_code == 504
    assert response.json() == {"success": False, "error": "AI service timed out"}


def test_diagnosis_requires_complaint_or_symptoms(client, doctor_headers, use_ai_transport):
    use_ai_transport(_completion)
    response = client.post("/ai/diagnosis", headers=doctor_headers, json={"patientAge": 40})
    assert response.status_code == 400


def test_transcribe_endpoint(client, doctor_headers, use_ai_transport):
    def _transcription(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/audio/transcriptions"
        return httpx.Response(200, json={"text": "  patient reports chest pain  "})

    use_ai_transport(_transcription)
    response = client.post(
        "/ai/transcribe",
        headers=doctor_headers,
        files={"audio": ("note.webm", b"fake-audio-bytes", "audio/webm")},
    )
    assert response.status_code == 200, response.text
    assert response.json()["data"]["text"] == "patient reports chest pain"


def test_ai_routes_are_clinician_only(client, pharmacist_headers, use_ai_transport):
    use_ai_transport(_completion)
    response = client.post("/ai/diagnosis", headers=pharmacist_headers, json={"symptoms": "cough"})
    assert response.status_code == 403
