from __future__ import annotations

import logging
import os

import httpx
from fastapi import status

from services.errors import WorkflowError

logger = logging.getLogger("wardbridge")

AI_BASE_URL = os.getenv("WARDBRIDGE_AI_BASE_URL", "https://api.openai.com/v1")
AI_MODEL = os.getenv("WARDBRIDGE_AI_MODEL", "gpt-4o")
AI_TRANSCRIBE_MODEL = os.getenv("WARDBRIDGE_AI_TRANSCRIBE_MODEL", "whisper-1")
AI_TIMEOUT_SECONDS = float(os.getenv("WARDBRIDGE_AI_TIMEOUT_SECONDS", "30"))

SYSTEM_PROMPT = (
    "You are an experienced physician providing diagnostic assistance. "
    "Give a structured, evidence-based assessment: differential diagnosis, red flags, "
    "recommended investigations, treatment approach and follow-up. "
    "Always stress the need for clinical correlation."
)


class AIServiceError(WorkflowError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "AI service request failed"


class AIServiceUnavailable(AIServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "AI service is not configured"


class AIServiceTimeout(AIServiceError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "AI service timed out"


class AIAssistClient:
    """Thin request/response adapter for an OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = AI_BASE_URL,
        model: str = AI_MODEL,
        timeout: float = AI_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("WARDBRIDGE_AI_API_KEY")
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def _post(self, path: str, **kwargs) -> dict:
        if not self.api_key:
            raise AIServiceUnavailable()
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.post(path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("AI request %s timed out after %.0fs", path, self.timeout)
            raise AIServiceTimeout() from exc
        except httpx.HTTPError as exc:
            logger.error("AI request %s failed: %s", path, exc)
            raise AIServiceError() from exc

        if response.status_code >= 400:
            logger.error("AI request %s returned %s: %s", path, response.status_code, response.text[:500])
            raise AIServiceError(f"AI service error: {response.status_code}")
        return response.json()

    async def draft_diagnosis(self, case_summary: str) -> dict:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": case_summary},
            ],
            "max_tokens": 2000,
            "temperature": 0.3,
        }
        data = await self._post("/chat/completions", json=payload)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AIServiceError("No response received from AI model") from exc
        return {"diagnosis": text, "model": data.get("model", self.model), "usage": data.get("usage")}

    async def transcribe(self, audio: bytes, filename: str, content_type: str = "audio/webm") -> str:
        data = await self._post(
            "/audio/transcriptions",
            data={"model": AI_TRANSCRIBE_MODEL},
            files={"file": (filename, audio, content_type)},
        )
        text = (data.get("text") or "").strip()
        if not text:
            raise AIServiceError("No speech detected in audio")
        return text


def get_ai_client() -> AIAssistClient:
    return AIAssistClient()


def build_case_summary(
    *,
    chief_complaint: str = "",
    symptoms: str = "",
    patient_age: int | None = None,
    patient_gender: str = "",
    medical_history: str = "",
    physical_exam: str = "",
    vital_signs: str = "",
) -> str:
    lines = [
        f"Age: {patient_age if patient_age is not None else 'Not specified'}",
        f"Gender: {patient_gender or 'Not specified'}",
        f"Chief complaint: {chief_complaint or 'Not provided'}",
        f"Symptoms: {symptoms or 'Not provided'}",
        f"Medical history: {medical_history or 'Not provided'}",
        f"Physical examination: {physical_exam or 'Not performed yet'}",
        f"Vital signs: {vital_signs or 'Not recorded'}",
    ]
    return "\n".join(lines)
