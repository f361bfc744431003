from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from models import User, UserRole
from responses import ok
from services.ai_assist import AIAssistClient, build_case_summary, get_ai_client
from services.auth import require_roles

router = APIRouter(prefix="/ai", tags=["ai"])

requires_clinician = require_roles(UserRole.DOCTOR, UserRole.NURSE, UserRole.ADMIN)

MAX_AUDIO_BYTES = 25 * 1024 * 1024


class DiagnosisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chief_complaint: str = Field(default="", alias="chiefComplaint", max_length=4000)
    symptoms: str = Field(default="", max_length=4000)
    patient_age: Optional[int] = Field(default=None, alias="patientAge", ge=0, le=130)
    patient_gender: str = Field(default="", alias="patientGender", max_length=32)
    medical_history: str = Field(default="", alias="medicalHistory", max_length=4000)
    physical_exam: str = Field(default="", alias="physicalExam", max_length=4000)
    vital_signs: str = Field(default="", alias="vitalSigns", max_length=1000)


@router.post("/diagnosis")
async def draft_diagnosis(
    body: DiagnosisRequest,
    client: AIAssistClient = Depends(get_ai_client),
    _current_user: User = Depends(requires_clinician),
):
    if not body.chief_complaint.strip() and not body.symptoms.strip():
        raise HTTPException(400, "Chief complaint or symptoms are required")

    summary = build_case_summary(**body.model_dump())
    result = await client.draft_diagnosis(summary)
    return ok(result)


@router.post("/transcribe")
async def transcribe(
    audio: UploadFile = File(...),
    client: AIAssistClient = Depends(get_ai_client),
    _current_user: User = Depends(requires_clinician),
):
    content = await audio.read()
    if not content:
        raise HTTPException(400, "No audio file provided")
    if len(content) > MAX_AUDIO_BYTES:
        raise HTTPException(400, "Audio file too large (max 25MB)")

    text = await client.transcribe(content, audio.filename or "audio.webm", audio.content_type or "audio/webm")
    return ok({"text": text})
