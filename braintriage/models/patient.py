"""MongoDB schema for patients."""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from braintriage.models.triage import HeadacheSeverity
import uuid


class Patient(BaseModel):
    """Patient registered at clinician intake."""

    patient_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    case_id: str = Field(..., min_length=1)
    patient_name: str = Field(..., min_length=1)
    age: int = Field(..., ge=0, le=150)
    gender: str
    seizure: bool = False
    headache_severity: HeadacheSeverity = HeadacheSeverity.MILD
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "patient_id": "8b0f2a1e-5c8d-4a57-9b0e-2f4b4a8f7c11",
                "case_id": "CASE-0042",
                "patient_name": "Jane Doe",
                "age": 54,
                "gender": "female",
                "seizure": True,
                "headache_severity": "Severe",
            }
        }
