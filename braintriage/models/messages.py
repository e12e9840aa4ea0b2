"""API request and response models."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional
from datetime import datetime
from braintriage.models.triage import HeadacheSeverity, SeverityTier, TumorType
from braintriage.models.patient import Patient
from braintriage.models.prediction import Prediction, PredictionMetrics


class PredictRequest(BaseModel):
    """Request to triage the images uploaded for a patient.

    Field presence is checked by the triage pipeline, not by the schema, so
    that a missing patient or image list comes back as ``{"error": ...}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    case_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("caseId", "case_id")
    )
    patient_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("patientId", "patient_id")
    )
    image_references: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "imageReferences", "image_references", "image_urls", "imageUrls"
        ),
        description="Signed image URLs in upload order; only the last one is classified",
    )

    @field_validator("image_references", mode="before")
    @classmethod
    def _null_images_as_empty(cls, value):
        return [] if value is None else value


class PredictResponse(BaseModel):
    """Compact triage result returned to the upload screen."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tumor_present: bool
    tumor_type: TumorType
    severity_level: SeverityTier
    prediction_id: str
    probabilities: Dict[str, float]
    analysis: str = ""
    confidence: float
    queue_rank: int


class ErrorResponse(BaseModel):
    """Error body for every non-2xx response."""

    error: str


class PatientCreateRequest(BaseModel):
    """Clinician intake form."""

    case_id: str = Field(..., min_length=1, max_length=64)
    patient_name: str = Field(..., min_length=1, max_length=200)
    age: int = Field(..., ge=0, le=150)
    gender: str
    seizure: bool = False
    headache_severity: HeadacheSeverity = HeadacheSeverity.MILD
    created_by: Optional[str] = None


class PatientListResponse(BaseModel):
    """Paginated patient list."""

    total: int
    limit: int
    offset: int
    patients: List[Patient]


class QueueEntry(BaseModel):
    """One row of the priority queue."""

    position: int
    prediction_id: str
    queue_rank: Optional[int] = None
    severity_level: SeverityTier
    tumor_type: TumorType
    created_at: datetime
    patient_id: str
    case_id: Optional[str] = None
    patient_name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    seizure: Optional[bool] = None
    headache_severity: Optional[HeadacheSeverity] = None


class QueueResponse(BaseModel):
    """The full priority queue."""

    total: int
    entries: List[QueueEntry]


class PredictionDetailResponse(BaseModel):
    """Results viewer payload: prediction plus its metrics, if any."""

    prediction: Prediction
    metrics: Optional[PredictionMetrics] = None
