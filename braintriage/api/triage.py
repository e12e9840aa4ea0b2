"""Triage API endpoints.

- POST /predict: classify the latest uploaded scan and queue the patient
- Patients: intake and lookup
- Predictions: results viewer payload
- Queue: priority queue ordered by severity tier, then queue rank
"""

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
from braintriage.models.messages import (
    ErrorResponse,
    PatientCreateRequest,
    PatientListResponse,
    PredictionDetailResponse,
    PredictRequest,
    PredictResponse,
    QueueResponse,
)
from braintriage.models.patient import Patient
from braintriage.services.patient_service import get_patient_service
from braintriage.services.prediction_service import get_prediction_service
from braintriage.services.queue_service import get_queue_service
from braintriage.services.triage_service import get_triage_service
from braintriage.utils.exceptions import NotFoundError, TriageServiceError
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Triage"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post("/predict", response_model=PredictResponse, responses=_ERROR_RESPONSES)
async def predict(request: PredictRequest):
    """
    Triage the most recent uploaded MRI image for a patient.

    Creates a new prediction on every call; repeated calls with the same
    images are separate clinical events with their own queue rank.
    """
    triage_service = get_triage_service()
    try:
        return await triage_service.triage(request)
    except TriageServiceError:
        raise
    except Exception as e:
        logger.error(f"Unexpected triage failure: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(e) or type(e).__name__},
        )


@router.post(
    "/patients",
    response_model=Patient,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_patient(request: PatientCreateRequest):
    """Register a patient at intake."""
    patient_service = get_patient_service()
    return await patient_service.create_patient(request)


@router.get("/patients", response_model=PatientListResponse)
async def list_patients(
    limit: int = Query(20, ge=1, le=100), offset: int = Query(0, ge=0)
):
    """List registered patients, newest first."""
    patient_service = get_patient_service()
    patients, total = await patient_service.list_patients(limit=limit, offset=offset)
    return PatientListResponse(total=total, limit=limit, offset=offset, patients=patients)


@router.get("/patients/{patient_id}", response_model=Patient, responses=_ERROR_RESPONSES)
async def get_patient(patient_id: str):
    """Get one patient."""
    patient = await get_patient_service().get_patient(patient_id)
    if patient is None:
        raise NotFoundError(f"Patient not found: {patient_id}", resource="patient")
    return patient


@router.get("/patients/{patient_id}/predictions", responses=_ERROR_RESPONSES)
async def get_patient_predictions(
    patient_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """All predictions recorded for a patient, newest first."""
    if await get_patient_service().get_patient(patient_id) is None:
        raise NotFoundError(f"Patient not found: {patient_id}", resource="patient")

    predictions, total = await get_prediction_service().get_patient_predictions(
        patient_id, limit=limit, offset=offset
    )
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "predictions": [p.model_dump(mode="json") for p in predictions],
    }


@router.get(
    "/predictions/{prediction_id}",
    response_model=PredictionDetailResponse,
    responses=_ERROR_RESPONSES,
)
async def get_prediction(prediction_id: str):
    """Prediction details with its metrics, for the results viewer."""
    prediction_service = get_prediction_service()
    prediction = await prediction_service.get_prediction(prediction_id)
    if prediction is None:
        raise NotFoundError(
            f"Prediction not found: {prediction_id}", resource="prediction"
        )

    metrics = await prediction_service.get_metrics(prediction_id)
    return PredictionDetailResponse(prediction=prediction, metrics=metrics)


@router.get("/queue", response_model=QueueResponse)
async def get_queue(limit: Optional[int] = Query(None, ge=1, le=500)):
    """Priority queue: RED before YELLOW before GREEN, then by queue rank."""
    entries = await get_queue_service().get_priority_queue(limit=limit)
    return QueueResponse(total=len(entries), entries=entries)
