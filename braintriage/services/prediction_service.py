"""Prediction storage and retrieval service.

The only writer of the predictions and metrics collections. Records are
insert-only: nothing here updates or deletes a prediction once written.
"""

from braintriage.config.database import (
    get_metrics_collection,
    get_patients_collection,
    get_predictions_collection,
)
from braintriage.config.settings import settings
from braintriage.models.classification import ClassificationResult
from braintriage.models.prediction import Prediction, PredictionMetrics
from braintriage.models.triage import SeverityTier
from braintriage.utils.exceptions import PersistenceError
from pymongo.errors import PyMongoError
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


def derive_metrics(
    prediction_id: str,
    result: ClassificationResult,
    confusion_matrix_path: Optional[str] = None,
    roc_curve_path: Optional[str] = None,
) -> PredictionMetrics:
    """
    Build the metrics companion of a prediction.

    Classifier-supplied metrics win. Otherwise every score falls back to the
    classification confidence, and specificity to 1 - confidence.
    """
    confidence = result.confidence
    derived = {
        "accuracy": confidence,
        "precision": confidence,
        "recall": confidence,
        "f1_score": confidence,
        "recall_sensitivity": confidence,
        "specificity": 1.0 - confidence,
    }
    if result.metrics is not None:
        supplied = result.metrics.model_dump(exclude_none=True)
        derived.update(supplied)

    return PredictionMetrics(
        prediction_id=prediction_id,
        confusion_matrix_path=confusion_matrix_path,
        roc_curve_path=roc_curve_path,
        **derived,
    )


class PredictionService:
    """Service for recording and reading predictions."""

    async def record(
        self,
        patient_id: str,
        result: ClassificationResult,
        tier: SeverityTier,
        rank: int,
        artifact_path: Optional[str] = None,
        case_id: Optional[str] = None,
        image_url: Optional[str] = None,
        confusion_matrix_path: Optional[str] = None,
        roc_curve_path: Optional[str] = None,
    ) -> str:
        """
        Persist one prediction and its metrics companion.

        Args:
            patient_id: Patient the scan belongs to
            result: Normalized classification
            tier: Severity tier resolved from the classification
            rank: Queue rank allocated within the tier
            artifact_path: Grad-CAM overlay path, if one was generated
            case_id: Clinician case code sent with the request
            image_url: The image that was classified
            confusion_matrix_path: Evaluation image from the inference service
            roc_curve_path: Evaluation image from the inference service

        Returns:
            Prediction ID

        Raises:
            PersistenceError: Unknown patient (404) or failed insert (500)
        """
        patients = await get_patients_collection()
        try:
            patient = await patients.find_one({"patient_id": patient_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to look up patient: {e}") from e

        if patient is None:
            raise PersistenceError(
                f"Patient not found: {patient_id}",
                status_code=404,
                details={"patient_id": patient_id},
            )

        prediction = Prediction(
            patient_id=patient_id,
            case_id=case_id or patient.get("case_id"),
            tumor_present=result.tumor_present,
            tumor_type=result.tumor_type,
            probabilities=result.probabilities,
            confidence=result.confidence,
            analysis=result.analysis,
            image_url=image_url,
            severity_level=tier,
            queue_rank=rank,
            gradcam_path=artifact_path,
        )

        predictions = await get_predictions_collection()
        try:
            await predictions.insert_one(prediction.model_dump())
        except PyMongoError as e:
            raise PersistenceError(f"Failed to save prediction: {e}") from e

        logger.info(
            f"Created prediction {prediction.prediction_id} for patient {patient_id} "
            f"({tier.value} #{rank})"
        )

        if settings.record_metrics:
            await self._record_metrics(
                prediction.prediction_id, result, confusion_matrix_path, roc_curve_path
            )

        return prediction.prediction_id

    async def _record_metrics(
        self,
        prediction_id: str,
        result: ClassificationResult,
        confusion_matrix_path: Optional[str] = None,
        roc_curve_path: Optional[str] = None,
    ):
        metrics = derive_metrics(
            prediction_id, result, confusion_matrix_path, roc_curve_path
        )
        collection = await get_metrics_collection()
        try:
            await collection.insert_one(metrics.model_dump())
        except PyMongoError as e:
            # The prediction is already committed; metrics are optional
            logger.error(f"Failed to save metrics for prediction {prediction_id}: {e}")
            return
        logger.info(f"Created metrics {metrics.metrics_id} for prediction {prediction_id}")

    async def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        """
        Get a prediction by ID.

        Args:
            prediction_id: Prediction identifier

        Returns:
            Prediction or None if not found
        """
        collection = await get_predictions_collection()
        doc = await collection.find_one({"prediction_id": prediction_id})

        if doc:
            return Prediction(**doc)
        return None

    async def get_metrics(self, prediction_id: str) -> Optional[PredictionMetrics]:
        """Get the metrics companion of a prediction, if any."""
        collection = await get_metrics_collection()
        doc = await collection.find_one({"prediction_id": prediction_id})

        if doc:
            return PredictionMetrics(**doc)
        return None

    async def get_patient_predictions(
        self, patient_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[List[Prediction], int]:
        """
        Get all predictions for a patient, newest first.

        Args:
            patient_id: Patient identifier
            limit: Maximum number of predictions to return
            offset: Number of predictions to skip

        Returns:
            Tuple of (predictions list, total count)
        """
        collection = await get_predictions_collection()

        total = await collection.count_documents({"patient_id": patient_id})

        cursor = (
            collection.find({"patient_id": patient_id})
            .sort("created_at", -1)
            .skip(offset)
            .limit(limit)
        )

        predictions = []
        async for doc in cursor:
            predictions.append(Prediction(**doc))

        logger.info(
            f"Retrieved {len(predictions)} predictions for patient {patient_id} (total: {total})"
        )
        return predictions, total


# Global service instance
_prediction_service: Optional[PredictionService] = None


def get_prediction_service() -> PredictionService:
    """Get or create PredictionService instance."""
    global _prediction_service
    if _prediction_service is None:
        _prediction_service = PredictionService()
    return _prediction_service
