"""Triage pipeline for uploaded MRI scans.

Stages run strictly in order for every request:

    VALIDATING -> CLASSIFYING -> RESOLVING -> GENERATING_ARTIFACT
               -> ALLOCATING -> RECORDING -> RESPONDING

Classification and overlay generation never abort the request. Allocation
and recording errors do. The prediction insert is the last write of the
success path, and artifacts stored for an aborted request are deleted, so
nothing half-written is left behind.
"""

from braintriage.models.messages import PredictRequest, PredictResponse
from braintriage.services.artifact_service import ArtifactService, get_artifact_service
from braintriage.services.classifier import ClassifierClient, get_classifier_client
from braintriage.services.prediction_service import (
    PredictionService,
    get_prediction_service,
)
from braintriage.services.queue_service import QueueService, get_queue_service
from braintriage.services.severity import resolve_severity
from braintriage.utils.exceptions import InvalidRequest, PersistenceError
from enum import Enum
from typing import Optional
import logging
import time

logger = logging.getLogger(__name__)


class TriageStage(str, Enum):
    """Pipeline stages, in execution order."""

    VALIDATING = "validating"
    CLASSIFYING = "classifying"
    RESOLVING = "resolving"
    GENERATING_ARTIFACT = "generating_artifact"
    ALLOCATING = "allocating"
    RECORDING = "recording"
    RESPONDING = "responding"


class TriageService:
    """Runs one triage request end to end."""

    def __init__(
        self,
        classifier: Optional[ClassifierClient] = None,
        queue_service: Optional[QueueService] = None,
        prediction_service: Optional[PredictionService] = None,
        artifact_service: Optional[ArtifactService] = None,
    ):
        self.classifier = classifier or get_classifier_client()
        self.queue_service = queue_service or get_queue_service()
        self.prediction_service = prediction_service or get_prediction_service()
        self.artifact_service = artifact_service or get_artifact_service()

    async def triage(self, request: PredictRequest) -> PredictResponse:
        """
        Classify the latest uploaded image and queue the patient.

        Args:
            request: Patient reference and uploaded image URLs

        Returns:
            PredictResponse summarizing the new prediction

        Raises:
            InvalidRequest: Missing patient ID or image references
            PersistenceError: Unknown patient or failed storage write
        """
        started = time.monotonic()

        self._log_stage(TriageStage.VALIDATING, request.patient_id)
        patient_id = (request.patient_id or "").strip()
        images = [url for url in request.image_references if url and url.strip()]
        if not patient_id or not images:
            raise InvalidRequest("Missing patient_id or image_urls")

        # Latest upload wins; earlier images stay stored but unclassified
        image_url = images[-1]
        if len(images) > 1:
            logger.info(
                f"{len(images)} images uploaded for patient {patient_id}; classifying the latest"
            )

        self._log_stage(TriageStage.CLASSIFYING, patient_id)
        result = await self.classifier.classify(image_url)

        self._log_stage(TriageStage.RESOLVING, patient_id)
        tier = resolve_severity(result)

        self._log_stage(TriageStage.GENERATING_ARTIFACT, patient_id)
        artifacts = await self.artifact_service.generate(patient_id, image_url, result)

        try:
            self._log_stage(TriageStage.ALLOCATING, patient_id)
            rank = await self.queue_service.next_rank(tier)

            self._log_stage(TriageStage.RECORDING, patient_id)
            prediction_id = await self.prediction_service.record(
                patient_id,
                result,
                tier,
                rank,
                artifact_path=artifacts.gradcam_path,
                case_id=request.case_id,
                image_url=image_url,
                confusion_matrix_path=artifacts.confusion_matrix_path,
                roc_curve_path=artifacts.roc_curve_path,
            )
        except PersistenceError:
            self.artifact_service.discard(artifacts)
            raise

        self._log_stage(TriageStage.RESPONDING, patient_id)
        logger.info(
            f"Triage complete for patient {patient_id}: {result.tumor_type.value} -> "
            f"{tier.value} #{rank} in {time.monotonic() - started:.2f}s"
        )
        return PredictResponse(
            tumor_present=result.tumor_present,
            tumor_type=result.tumor_type,
            severity_level=tier,
            prediction_id=prediction_id,
            probabilities=result.probabilities,
            analysis=result.analysis or "",
            confidence=result.confidence,
            queue_rank=rank,
        )

    @staticmethod
    def _log_stage(stage: TriageStage, patient_id: Optional[str]):
        logger.debug(f"[triage:{patient_id or '-'}] {stage.value}")


# Global service instance
_triage_service: Optional[TriageService] = None


def get_triage_service() -> TriageService:
    """Get or create TriageService instance."""
    global _triage_service
    if _triage_service is None:
        _triage_service = TriageService()
    return _triage_service
