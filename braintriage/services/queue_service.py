"""Priority queue: rank allocation and ordered listing."""

from braintriage.config.database import (
    get_patients_collection,
    get_predictions_collection,
)
from braintriage.models.messages import QueueEntry
from braintriage.models.triage import SEVERITY_ORDER, SeverityTier
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

# Sort position for predictions stored without a rank
UNRANKED = 999


class QueueService:
    """Service for queue ranks and the priority queue view."""

    async def next_rank(self, tier: SeverityTier) -> int:
        """
        Next free rank within a severity tier.

        Counts the predictions already in the tier and returns count + 1.
        Count and insert are separate operations with no lock between them,
        so two concurrent requests in the same tier can get the same rank.

        Args:
            tier: Severity tier of the prediction about to be recorded

        Returns:
            1-based queue rank
        """
        collection = await get_predictions_collection()
        count = await collection.count_documents({"severity_level": tier.value})
        rank = count + 1
        logger.info(f"Allocated rank {rank} in tier {tier.value} ({count} existing)")
        return rank

    async def get_priority_queue(self, limit: Optional[int] = None) -> List[QueueEntry]:
        """
        All predictions ordered by tier (RED, YELLOW, GREEN) then queue rank.

        Args:
            limit: Optional maximum number of entries

        Returns:
            Queue entries joined with their patient, positions starting at 1
        """
        predictions = await get_predictions_collection()
        patients = await get_patients_collection()

        docs = []
        async for doc in predictions.find({}).sort("created_at", -1):
            docs.append(doc)

        docs.sort(
            key=lambda d: (
                SEVERITY_ORDER.get(SeverityTier(d["severity_level"]), len(SEVERITY_ORDER)),
                d.get("queue_rank") or UNRANKED,
            )
        )
        if limit is not None:
            docs = docs[:limit]

        patient_ids = list({d["patient_id"] for d in docs})
        patients_by_id = {}
        if patient_ids:
            async for patient in patients.find({"patient_id": {"$in": patient_ids}}):
                patients_by_id[patient["patient_id"]] = patient

        entries = []
        for position, doc in enumerate(docs, start=1):
            patient = patients_by_id.get(doc["patient_id"], {})
            entries.append(
                QueueEntry(
                    position=position,
                    prediction_id=doc["prediction_id"],
                    queue_rank=doc.get("queue_rank"),
                    severity_level=doc["severity_level"],
                    tumor_type=doc["tumor_type"],
                    created_at=doc["created_at"],
                    patient_id=doc["patient_id"],
                    case_id=patient.get("case_id", doc.get("case_id")),
                    patient_name=patient.get("patient_name"),
                    age=patient.get("age"),
                    gender=patient.get("gender"),
                    seizure=patient.get("seizure"),
                    headache_severity=patient.get("headache_severity"),
                )
            )

        logger.info(f"Built priority queue with {len(entries)} entries")
        return entries


# Global service instance
_queue_service: Optional[QueueService] = None


def get_queue_service() -> QueueService:
    """Get or create QueueService instance."""
    global _queue_service
    if _queue_service is None:
        _queue_service = QueueService()
    return _queue_service
