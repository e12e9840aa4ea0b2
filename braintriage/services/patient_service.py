"""Patient intake service."""

from braintriage.config.database import get_patients_collection
from braintriage.models.messages import PatientCreateRequest
from braintriage.models.patient import Patient
from braintriage.utils.exceptions import DuplicateCaseError
from pymongo.errors import DuplicateKeyError
from typing import Optional, List
import logging

logger = logging.getLogger(__name__)


class PatientService:
    """Service for registering and reading patients."""

    async def create_patient(self, request: PatientCreateRequest) -> Patient:
        """
        Register a new patient.

        Args:
            request: Intake form data

        Returns:
            Created Patient

        Raises:
            DuplicateCaseError: If the case ID is already taken
        """
        collection = await get_patients_collection()

        if await collection.find_one({"case_id": request.case_id}):
            raise DuplicateCaseError(request.case_id)

        patient = Patient(**request.model_dump())
        try:
            await collection.insert_one(patient.model_dump())
        except DuplicateKeyError as e:
            # Lost a race with a concurrent intake for the same case ID
            raise DuplicateCaseError(request.case_id) from e

        logger.info(f"Created patient {patient.patient_id} (case {patient.case_id})")
        return patient

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        """
        Get a patient by ID.

        Args:
            patient_id: Patient identifier

        Returns:
            Patient or None if not found
        """
        collection = await get_patients_collection()
        doc = await collection.find_one({"patient_id": patient_id})

        if doc:
            return Patient(**doc)
        return None

    async def list_patients(
        self, limit: int = 20, offset: int = 0
    ) -> tuple[List[Patient], int]:
        """
        List patients, newest first.

        Args:
            limit: Maximum number of patients to return
            offset: Number of patients to skip

        Returns:
            Tuple of (patients list, total count)
        """
        collection = await get_patients_collection()

        total = await collection.count_documents({})

        cursor = collection.find({}).sort("created_at", -1).skip(offset).limit(limit)

        patients = []
        async for doc in cursor:
            patients.append(Patient(**doc))

        return patients, total


# Global service instance
_patient_service: Optional[PatientService] = None


def get_patient_service() -> PatientService:
    """Get or create PatientService instance."""
    global _patient_service
    if _patient_service is None:
        _patient_service = PatientService()
    return _patient_service
