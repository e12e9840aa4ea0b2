"""
Brain MRI Triage - Test Configuration
=====================================

Shared pytest fixtures: an in-memory stand-in for the motor collections,
a scripted chat model, and ready-made classifier replies.
"""

import copy
import json
import os
from collections import defaultdict
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

# Settings are read at import time
os.environ.setdefault("CLASSIFIER_API_KEY", "test-key")

from langchain_core.messages import AIMessage  # noqa: E402
from pymongo.errors import PyMongoError  # noqa: E402

from braintriage.config.database import Database  # noqa: E402
from braintriage.config.settings import settings  # noqa: E402
from braintriage.models.patient import Patient  # noqa: E402


# =============================================================================
# In-memory collections
# =============================================================================

def _matches(doc, query):
    for key, expected in (query or {}).items():
        value = doc.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif value != expected:
            return False
    return True


class FakeCursor:
    """Subset of the motor cursor API used by the services."""

    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, count):
        self._docs = self._docs[count:]
        return self

    def limit(self, count):
        if count:
            self._docs = self._docs[:count]
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """Subset of the motor collection API used by the services."""

    def __init__(self):
        self.docs = []
        self.fail_inserts = False

    async def insert_one(self, doc):
        if self.fail_inserts:
            raise PyMongoError("simulated write failure")
        self.docs.append(copy.deepcopy(doc))
        return MagicMock(inserted_id=len(self.docs))

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def count_documents(self, query):
        return sum(1 for doc in self.docs if _matches(doc, query))

    def find(self, query=None):
        return FakeCursor(copy.deepcopy(d) for d in self.docs if _matches(d, query))


@pytest.fixture
def fake_db():
    """Route every Database.get_collection call to in-memory collections."""
    collections = defaultdict(FakeCollection)
    with patch.object(
        Database, "get_collection", side_effect=lambda name: collections[name]
    ):
        yield collections


@pytest.fixture
def patients_collection(fake_db):
    return fake_db[settings.mongodb_collection_patients]


@pytest.fixture
def predictions_collection(fake_db):
    return fake_db[settings.mongodb_collection_predictions]


@pytest.fixture
def metrics_collection(fake_db):
    return fake_db[settings.mongodb_collection_metrics]


@pytest.fixture
def patient(patients_collection):
    """A registered patient."""
    record = Patient(
        case_id="CASE-001",
        patient_name="Jane Doe",
        age=54,
        gender="female",
        seizure=True,
        headache_severity="Severe",
    )
    patients_collection.docs.append(record.model_dump())
    return record


@pytest.fixture
def seed_predictions(predictions_collection):
    """Insert ``count`` existing predictions in a tier."""

    def _seed(tier, count, patient_id="seed-patient"):
        base = datetime(2025, 1, 1)
        for i in range(count):
            predictions_collection.docs.append(
                {
                    "prediction_id": f"seed-{tier}-{i}",
                    "patient_id": patient_id,
                    "severity_level": tier,
                    "tumor_type": "NoTumor",
                    "queue_rank": i + 1,
                    "created_at": base + timedelta(minutes=i),
                }
            )

    return _seed


# =============================================================================
# Classifier replies
# =============================================================================

GLIOMA_REPLY = {
    "tumor_present": True,
    "tumor_type": "Glioma",
    "probabilities": {"Glioma": 0.8, "Meningioma": 0.1, "Pituitary": 0.05, "NoTumor": 0.05},
    "confidence": 0.8,
    "analysis": "Infiltrative mass in the left frontal lobe.",
}

PITUITARY_REPLY = {
    "tumor_present": True,
    "tumor_type": "Pituitary",
    "probabilities": {"Glioma": 0.1, "Meningioma": 0.1, "Pituitary": 0.6, "NoTumor": 0.2},
    "confidence": 0.6,
    "analysis": "Sellar lesion consistent with pituitary adenoma.",
}

NO_TUMOR_REPLY = {
    "tumor_present": False,
    "tumor_type": "NoTumor",
    "probabilities": {"Glioma": 0.02, "Meningioma": 0.03, "Pituitary": 0.05, "NoTumor": 0.9},
    "confidence": 0.9,
    "analysis": "No mass lesion identified.",
}


def reply(payload):
    """Chat model response carrying ``payload`` (dict → JSON, str as-is)."""
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return AIMessage(content=content)


@pytest.fixture
def make_llm():
    """Chat model double answering with the given replies in order."""

    def _make(*replies):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=[reply(r) for r in replies])
        return llm

    return _make


@pytest.fixture
def classifier_replies():
    """Well-formed classifier replies keyed by tumor type."""
    return {
        "glioma": copy.deepcopy(GLIOMA_REPLY),
        "pituitary": copy.deepcopy(PITUITARY_REPLY),
        "no_tumor": copy.deepcopy(NO_TUMOR_REPLY),
    }


# =============================================================================
# Inference service
# =============================================================================

@pytest.fixture
def mock_inference():
    """Route the artifact service's httpx client through ``handler``."""
    real_client = httpx.AsyncClient

    def _route(handler):
        def factory(**kwargs):
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        return patch(
            "braintriage.services.artifact_service.httpx.AsyncClient", side_effect=factory
        )

    return _route
