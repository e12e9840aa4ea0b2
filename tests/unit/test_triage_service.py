"""
Triage Pipeline Unit Tests
==========================

End-to-end runs of the pipeline against the in-memory store with a
scripted classifier.
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from braintriage.models.messages import PredictRequest
from braintriage.models.prediction import ArtifactPaths
from braintriage.models.triage import SeverityTier, TumorType
from braintriage.services.artifact_service import ArtifactService
from braintriage.services.classifier import ClassifierClient
from braintriage.services.prediction_service import PredictionService
from braintriage.services.queue_service import QueueService
from braintriage.services.triage_service import TriageService
from braintriage.utils.exceptions import InvalidRequest, PersistenceError


def _service(llm, artifact_service=None):
    return TriageService(
        classifier=ClassifierClient(llm=llm),
        queue_service=QueueService(),
        prediction_service=PredictionService(),
        artifact_service=artifact_service or ArtifactService(base_url=""),
    )


def _request(patient_id, images=("https://img/1.png",), case_id="CASE-001"):
    return PredictRequest(case_id=case_id, patient_id=patient_id, image_references=list(images))


class TestScenarios:

    @pytest.mark.asyncio
    async def test_glioma_is_red_and_ranked_after_existing(
        self, patient, seed_predictions, predictions_collection, make_llm, classifier_replies
    ):
        seed_predictions("RED", 2)
        llm = make_llm(classifier_replies["glioma"])

        response = await _service(llm).triage(_request(patient.patient_id))

        assert response.tumor_present is True
        assert response.tumor_type == TumorType.GLIOMA
        assert response.severity_level == SeverityTier.RED
        assert response.probabilities == pytest.approx(
            {"Glioma": 0.8, "Meningioma": 0.1, "Pituitary": 0.05, "NoTumor": 0.05}
        )
        assert response.queue_rank == 3

        [doc] = [d for d in predictions_collection.docs if d["patient_id"] == patient.patient_id]
        assert doc["severity_level"] == "RED"
        assert doc["queue_rank"] == 3
        assert doc["prediction_id"] == response.prediction_id

    @pytest.mark.asyncio
    async def test_pituitary_is_yellow(self, patient, make_llm, classifier_replies):
        llm = make_llm(classifier_replies["pituitary"])

        response = await _service(llm).triage(_request(patient.patient_id))

        assert response.severity_level == SeverityTier.YELLOW
        assert response.confidence == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_unparseable_twice_uses_fallback(
        self, patient, predictions_collection, make_llm
    ):
        llm = make_llm("Sorry, I can't help with that.", "```\nstill not json\n```")

        response = await _service(llm).triage(_request(patient.patient_id))

        assert llm.ainvoke.await_count == 2
        assert response.tumor_present is False
        assert response.tumor_type == TumorType.NO_TUMOR
        assert response.confidence == 0.5
        assert response.probabilities == {
            "Glioma": 0.1, "Meningioma": 0.1, "Pituitary": 0.1, "NoTumor": 0.7,
        }
        assert response.severity_level == SeverityTier.GREEN
        assert response.analysis
        assert len(predictions_collection.docs) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("images", [[], [""], ["   "]])
    async def test_empty_images_rejected_without_side_effects(
        self, patient, predictions_collection, make_llm, images
    ):
        llm = make_llm()

        with pytest.raises(InvalidRequest):
            await _service(llm).triage(_request(patient.patient_id, images=images))

        llm.ainvoke.assert_not_awaited()
        assert predictions_collection.docs == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("patient_id", [None, "", "  "])
    async def test_missing_patient_rejected(self, fake_db, make_llm, patient_id):
        llm = make_llm()

        with pytest.raises(InvalidRequest):
            await _service(llm).triage(_request(patient_id))

        llm.ainvoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repeated_calls_create_distinct_predictions(
        self, patient, predictions_collection, make_llm, classifier_replies
    ):
        llm = make_llm(classifier_replies["glioma"], classifier_replies["glioma"])
        service = _service(llm)

        first = await service.triage(_request(patient.patient_id))
        second = await service.triage(_request(patient.patient_id))

        assert first.prediction_id != second.prediction_id
        assert (first.queue_rank, second.queue_rank) == (1, 2)
        assert len(predictions_collection.docs) == 2


class TestPipeline:

    @pytest.mark.asyncio
    async def test_only_latest_image_is_classified(
        self, patient, predictions_collection, make_llm, classifier_replies
    ):
        llm = make_llm(classifier_replies["no_tumor"])
        images = ["https://img/1.png", "https://img/2.png", "https://img/3.png"]

        await _service(llm).triage(_request(patient.patient_id, images=images))

        sent = llm.ainvoke.await_args.args[0][-1].content
        urls = [p["image_url"]["url"] for p in sent if p.get("type") == "image_url"]
        assert urls == ["https://img/3.png"]
        assert predictions_collection.docs[0]["image_url"] == "https://img/3.png"

    @pytest.mark.asyncio
    async def test_unknown_patient_is_fatal(
        self, fake_db, predictions_collection, make_llm, classifier_replies
    ):
        llm = make_llm(classifier_replies["glioma"])

        with pytest.raises(PersistenceError):
            await _service(llm).triage(_request("no-such-patient"))

        assert predictions_collection.docs == []

    @pytest.mark.asyncio
    async def test_rank_allocation_failure_is_fatal(
        self, patient, predictions_collection, make_llm, classifier_replies
    ):
        queue_service = QueueService()
        queue_service.next_rank = AsyncMock(side_effect=PersistenceError("count failed"))
        service = TriageService(
            classifier=ClassifierClient(llm=make_llm(classifier_replies["glioma"])),
            queue_service=queue_service,
            prediction_service=PredictionService(),
            artifact_service=ArtifactService(base_url=""),
        )

        with pytest.raises(PersistenceError):
            await service.triage(_request(patient.patient_id))

        assert predictions_collection.docs == []

    @pytest.mark.asyncio
    async def test_artifact_paths_are_recorded(
        self, patient, predictions_collection, metrics_collection, make_llm, classifier_replies
    ):
        artifacts = MagicMock(spec=ArtifactService)
        artifacts.generate = AsyncMock(return_value=ArtifactPaths(
            gradcam_path="p/123_gradcam.png",
            confusion_matrix_path="p/123_confusion_matrix.png",
            roc_curve_path="p/123_roc_curve.png",
        ))

        await _service(make_llm(classifier_replies["glioma"]), artifacts).triage(
            _request(patient.patient_id)
        )

        assert predictions_collection.docs[0]["gradcam_path"] == "p/123_gradcam.png"
        metrics = metrics_collection.docs[0]
        assert metrics["confusion_matrix_path"] == "p/123_confusion_matrix.png"
        assert metrics["roc_curve_path"] == "p/123_roc_curve.png"
        artifacts.generate.assert_awaited_once()
        artifacts.discard.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_patient_leaves_no_overlay(
        self, fake_db, tmp_path, mock_inference, make_llm, classifier_replies
    ):
        encoded = base64.b64encode(b"\x89PNG overlay").decode()
        artifact_service = ArtifactService(
            base_url="http://inference.local", output_dir=str(tmp_path)
        )
        service = _service(make_llm(classifier_replies["glioma"]), artifact_service)

        with mock_inference(
            lambda request: httpx.Response(200, json={"gradcam_image_base64": encoded})
        ):
            with pytest.raises(PersistenceError):
                await service.triage(_request("no-such-patient"))

        assert [p for p in tmp_path.rglob("*") if p.is_file()] == []

    @pytest.mark.asyncio
    async def test_rank_is_counted_before_own_insert(
        self, patient, make_llm, classifier_replies
    ):
        llm = make_llm(classifier_replies["pituitary"], classifier_replies["glioma"])
        service = _service(llm)

        yellow = await service.triage(_request(patient.patient_id))
        red = await service.triage(_request(patient.patient_id))

        assert yellow.queue_rank == 1
        assert red.queue_rank == 1
