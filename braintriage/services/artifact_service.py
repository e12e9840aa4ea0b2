"""Grad-CAM overlay generation.

Calls the optional inference service for a tumor localization heatmap and
stores the PNG under ``settings.artifact_dir``, together with the
confusion-matrix and ROC-curve images when the service sends them. Best
effort: any failure leaves the prediction without artifacts.
"""

import base64
import binascii
import logging
import time
from pathlib import Path
from typing import Dict, Optional

import httpx

from braintriage.config.settings import settings
from braintriage.models.classification import ClassificationResult
from braintriage.models.prediction import ArtifactPaths
from braintriage.models.triage import TumorType
from braintriage.utils.exceptions import ArtifactGenerationFailed

logger = logging.getLogger(__name__)

# Response field -> (ArtifactPaths field, file suffix)
OPTIONAL_IMAGES = {
    "confusion_matrix_base64": ("confusion_matrix_path", "confusion_matrix"),
    "roc_curve_base64": ("roc_curve_path", "roc_curve"),
}


def needs_overlay(result: ClassificationResult) -> bool:
    """Overlays are only produced for a detected tumor."""
    return result.tumor_present and result.tumor_type != TumorType.NO_TUMOR


def _decode_png(data: dict, field: str) -> bytes:
    encoded = data.get(field)
    if not isinstance(encoded, str):
        raise ArtifactGenerationFailed(f"{field} is not a base64 string")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArtifactGenerationFailed(f"invalid base64 in {field}: {e}") from e


class ArtifactService:
    """Requests Grad-CAM overlays and writes them to disk."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        output_dir: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url if base_url is not None else settings.inference_api_url
        self.output_dir = Path(output_dir or settings.artifact_dir)
        self.timeout = timeout or settings.artifact_timeout

    async def generate(
        self, patient_id: str, image_url: str, result: ClassificationResult
    ) -> ArtifactPaths:
        """
        Generate the overlay for a classified image.

        Args:
            patient_id: Owner of the image, used as the storage folder
            image_url: The classified image
            result: Classification the overlay should explain

        Returns:
            Stored artifact paths; all None when skipped or failed
        """
        if not needs_overlay(result):
            return ArtifactPaths()
        if not self.base_url:
            logger.debug("No inference service configured; skipping overlay")
            return ArtifactPaths()

        try:
            return await self._generate(patient_id, image_url, result)
        except ArtifactGenerationFailed as e:
            logger.warning(f"Overlay generation failed for patient {patient_id}: {e.message}")
            return ArtifactPaths()

    def discard(self, artifacts: ArtifactPaths):
        """Delete stored artifacts whose prediction was never recorded."""
        for relative_path in artifacts.paths():
            try:
                (self.output_dir / relative_path).unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Could not remove orphaned artifact {relative_path}: {e}")

    async def _generate(
        self, patient_id: str, image_url: str, result: ClassificationResult
    ) -> ArtifactPaths:
        payload = {"image_url": image_url, "tumor_type": result.tumor_type.value}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url.rstrip('/')}/gradcam", json=payload
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ArtifactGenerationFailed(f"inference service error: {e}") from e

        if not isinstance(data, dict) or not data.get("gradcam_image_base64"):
            raise ArtifactGenerationFailed("response has no gradcam_image_base64")

        # Decode everything before writing anything
        images: Dict[str, tuple] = {
            "gradcam_path": ("gradcam", _decode_png(data, "gradcam_image_base64"))
        }
        for field, (target, suffix) in OPTIONAL_IMAGES.items():
            if data.get(field):
                images[target] = (suffix, _decode_png(data, field))

        stamp = int(time.time() * 1000)
        artifacts = ArtifactPaths()
        try:
            for target, (suffix, image_bytes) in images.items():
                relative_path = f"{patient_id}/{stamp}_{suffix}.png"
                path = self.output_dir / relative_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(image_bytes)
                setattr(artifacts, target, relative_path)
        except OSError as e:
            self.discard(artifacts)
            raise ArtifactGenerationFailed(f"could not write artifact: {e}") from e

        logger.info(f"Stored {len(images)} artifact(s) for patient {patient_id}: {artifacts.paths()}")
        return artifacts


# Global service instance
_artifact_service: Optional[ArtifactService] = None


def get_artifact_service() -> ArtifactService:
    """Get or create ArtifactService instance."""
    global _artifact_service
    if _artifact_service is None:
        _artifact_service = ArtifactService()
    return _artifact_service
