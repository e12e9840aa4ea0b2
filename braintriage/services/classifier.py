"""Tumor classifier client.

Sends one MRI image reference to the vision model, validates the JSON it
returns, and normalizes the probability distribution. A malformed reply is
retried once; anything that still fails becomes a low-confidence NoTumor
result so the pipeline always produces a triage outcome.
"""

from braintriage.config.llm_config import get_classifier_model
from braintriage.models.classification import ClassificationResult
from braintriage.models.triage import TumorType
from braintriage.services.prompts import (
    CLASSIFIER_SYSTEM_PROMPT,
    CLASSIFICATION_INSTRUCTIONS,
    FALLBACK_ANALYSIS,
)
from braintriage.utils.exceptions import (
    ClassificationParseError,
    ClassificationUnavailable,
)
from braintriage.utils.llm_helpers import (
    invoke_llm_with_timeout,
    response_text,
    strip_md_fences,
)
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import ValidationError
from typing import Dict, List, Optional
import json
import logging
import math
import re

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
FALLBACK_PROBABILITIES = {
    TumorType.GLIOMA.value: 0.1,
    TumorType.MENINGIOMA.value: 0.1,
    TumorType.PITUITARY.value: 0.1,
    TumorType.NO_TUMOR.value: 0.7,
}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def normalize_probabilities(probabilities: Dict[str, float]) -> Dict[str, float]:
    """Clamp each probability to [0, 1] and rescale to sum 1 when the sum is positive."""
    clamped = {name: _clamp(float(p)) for name, p in probabilities.items()}
    total = sum(clamped.values())
    if total <= 0:
        return clamped
    return {name: p / total for name, p in clamped.items()}


def normalize_result(result: ClassificationResult) -> ClassificationResult:
    """Apply probability normalization and clamp confidence independently."""
    return result.model_copy(
        update={
            "probabilities": normalize_probabilities(result.probabilities),
            "confidence": _clamp(float(result.confidence)),
        }
    )


def parse_classification(text: str) -> ClassificationResult:
    """
    Parse a classifier reply into a ClassificationResult.

    Args:
        text: Raw model output, possibly wrapped in code fences or prose

    Returns:
        Validated (not yet normalized) ClassificationResult

    Raises:
        ClassificationParseError: If the reply is not a valid classification
    """
    body = strip_md_fences(text)
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(body)
        if not match:
            raise ClassificationParseError("Reply contains no JSON object")
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ClassificationParseError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ClassificationParseError("Reply JSON is not an object")

    try:
        return ClassificationResult.model_validate(payload)
    except ValidationError as e:
        raise ClassificationParseError(
            f"Reply does not match the classification schema: {e.error_count()} error(s)"
        ) from e


def fallback_result(reason: str) -> ClassificationResult:
    """Deterministic result used when the classifier cannot be relied on."""
    return ClassificationResult(
        tumor_present=False,
        tumor_type=TumorType.NO_TUMOR,
        probabilities=dict(FALLBACK_PROBABILITIES),
        confidence=FALLBACK_CONFIDENCE,
        analysis=FALLBACK_ANALYSIS.format(reason=reason),
    )


def build_messages(image_url: str) -> List[BaseMessage]:
    """Build the system + multimodal user message for one image."""
    return [
        SystemMessage(content=CLASSIFIER_SYSTEM_PROMPT),
        HumanMessage(
            content=[
                {"type": "text", "text": CLASSIFICATION_INSTRUCTIONS},
                {"type": "image_url", "image_url": {"url": image_url}},
            ]
        ),
    ]


class ClassifierClient:
    """Classifies a single MRI image through the configured vision model."""

    max_attempts = 2

    def __init__(
        self, llm: Optional[BaseChatModel] = None, timeout: Optional[float] = None
    ):
        self._llm = llm
        self.timeout = timeout

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_classifier_model()
        return self._llm

    async def classify(self, image_url: str) -> ClassificationResult:
        """
        Classify one image, falling back to a NoTumor result on failure.

        Args:
            image_url: Signed, time-limited URL of the image

        Returns:
            Normalized ClassificationResult (never raises)
        """
        try:
            return await self._classify_with_retry(image_url)
        except ClassificationUnavailable as e:
            logger.warning(
                f"Classifier unavailable after {e.attempts} attempt(s), using fallback: {e.message}"
            )
            return fallback_result(e.message)

    async def _classify_with_retry(self, image_url: str) -> ClassificationResult:
        messages = build_messages(image_url)
        last_error: Optional[ClassificationParseError] = None

        for attempt in range(1, self.max_attempts + 1):
            logger.info(f"Classification attempt {attempt}/{self.max_attempts}")
            try:
                response = await invoke_llm_with_timeout(
                    self.llm, messages, timeout=self.timeout
                )
            except Exception as e:
                # Transport failures and timeouts are not retried
                raise ClassificationUnavailable(
                    f"classifier call failed: {type(e).__name__}", attempts=attempt
                ) from e

            try:
                result = normalize_result(parse_classification(response_text(response)))
            except ClassificationParseError as e:
                last_error = e
                logger.warning(f"Malformed classifier reply on attempt {attempt}: {e}")
                continue
            except Exception as e:
                # Anything else raised on a reply is still a bad reply
                last_error = ClassificationParseError(f"{type(e).__name__}: {e}")
                logger.warning(
                    f"Unusable classifier reply on attempt {attempt}: {last_error}"
                )
                continue

            logger.info(
                f"Classified image: tumor_present={result.tumor_present} "
                f"type={result.tumor_type.value} confidence={result.confidence:.2f}"
            )
            return result

        raise ClassificationUnavailable(
            f"malformed classifier output: {last_error}", attempts=self.max_attempts
        )


# Global client instance
_classifier_client: Optional[ClassifierClient] = None


def get_classifier_client() -> ClassifierClient:
    """Get or create ClassifierClient instance."""
    global _classifier_client
    if _classifier_client is None:
        _classifier_client = ClassifierClient()
    return _classifier_client
