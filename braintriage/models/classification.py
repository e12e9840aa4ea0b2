"""Classifier output schema."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, Optional
from braintriage.models.triage import TumorType
import math
import re


def _canonical_tumor_type(value) -> TumorType:
    """Map loose spellings ("no tumor", "GLIOMA", "pituitary tumor") onto the enum."""
    if isinstance(value, TumorType):
        return value
    if not isinstance(value, str):
        raise ValueError(f"tumor_type must be a string, got {type(value).__name__}")

    key = re.sub(r"[\s_\-]+", "", value).lower()
    if key.endswith("tumor") and key != "notumor":
        key = key[: -len("tumor")]
    for tumor_type in TumorType:
        if tumor_type.value.lower() == key:
            return tumor_type
    raise ValueError(f"Unknown tumor_type: {value!r}")


class ClassifierMetrics(BaseModel):
    """Optional fine-grained metrics the classifier may report."""

    accuracy: Optional[float] = None
    precision: Optional[float] = None
    recall: Optional[float] = None
    f1_score: Optional[float] = None
    recall_sensitivity: Optional[float] = None
    specificity: Optional[float] = None
    roc_auc: Optional[float] = None
    support: Optional[int] = None
    tp: Optional[int] = None
    tn: Optional[int] = None
    fp: Optional[int] = None
    fn: Optional[int] = None


class ClassificationResult(BaseModel):
    """A single classification of one MRI image."""

    model_config = ConfigDict(populate_by_name=True)

    tumor_present: bool = Field(..., alias="tumorPresent")
    tumor_type: TumorType = Field(..., alias="tumorType")
    probabilities: Dict[str, float] = Field(default_factory=dict)
    confidence: float = 0.0
    analysis: Optional[str] = None
    metrics: Optional[ClassifierMetrics] = None

    @field_validator("tumor_type", mode="before")
    @classmethod
    def _validate_tumor_type(cls, value):
        return _canonical_tumor_type(value)

    @field_validator("probabilities", mode="before")
    @classmethod
    def _validate_probabilities(cls, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("probabilities must be an object")

        probabilities = {}
        for name, prob in value.items():
            category = _canonical_tumor_type(name).value
            if category in probabilities:
                raise ValueError(f"probability for {category} given more than once")
            if isinstance(prob, bool) or not isinstance(prob, (int, float)):
                raise ValueError(f"probability for {name!r} is not a number")
            try:
                prob = float(prob)
            except OverflowError:
                raise ValueError(f"probability for {name!r} is out of range")
            if not math.isfinite(prob):
                raise ValueError(f"probability for {name!r} is not finite")
            probabilities[category] = prob

        for tumor_type in TumorType:
            probabilities.setdefault(tumor_type.value, 0.0)
        return probabilities

    @field_validator("tumor_present", mode="before")
    @classmethod
    def _validate_tumor_present(cls, value):
        if not isinstance(value, bool):
            raise ValueError("tumor_present must be a boolean")
        return value
