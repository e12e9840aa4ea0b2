"""Triage classification enums."""

from enum import Enum


class TumorType(str, Enum):
    """Tumor categories the classifier distinguishes."""

    GLIOMA = "Glioma"
    MENINGIOMA = "Meningioma"
    PITUITARY = "Pituitary"
    NO_TUMOR = "NoTumor"


class SeverityTier(str, Enum):
    """Clinical urgency buckets, most urgent first."""

    RED = "RED"  # Glioma / Meningioma
    YELLOW = "YELLOW"  # Pituitary
    GREEN = "GREEN"  # No tumor


class HeadacheSeverity(str, Enum):
    """Headache severity reported at intake."""

    MILD = "Mild"
    MEDIUM = "Medium"
    SEVERE = "Severe"


# Display order of the priority queue
SEVERITY_ORDER = {SeverityTier.RED: 0, SeverityTier.YELLOW: 1, SeverityTier.GREEN: 2}

TUMOR_CATEGORIES = [t.value for t in TumorType]
