"""Severity tier resolution."""

from braintriage.models.classification import ClassificationResult
from braintriage.models.triage import SeverityTier, TumorType

_RED_TYPES = (TumorType.GLIOMA, TumorType.MENINGIOMA)


def resolve_severity(result: ClassificationResult) -> SeverityTier:
    """
    Map a classification to its clinical severity tier.

    Rules, first match wins:
        no tumor present                 -> GREEN
        present, Glioma or Meningioma    -> RED
        present, Pituitary               -> YELLOW
        anything else (present + NoTumor) -> GREEN

    The tier follows tumor_present and tumor_type only; the probability
    distribution is not consulted.
    """
    if not result.tumor_present:
        return SeverityTier.GREEN
    if result.tumor_type in _RED_TYPES:
        return SeverityTier.RED
    if result.tumor_type == TumorType.PITUITARY:
        return SeverityTier.YELLOW
    return SeverityTier.GREEN
