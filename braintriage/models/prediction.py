"""MongoDB schema for predictions and their metrics."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from braintriage.models.triage import SeverityTier, TumorType
import uuid


class Prediction(BaseModel):
    """Append-only triage outcome for one classified image."""

    prediction_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patient_id: str
    case_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Classification
    tumor_present: bool = False
    tumor_type: TumorType = TumorType.NO_TUMOR
    probabilities: Dict[str, float] = Field(default_factory=dict)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    analysis: Optional[str] = None
    image_url: Optional[str] = None

    # Triage
    severity_level: SeverityTier = SeverityTier.GREEN
    queue_rank: Optional[int] = Field(None, ge=1)

    # Grad-CAM overlay, relative to settings.artifact_dir
    gradcam_path: Optional[str] = None


class PredictionMetrics(BaseModel):
    """Write-once metrics companion of a Prediction."""

    metrics_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    prediction_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

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
    confusion_matrix_path: Optional[str] = None
    roc_curve_path: Optional[str] = None


class ArtifactPaths(BaseModel):
    """Images stored for one prediction, relative to settings.artifact_dir."""

    gradcam_path: Optional[str] = None
    confusion_matrix_path: Optional[str] = None
    roc_curve_path: Optional[str] = None

    def paths(self) -> List[str]:
        return [p for p in (self.gradcam_path, self.confusion_matrix_path, self.roc_curve_path) if p]
