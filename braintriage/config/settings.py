"""Application configuration and settings."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Configuration
    service_name: str = "brain-triage"
    brain_triage_port: int = 8010
    environment: str = "development"

    # MongoDB Configuration
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "brain_triage"
    mongodb_collection_patients: str = "patients"
    mongodb_collection_predictions: str = "predictions"
    mongodb_collection_metrics: str = "metrics"

    # Classifier (OpenAI-compatible vision model)
    classifier_api_key: str
    classifier_endpoint: str = "https://models.inference.ai.azure.com"
    classifier_model: str = "gpt-4o"
    classifier_temperature: float = 0.0
    classifier_max_tokens: int = 800
    classifier_timeout: float = 60.0

    # Overlay (Grad-CAM) inference service
    inference_api_url: Optional[str] = None
    artifact_timeout: float = 30.0
    artifact_dir: str = "artifacts"

    # Metrics companion records
    record_metrics: bool = True

    # CORS
    cors_origins: List[str] = ["http://localhost:5173"]

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
