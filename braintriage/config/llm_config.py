"""LLM configuration for the tumor classifier.

The classifier is any OpenAI-compatible chat model that accepts image input
(GitHub Models, Azure OpenAI, a local vLLM gateway...). Deterministic output
is preferred, so the temperature defaults to 0.
"""

from langchain_openai import ChatOpenAI
from langchain_core.language_models import BaseChatModel
from braintriage.config.settings import settings
from typing import Optional
from pydantic import SecretStr
import logging

logger = logging.getLogger(__name__)

_classifier_model: Optional[BaseChatModel] = None


def _create_model(model_name: str) -> BaseChatModel:
    """Instantiate a ChatOpenAI client pointed at the configured endpoint."""
    logger.info(f"Creating classifier client: {model_name}")
    return ChatOpenAI(
        base_url=settings.classifier_endpoint,
        api_key=SecretStr(settings.classifier_api_key),
        model=model_name,
        temperature=settings.classifier_temperature,
        max_completion_tokens=settings.classifier_max_tokens,
    )


def get_classifier_model() -> BaseChatModel:
    """Vision model used to classify a single MRI slice."""
    global _classifier_model

    if _classifier_model is None:
        _classifier_model = _create_model(settings.classifier_model)
        logger.info(
            f"Classifier client initialized (max_tokens={settings.classifier_max_tokens})"
        )
    return _classifier_model
