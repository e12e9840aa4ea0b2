"""Utility functions for LLM invocations with timeout handling."""

import asyncio
import logging
import re
from typing import List, Any, Optional
from langchain_core.messages import BaseMessage
from langchain_core.language_models.chat_models import BaseChatModel
from braintriage.config.settings import settings

logger = logging.getLogger(__name__)


def strip_md_fences(text: str) -> str:
    """Strip markdown code fences that the LLM sometimes wraps JSON in.

    Handles patterns like:
        ```json\n{...}\n```
        ```\n{...}\n```
    """
    stripped = text.strip()
    match = re.match(r"^```(?:json)?\s*\n?(.*?)\n?```\s*$", stripped, re.DOTALL)
    if match:
        return match.group(1).strip()
    return stripped


def response_text(response: Any) -> str:
    """Return the text content of a chat model response."""
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Multi-part content: keep the text parts only
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content)


async def invoke_llm_with_timeout(
    llm: BaseChatModel,
    messages: List[BaseMessage],
    timeout: Optional[float] = None,
) -> Any:
    """
    Invoke an LLM with timeout protection.

    Args:
        llm: The language model to invoke
        messages: List of messages to send to the LLM
        timeout: Timeout in seconds (defaults to settings.classifier_timeout)

    Returns:
        LLM response

    Raises:
        asyncio.TimeoutError: If the call does not finish in time
    """
    if timeout is None:
        timeout = settings.classifier_timeout

    logger.info(f"📤 Invoking LLM with timeout: {timeout}s")

    try:
        response = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
        logger.info("✅ LLM responded successfully")
        return response

    except asyncio.TimeoutError:
        logger.error(f"⏱️ LLM invocation timed out after {timeout}s")
        raise

    except Exception as e:
        logger.error(f"❌ LLM invocation failed: {e}", exc_info=True)
        raise
