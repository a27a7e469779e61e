"""
Gemini LLM client used for review analysis and TripAdvisor page extraction.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List

import google.generativeai as genai

from config.settings import settings
from utils.logger import get_logger

logger = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


class LLMClient:
    """Async wrapper around a Gemini generative model."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        generation_config: Dict[str, Any] | None = None,
    ):
        self.api_key = api_key or settings.GEMINI_API_KEY
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY is not set; cannot initialize LLM client.")

        genai.configure(api_key=self.api_key)

        self.model_name = model or settings.GEMINI_MODEL
        self.generation_config = generation_config or {
            "temperature": 0.2,
            "top_p": 0.9,
            "top_k": 40,
        }
        self.model = genai.GenerativeModel(
            model_name=self.model_name,
            generation_config=genai.types.GenerationConfig(**self.generation_config),
        )

    async def generate(self, prompt: str) -> str:
        """Generate raw text from the Gemini model without blocking the event loop."""
        response = await self.model.generate_content_async(prompt)
        return getattr(response, "text", "") or ""


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences the model sometimes wraps JSON in."""
    cleaned = (text or "").strip()
    match = _FENCE_PATTERN.search(cleaned)
    if match:
        cleaned = match.group(1).strip()
    return cleaned


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Best-effort extraction of a single JSON object from model output.

    Raises:
        ValueError: if no JSON object can be decoded
    """
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            raise ValueError(f"No JSON object in model output: {cleaned[:200]!r}")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Malformed JSON object in model output: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def extract_json_array(text: str) -> List[Any]:
    """Best-effort extraction of a JSON array; returns [] when nothing parses."""
    cleaned = strip_code_fences(text)
    candidates = [cleaned]
    match = re.search(r"\[.*\]", cleaned, re.DOTALL)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("reviews"), list):
            return data["reviews"]

    logger.debug("Failed to parse JSON array, defaulting to empty list. Payload: %s", cleaned[:500])
    return []
