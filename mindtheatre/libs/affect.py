"""Valence/arousal scoring through one auxiliary completion call."""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from mindtheatre.libs.json_utils import extract_json_object
from mindtheatre.libs.llm_router import CompletionRouter
from mindtheatre.libs.schemas.records import Affect

LOGGER = logging.getLogger(__name__)

VALENCE_RANGE = (-1.0, 1.0)
AROUSAL_RANGE = (0.0, 1.0)

AFFECT_SYSTEM_PROMPT = (
    "You are an emotion rater. Given a text, rate its emotional valence and arousal. "
    "Valence is a float from -1 (very negative) to 1 (very positive), 0 is neutral. "
    "Arousal is a float from 0 (very calm) to 1 (very excited/activated). "
    'Reply ONLY with a JSON object in the format: {"valence": <float>, "arousal": <float>}'
)


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_affect(raw: str) -> Affect | None:
    """Parse an LLM answer into a clamped Affect, or None when unusable."""

    blob = extract_json_object(raw)
    if blob is None:
        return None
    try:
        data = json.loads(blob)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    valence = _as_number(data.get("valence"))
    arousal = _as_number(data.get("arousal"))
    if valence is None or arousal is None:
        return None
    return Affect(valence=_clamp(valence, VALENCE_RANGE), arousal=_clamp(arousal, AROUSAL_RANGE))


class AffectScorer:
    def __init__(
        self,
        router: CompletionRouter,
        *,
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 60,
    ) -> None:
        self._router = router
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def score(self, text: str) -> Affect | None:
        """Never raises; any failure is logged and reported as None."""

        if not (text or "").strip():
            return None
        messages = [
            {"role": "system", "content": AFFECT_SYSTEM_PROMPT},
            {"role": "user", "content": f"Text: {text}\nJSON:"},
        ]
        try:
            raw = await self._router.complete(
                messages,
                model=self._model,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            LOGGER.warning("[Affect] Scoring call failed: %s", exc)
            return None

        affect = parse_affect(raw)
        if affect is None:
            LOGGER.warning("[Affect] Unparseable affect payload: %s", raw[:200])
        return affect


__all__ = ["AFFECT_SYSTEM_PROMPT", "AffectScorer", "parse_affect"]
