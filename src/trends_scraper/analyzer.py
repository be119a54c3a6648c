"""Gemini relevance scoring of trend batches."""

import httpx
import json
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


class ScoringItem(BaseModel):
    """One trend as sent to the model."""

    id: int
    title: str
    breakdown: str = ""


class ScoreItem(BaseModel):
    """One score as returned by the model."""

    id: int
    score: float


_score_list = TypeAdapter(List[ScoreItem])

# Structured output schema for generateContent
RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "INTEGER"},
            "score": {"type": "NUMBER"},
        },
        "required": ["id", "score"],
    },
}

SCORING_PROMPT = """
You are an analyst looking for new **AI coloring book content ideas**.
Analyze the "Coloring Book Potential" for a list of Google search trends and assign a score from 0 to 100.
Focus ONLY on the 'title' and its 'breakdown' terms.

**Your Goal:** Identify search trends that indicate a popular **character, theme, or visual motif** that could work well as coloring book material.
Ignore purely textual, news-related, or non-visual topics.

**Scoring Guide for Coloring Book Potential:**
- **91-100 (Very High Potential):** Explicitly a visual/character-based search. Popular mascots, IPs, cartoon characters, anime figures, fantasy creatures.
- **61-90 (High Potential):** Strong visual theme but less direct. Objects, styles, or concepts that can inspire coloring pages.
- **31-60 (Moderate Potential):** Related to aesthetics or design but broad/abstract.
- **0-30 (Low or No Potential):** Non-visual, news, products, or informational-only searches.

**Examples:**
- "labubu" -> 95
- "hellokitty coloring pages" -> 98
- "resume template" -> 5
- "bills depth chart" -> 10

**Input Data (JSON Array):**
{items}

For EACH object in the input array, return its id and score.
"""


def build_prompt(items: Sequence[ScoringItem]) -> str:
    payload = json.dumps([item.model_dump() for item in items], ensure_ascii=False, indent=2)
    return SCORING_PROMPT.replace("{items}", payload)


def parse_scores(text: str, items: Sequence[ScoringItem]) -> Optional[List[ScoreItem]]:
    """
    Validate a model reply against the submitted batch.

    Returns None unless every submitted id received a score.
    """
    try:
        scores = _score_list.validate_python(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Malformed scoring response: {e}")
        return None

    missing = {item.id for item in items} - {s.id for s in scores}
    if missing:
        logger.error(f"Scoring response is missing ids {sorted(missing)}")
        return None
    return scores


class Scorer(ABC):
    """Batch scoring boundary."""

    @abstractmethod
    async def score_batch(self, items: Sequence[ScoringItem]) -> Optional[List[ScoreItem]]:
        """Score a batch; None on transport failure or malformed output."""


class GeminiScorer(Scorer):
    """
    Scores batches with Gemini structured output over the REST API.

    API keys are used round-robin so a batch run spreads over several quotas.
    """

    def __init__(
        self,
        api_keys: Sequence[str],
        model: str = "gemini-2.5-flash",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_keys = list(api_keys)
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._key_index = 0

        if self.api_keys:
            logger.info(f"Loaded {len(self.api_keys)} Gemini API keys for rotation")
        else:
            logger.warning("No Gemini API keys configured, scoring is disabled")

    def _next_api_key(self) -> Optional[str]:
        if not self.api_keys:
            return None
        key = self.api_keys[self._key_index % len(self.api_keys)]
        self._key_index += 1
        return key

    async def score_batch(self, items: Sequence[ScoringItem]) -> Optional[List[ScoreItem]]:
        api_key = self._next_api_key()
        if not api_key:
            logger.error("API key pool is empty, cannot score batch")
            return None

        body = {
            "contents": [{"parts": [{"text": build_prompt(items)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{GEMINI_API_BASE}/{self.model}:generateContent",
                    headers={"x-goog-api-key": api_key},
                    json=body,
                )
            except httpx.HTTPError as e:
                logger.error(f"Gemini request failed: {e}")
                return None

        if response.status_code >= 400:
            logger.error(f"Gemini error {response.status_code}: {response.text[:300]}")
            return None

        try:
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected Gemini response shape: {e}")
            return None

        return parse_scores(text, items)
