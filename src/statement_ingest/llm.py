"""LLM-backed categorization via the Anthropic Messages API.

:class:`LLMClassifier` implements the categorizer's ``Classifier`` protocol.
It sends one prompt per batch of candidates listing the user's categories,
asks for a JSON array of picks, and maps the picked names back to category
ids.  Anything it cannot get from the LLM (missing API key, network error,
auth error, rate limit, unparseable response, unknown category name) falls
back to the wrapped classifier, the rule table by default.

``classify`` and ``classify_batch`` never raise.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence

import httpx

from statement_ingest.categorizer import DEFAULT_CLASSIFIER, Classifier
from statement_ingest.models import CandidateTransaction, CategorizationVerdict, Category

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"

# Used when the LLM omits a confidence or returns something unusable.
DEFAULT_LLM_CONFIDENCE = 0.7


def _build_prompt(
    candidates: Sequence[CandidateTransaction],
    categories: Sequence[Category],
) -> str:
    """Construct the categorization prompt.

    Transactions are numbered so the response can refer to them by index
    instead of repeating merchant text.
    """
    category_text = "\n".join(f"- {category.name}" for category in categories)
    txn_text = "\n".join(
        f"{i} | {c.merchant} | {c.description} | {c.amount} | {c.date}"
        for i, c in enumerate(candidates)
    )

    return (
        "You are categorizing personal bank and credit card transactions.\n"
        "For each numbered transaction below, pick the single most appropriate\n"
        "category from the list.\n"
        "\n"
        "## Categories\n"
        f"{category_text}\n"
        "\n"
        "## Transactions (index | merchant | description | amount | date)\n"
        f"{txn_text}\n"
        "\n"
        "## Response Format\n"
        "Return a JSON array. Each element:\n"
        '{"index": 0, "category": "...", "confidence": 0.0}\n'
        "\n"
        "Use only category names from the list above. Negative amounts are\n"
        "purchases, positive amounts are credits. Omit transactions that fit\n"
        "no category. confidence is your certainty between 0 and 1."
    )


def _parse_response(text: str) -> list[dict]:
    """Extract the JSON array of picks from the LLM response text.

    The LLM may wrap the JSON in code fences or add commentary, so the
    outermost ``[`` ... ``]`` span is parsed.  Malformed elements are
    skipped.

    Returns:
        A list of ``{"index": int, "category": str, "confidence": float}``
        dicts, or an empty list if nothing could be parsed.
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end <= start:
        logger.warning("LLM response does not contain a JSON array")
        return []

    try:
        result = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse JSON from LLM response: %s", exc)
        return []

    if not isinstance(result, list):
        logger.warning("LLM response JSON is not a list")
        return []

    picks: list[dict] = []
    for item in result:
        if not isinstance(item, dict) or "index" not in item or "category" not in item:
            logger.warning("Skipping malformed item in LLM response: %s", item)
            continue
        try:
            index = int(item["index"])
        except (TypeError, ValueError):
            logger.warning("Skipping item with non-integer index: %s", item)
            continue
        try:
            confidence = float(item.get("confidence", DEFAULT_LLM_CONFIDENCE))
        except (TypeError, ValueError):
            confidence = DEFAULT_LLM_CONFIDENCE
        picks.append(
            {
                "index": index,
                "category": str(item["category"]),
                "confidence": min(max(confidence, 0.0), 1.0),
            }
        )
    return picks


class LLMClassifier:
    """Classifier that asks Anthropic to pick a category.

    Reads the API key from the environment variable named by
    ``api_key_env``.  Each call to :meth:`classify_batch` sends a single
    HTTP POST.

    Args:
        model: The Anthropic model identifier, e.g. "claude-sonnet-4-20250514".
        api_key_env: Name of the environment variable containing the API key.
        fallback: Classifier used for anything the LLM does not answer.
            Default: the built-in rule table.
        max_tokens: Maximum tokens in the LLM response. Default: 4096.
        timeout: HTTP request timeout in seconds. Default: 60.
    """

    def __init__(
        self,
        model: str,
        api_key_env: str,
        fallback: Classifier | None = None,
        max_tokens: int = 4096,
        timeout: float = 60.0,
    ) -> None:
        self.model = model
        self.api_key_env = api_key_env
        self.fallback = fallback or DEFAULT_CLASSIFIER
        self.max_tokens = max_tokens
        self.timeout = timeout

    def classify(
        self,
        candidate: CandidateTransaction,
        categories: Sequence[Category],
    ) -> CategorizationVerdict:
        return self.classify_batch([candidate], categories)[0]

    def classify_batch(
        self,
        candidates: Sequence[CandidateTransaction],
        categories: Sequence[Category],
    ) -> list[CategorizationVerdict]:
        """Categorize *candidates* with one request, in input order."""
        if not candidates:
            return []

        verdicts = [self.fallback.classify(c, categories) for c in candidates]
        if not categories:
            return verdicts

        by_name = {category.name.lower(): category for category in categories}
        for pick in self._request(candidates, categories):
            index = pick["index"]
            if not 0 <= index < len(candidates):
                logger.warning("LLM referred to unknown transaction index %d", index)
                continue
            category = by_name.get(pick["category"].strip().lower())
            if category is None:
                logger.warning("LLM picked unknown category %r", pick["category"])
                continue
            verdicts[index] = CategorizationVerdict(
                category_id=category.id,
                confidence=pick["confidence"],
                reasoning=f"LLM suggestion ({self.model})",
            )
        return verdicts

    def _request(
        self,
        candidates: Sequence[CandidateTransaction],
        categories: Sequence[Category],
    ) -> list[dict]:
        """POST the prompt and return the parsed picks, or ``[]`` on failure."""
        api_key = os.environ.get(self.api_key_env, "")
        if not api_key:
            logger.warning(
                "LLM API key not found in environment variable '%s'",
                self.api_key_env,
            )
            return []

        request_body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": _build_prompt(candidates, categories),
                }
            ],
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }

        try:
            response = httpx.post(
                ANTHROPIC_API_URL,
                json=request_body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("LLM request timed out")
            return []
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "LLM API returned HTTP %d: %s",
                exc.response.status_code,
                exc.response.text[:200],
            )
            return []
        except httpx.HTTPError as exc:
            logger.warning("LLM request failed: %s", exc)
            return []

        try:
            body = response.json()
            response_text = "\n".join(
                block["text"]
                for block in body.get("content", [])
                if block.get("type") == "text"
            )
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Failed to extract text from LLM response: %s", exc)
            return []

        if not response_text:
            logger.warning("LLM response contained no text content")
            return []

        return _parse_response(response_text)
