"""Parsing of JSON verdicts embedded in free-form model text.

Small models rarely answer with clean JSON: they wrap it in prose, markdown
fences or apologies. The strategy here is to take the first flat ``{...}``
span in the response and decode just that. Callers pass an explicit fallback
so the strategy can change without touching them.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from models.article import Relevance

logger = logging.getLogger(__name__)

# First brace-delimited span without nested braces
_JSON_OBJECT_PATTERN = re.compile(r"\{[^}]+\}")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Decode the first ``{...}`` span in ``text``.

    Returns:
        The decoded object, or None if there is no span, it is not valid
        JSON, or it does not decode to an object.
    """
    if not text:
        return None
    match = _JSON_OBJECT_PATTERN.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_relevance(text: str, fallback: Relevance | None = None) -> Relevance:
    """Parse a relevance verdict out of raw model output.

    Missing or zero scores become the default score, and missing reasoning
    becomes the generic reason (see Relevance validators).

    Args:
        text: Raw model response
        fallback: Verdict to return when nothing usable is found
                  (defaults to Relevance.unparseable())

    Returns:
        Parsed Relevance or the fallback
    """
    fallback = fallback or Relevance.unparseable()
    data = extract_json_object(text)
    if data is None:
        logger.debug("No JSON verdict in model output | text=%s", (text or "")[:80])
        return fallback
    try:
        return Relevance(score=data.get("score"), reasoning=data.get("reasoning"))
    except (ValidationError, OverflowError) as e:
        logger.debug("Invalid relevance verdict: %s", e)
        return fallback
