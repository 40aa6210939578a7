"""Relevance verdicts and parsing of oracle responses."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

REASON_UNAVAILABLE = "unavailable"
REASON_BLOCKLISTED = "blocklisted"

SCORE_MIN = 0
SCORE_MAX = 10

_CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


@dataclass(frozen=True)
class RelevanceVerdict:
    """Whether a page matches the user's goal.

    Attributes:
        productive: Oracle's yes/no judgment.
        score: Relevance from 0 (blocklisted) or 1 to 10.
        reason: Short explanation, shown verbatim to the user.
        fallback: True when the oracle was unavailable and the verdict is the fail-open default.
    """

    productive: bool
    score: int
    reason: str
    fallback: bool = False

    def is_distraction(self, threshold: int = 4) -> bool:
        """True if the content counts as a confirmed distraction."""
        if self.fallback:
            return False
        return self.score < threshold

    def to_dict(self) -> dict:
        """Convert to a plain dict for JSON serialization."""
        return {
            "productive": self.productive,
            "score": self.score,
            "reason": self.reason,
            "fallback": self.fallback,
        }


def unavailable_verdict() -> RelevanceVerdict:
    """Fail-open verdict used when the oracle cannot answer."""
    return RelevanceVerdict(
        productive=True, score=5, reason=REASON_UNAVAILABLE, fallback=True,
    )


def blocklisted_verdict() -> RelevanceVerdict:
    """Verdict for a URL on the blocklist; the oracle is never asked."""
    return RelevanceVerdict(productive=False, score=0, reason=REASON_BLOCKLISTED)


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences around a JSON payload."""
    return _CODE_FENCE_RE.sub("", text).strip()


def parse_verdict(text: str) -> RelevanceVerdict:
    """Parse an oracle response into a verdict.

    The response must be a single JSON object with productive, score and
    reason keys; surrounding code fences are stripped first.

    Raises:
        ValueError: If the text is not a valid verdict object.
    """
    data = json.loads(strip_code_fences(text))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        productive = data["productive"]
        score = data["score"]
        reason = data.get("reason", "")
    except KeyError as e:
        raise ValueError(f"Missing key in oracle response: {e}") from None

    if not isinstance(productive, bool):
        raise ValueError(f"'productive' must be a boolean, got {productive!r}")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValueError(f"'score' must be a number, got {score!r}")

    return RelevanceVerdict(
        productive=productive,
        score=max(SCORE_MIN, min(SCORE_MAX, int(round(score)))),
        reason=str(reason),
    )
