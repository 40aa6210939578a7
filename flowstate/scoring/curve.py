"""Score curves mapping cumulative focus time (tau, seconds) to a 0-100 score.

PiecewiseCurve is super-linear for the first ten minutes, then linear with a
steeper slope after thirty minutes; ~3500s of continuous focus reaches 100.
LinearCurve maps tau to the score one-to-one, so event deltas expressed in
score points move tau by the same amount.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

SCORE_MIN = 0.0
SCORE_MAX = 100.0


def clamp_score(value: float) -> float:
    """Clamp a score into [0, 100]."""
    return max(SCORE_MIN, min(SCORE_MAX, value))


@dataclass(frozen=True)
class CurveParams:
    """Constants of the piecewise focus curve.

    Attributes:
        early_end: End of the quadratic segment (seconds).
        early_peak: Score reached at early_end.
        mid_end: End of the first linear segment (seconds).
        mid_slope: Points per second in the first linear segment.
        late_base: Score at mid_end for the second linear segment.
        late_slope: Points per second after mid_end.
    """

    early_end: float = 600.0
    early_peak: float = 5.0
    mid_end: float = 1800.0
    mid_slope: float = 0.01667
    late_base: float = 31.67
    late_slope: float = 0.03889


class PiecewiseCurve:
    """F(tau) = 5*(tau/600)^2, then 5 + 0.01667*(tau-600), then 31.67 + 0.03889*(tau-1800)."""

    def __init__(self, params: CurveParams = CurveParams()) -> None:
        self.params = params

    def score(self, tau: float) -> float:
        """Score for a given focus time, clamped to [0, 100]."""
        p = self.params
        tau = max(0.0, tau)
        if tau < p.early_end:
            value = p.early_peak * (tau / p.early_end) ** 2
        elif tau < p.mid_end:
            value = p.early_peak + p.mid_slope * (tau - p.early_end)
        else:
            value = p.late_base + p.late_slope * (tau - p.mid_end)
        return clamp_score(value)

    def inverse(self, score: float) -> float:
        """Smallest focus time whose score reaches the given score."""
        p = self.params
        s = clamp_score(score)
        if s <= 0:
            return 0.0
        if s <= p.early_peak:
            return p.early_end * math.sqrt(s / p.early_peak)
        mid_top = p.early_peak + p.mid_slope * (p.mid_end - p.early_end)
        if s <= mid_top:
            return p.early_end + (s - p.early_peak) / p.mid_slope
        if s <= p.late_base:
            return p.mid_end
        return p.mid_end + (s - p.late_base) / p.late_slope


class LinearCurve:
    """F(tau) = slope * tau, clamped to [0, 100]."""

    def __init__(self, slope: float = 1.0) -> None:
        if slope <= 0:
            raise ValueError("slope must be positive")
        self.slope = slope

    def score(self, tau: float) -> float:
        return clamp_score(self.slope * max(0.0, tau))

    def inverse(self, score: float) -> float:
        return clamp_score(score) / self.slope
