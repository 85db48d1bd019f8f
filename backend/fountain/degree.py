"""Robust soliton degree distributions, one per transfer profile."""

import bisect
import math
import random
from itertools import accumulate

from fountain.models import FountainProfile

# (c, delta) per profile. Larger c puts more mass on low degrees and on the
# spike, which costs extra packets but peels more reliably.
SOLITON_PARAMS: dict[FountainProfile, tuple[float, float]] = {
    FountainProfile.FAST: (0.03, 0.5),
    FountainProfile.RELIABLE: (0.12, 0.05),
}


def robust_soliton_cdf(k: int, c: float, delta: float) -> list[float]:
    """
    Cumulative robust soliton distribution over degrees 1..k.

    cdf[d - 1] is P(degree <= d); the last entry is exactly 1.0.
    """
    if k < 1:
        raise ValueError(f"k must be positive, got {k}")
    if k == 1:
        return [1.0]

    r = c * math.log(k / delta) * math.sqrt(k)

    # Ideal soliton
    mu = [0.0] * (k + 1)
    mu[1] = 1.0 / k
    for d in range(2, k + 1):
        mu[d] = 1.0 / (d * (d - 1))

    # Robust addition, spike at k/R
    if r > 0:
        spike = min(k, max(1, int(k / r)))
        for d in range(1, spike):
            mu[d] += r / (d * k)
        mu[spike] += r * math.log(max(r, 1.0 + 1e-9) / delta) / k

    total = sum(mu[1:])
    cdf = list(accumulate(p / total for p in mu[1:]))
    cdf[-1] = 1.0
    return cdf


class DegreeSampler:
    """Draws packet degrees for a session with k source blocks."""

    def __init__(self, k: int, profile: FountainProfile) -> None:
        c, delta = SOLITON_PARAMS[profile]
        self.k = k
        self.profile = profile
        self._cdf = robust_soliton_cdf(k, c, delta)

    def sample(self, rng: random.Random) -> int:
        return bisect.bisect_left(self._cdf, rng.random()) + 1

    def probability(self, degree: int) -> float:
        if degree < 1 or degree > self.k:
            return 0.0
        lower = self._cdf[degree - 2] if degree > 1 else 0.0
        return self._cdf[degree - 1] - lower
