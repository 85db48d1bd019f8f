import random
from collections import Counter

import pytest

from fountain.degree import SOLITON_PARAMS, DegreeSampler, robust_soliton_cdf
from fountain.models import FountainProfile


@pytest.mark.parametrize("k", [1, 2, 10, 100, 1000])
@pytest.mark.parametrize("profile", list(FountainProfile))
def test_cdf_is_a_distribution(k, profile):
    cdf = robust_soliton_cdf(k, *SOLITON_PARAMS[profile])

    assert len(cdf) == k
    assert cdf[-1] == 1.0
    assert all(a <= b for a, b in zip(cdf, cdf[1:]))
    assert cdf[0] > 0


def test_rejects_empty_session():
    with pytest.raises(ValueError):
        robust_soliton_cdf(0, 0.03, 0.5)


def test_samples_stay_in_range():
    sampler = DegreeSampler(50, FountainProfile.FAST)
    rng = random.Random(0)
    assert all(1 <= sampler.sample(rng) <= 50 for _ in range(5000))


def test_probabilities_sum_to_one():
    sampler = DegreeSampler(40, FountainProfile.RELIABLE)
    assert sum(sampler.probability(d) for d in range(1, 41)) == pytest.approx(1.0)
    assert sampler.probability(0) == 0.0
    assert sampler.probability(41) == 0.0


def test_low_degrees_dominate():
    sampler = DegreeSampler(100, FountainProfile.FAST)
    rng = random.Random(3)
    counts = Counter(sampler.sample(rng) for _ in range(20000))

    assert counts[2] > counts[3] > counts[10]


def test_reliable_profile_favours_degree_one():
    fast = DegreeSampler(100, FountainProfile.FAST)
    reliable = DegreeSampler(100, FountainProfile.RELIABLE)
    assert reliable.probability(1) > fast.probability(1)
