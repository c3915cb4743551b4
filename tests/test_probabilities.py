import math

import pytest

from oddsdice.exceptions import ConstructionError, ResourceLimitError
from oddsdice.probabilities import Probabilities, count_arrangements
from oddsdice.rules import KeepMode


@pytest.fixture
def pd(request) -> Probabilities:
    sides, ndice = request.param
    return Probabilities.for_fair_die(sides).repeat_sum(ndice)


def test_fair_die():
    pd6 = Probabilities.for_fair_die(6)
    assert pd6.min == 1
    assert pd6.max == 6
    assert pd6.expected == pytest.approx(3.5)
    assert pd6.to_dict() == pytest.approx({r: 1 / 6 for r in range(1, 7)})


def test_fair_die_limits():
    with pytest.raises(ConstructionError):
        Probabilities.for_fair_die(0)
    with pytest.raises(ResourceLimitError):
        Probabilities.for_fair_die(100_001)
    with pytest.raises(TypeError):
        Probabilities.for_fair_die(6.0)


@pytest.mark.parametrize(
    'probs,error',
    [
        ([0.5, 0.6], ValueError),
        ([1.5, -0.5], ValueError),
        ([], ValueError),
        ('abc', TypeError),
        ([0.5, 'a'], TypeError),
    ],
)
def test_invalid_distribution(probs, error):
    with pytest.raises(error):
        Probabilities(probs)


def test_to_ao_round_trip():
    pd = Probabilities([0.1, 0.2, 0.7], 3)
    assert Probabilities(*pd.to_ao()) == pd
    assert pd.to_ao() == ([0.1, 0.2, 0.7], 3)


def test_zero_ends_trimmed():
    pd = Probabilities([0.0, 0.5, 0.5, 0.0], 0)
    assert pd.to_ao() == ([0.5, 0.5], 1)


def test_from_dict():
    pd = Probabilities.from_dict({3: 0.75, 1: 0.25})
    assert pd.to_ao() == ([0.25, 0.0, 0.75], 1)
    assert list(pd) == [(1, 0.25), (3, 0.75)]
    with pytest.raises(ResourceLimitError):
        Probabilities.from_dict({0: 0.5, 2_000_000: 0.5})


def test_add():
    pd6 = Probabilities.for_fair_die(6)
    pd = Probabilities.add(pd6, pd6)
    assert pd.min == 2
    assert pd.max == 12
    assert pd.p_eql(7) == pytest.approx(6 / 36)
    with pytest.raises(TypeError):
        Probabilities.add(pd6, {1: 1.0})


def test_add_scaled():
    pd6 = Probabilities.for_fair_die(6)
    pd = Probabilities.add_scaled(1, pd6, -1, pd6)
    assert (pd.min, pd.max) == (-5, 5)
    assert pd.p_eql(0) == pytest.approx(1 / 6)
    assert pd.expected == pytest.approx(0.0)

    doubled = Probabilities.add_scaled(2, pd6, 0, Probabilities())
    assert doubled.to_dict() == pytest.approx({r: 1 / 6 for r in range(2, 13, 2)})


def test_shift():
    pd = Probabilities.for_fair_die(4).shift(-2)
    assert (pd.min, pd.max) == (-1, 2)


@pytest.mark.parametrize(
    'pd,ndice,sides',
    [
        ((6, 3), 3, 6),
        ((10, 20), 20, 10),
        ((20, 7), 7, 20),
        ((1, 5), 5, 1),
    ],
    indirect=['pd'],
)
def test_repeat_sum_support(pd, ndice, sides):
    assert (pd.min, pd.max) == (ndice, ndice * sides)
    assert math.fsum(p for _, p in pd) == pytest.approx(1.0, abs=1e-9)


@pytest.mark.parametrize('pd', [(6, 3)], indirect=True)
def test_repeat_sum_3d6(pd):
    assert pd.p_eql(3) == pytest.approx(1 / 216)
    assert pd.p_eql(11) == pytest.approx(27 / 216)
    assert pd.expected == pytest.approx(10.5)


@pytest.mark.parametrize('pd', [(10, 20)], indirect=True)
def test_repeat_sum_20d10(pd):
    assert pd.p_eql(20) == pytest.approx(1e-20, abs=1e-26)
    assert pd.p_eql(110) == pytest.approx(0.0308191892, abs=1e-10)
    assert pd.expected == pytest.approx(110.0)


def test_repeat_sum_limits():
    pd = Probabilities.for_fair_die(1000)
    with pytest.raises(ResourceLimitError):
        pd.repeat_sum(1001)
    with pytest.raises(ValueError):
        pd.repeat_sum(0)


@pytest.mark.parametrize('pd', [(6, 2)], indirect=True)
def test_tail_probabilities(pd):
    for target in range(0, 15):
        assert pd.p_ge(target) + pd.p_lt(target) == pytest.approx(1.0)
        assert pd.p_le(target) + pd.p_gt(target) == pytest.approx(1.0)
    assert pd.p_ge(2) == 1.0
    assert pd.p_gt(12) == 0.0
    assert pd.p_le(7) == pytest.approx(21 / 36)
    assert pd.p_eql(13) == 0.0


def test_given_ge_and_le():
    pd6 = Probabilities.for_fair_die(6)
    assert pd6.given_ge(5).to_dict() == pytest.approx({5: 0.5, 6: 0.5})
    assert pd6.given_le(2).to_dict() == pytest.approx({1: 0.5, 2: 0.5})
    assert pd6.given_ge(-3) == pd6
    with pytest.raises(ValueError):
        pd6.given_ge(7)
    with pytest.raises(ValueError):
        pd6.given_le(0)


@pytest.mark.parametrize(
    'mode,expected',
    [
        (KeepMode.BEST, 13.825),
        (KeepMode.WORST, 7.175),
    ],
)
def test_repeat_n_sum_k_d20_two_dice(mode, expected):
    pd = Probabilities.for_fair_die(20).repeat_n_sum_k(2, 1, mode)
    assert pd.expected == pytest.approx(expected, abs=1e-9)


def test_repeat_n_sum_k_4d6_best_3():
    pd = Probabilities.for_fair_die(6).repeat_n_sum_k(4, 3)
    counts = [1, 4, 10, 21, 38, 62, 91, 122, 148, 167, 172, 160, 131, 94, 54, 21]
    assert pd.to_dict() == pytest.approx(
        {r: count / 1296 for r, count in zip(range(3, 19), counts)}, abs=1e-10
    )
    assert pd.expected == pytest.approx(12.244598765, abs=1e-9)


def test_repeat_n_sum_k_10d10_worst_1():
    pd = Probabilities.for_fair_die(10).repeat_n_sum_k(10, 1, 'worst')
    assert pd.expected == pytest.approx(1.4914341925, abs=1e-9)
    assert pd.p_eql(1) == pytest.approx(0.6513215599, abs=1e-10)
    assert pd.p_eql(10) == pytest.approx(1e-10, abs=1e-18)


@pytest.mark.parametrize('mode', [KeepMode.BEST, KeepMode.WORST])
def test_repeat_n_sum_k_keeping_all(mode):
    pd6 = Probabilities.for_fair_die(6)
    assert pd6.repeat_n_sum_k(3, 3, mode) == pd6.repeat_sum(3)
    assert pd6.repeat_n_sum_k(3, 5, mode) == pd6.repeat_sum(3)


def test_repeat_n_sum_k_errors():
    pd6 = Probabilities.for_fair_die(6)
    with pytest.raises(ValueError):
        pd6.repeat_n_sum_k(0, 1)
    with pytest.raises(ValueError):
        pd6.repeat_n_sum_k(3, 0)
    with pytest.raises(ResourceLimitError):
        pd6.repeat_n_sum_k(171, 3)


def test_isclose():
    pd6 = Probabilities.for_fair_die(6)
    nearly = Probabilities([1 / 6 + 1e-14] + [1 / 6] * 4 + [1 / 6 - 1e-14], 1)
    assert pd6.isclose(nearly)
    assert not pd6.isclose(pd6.shift(1))


@pytest.mark.parametrize(
    'counts,expected',
    [
        ((2, 1), 3),
        ((1, 1, 1), 6),
        ((3,), 1),
        ((0, 2, 2), 6),
    ],
)
def test_count_arrangements(counts, expected):
    assert count_arrangements(counts) == expected


@pytest.mark.parametrize('other', [{1: 1.0}, [1.0], None])
def test_isclose_needs_probabilities(other):
    with pytest.raises(TypeError):
        Probabilities.for_fair_die(6).isclose(other)
