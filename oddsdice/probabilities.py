"""Probability distributions over integer results.

A distribution is stored densely, as a tuple of probabilities plus the integer
result that index 0 stands for. Every combinator returns a new instance.

    >>> pd6 = Probabilities.for_fair_die(6)
    >>> round(Probabilities.add(pd6, pd6).expected, 9)
    7.0
"""
import logging
import math
from functools import cached_property, lru_cache
from numbers import Integral, Real
from typing import Iterator, Mapping, Optional, Sequence, Union

from typing_extensions import Self

from .exceptions import ConstructionError, ResourceLimitError
from .rules import KeepMode

logger = logging.getLogger(__name__)

# Hard ceiling on the number of distinct results in one distribution.
MAX_OUTCOMES = 1_000_000
MAX_SIDES = 100_000
# 171! overflows a float, which breaks the arrangement weighting.
MAX_ARRANGEMENT_DICE = 170
TOLERANCE = 1e-6


@lru_cache(maxsize=None)
def count_arrangements(counts: tuple[int, ...]) -> int:
    """Number of distinct orderings of items in groups of identical items.

    ``count_arrangements((2, 1))`` is 3, e.g. [3, 3, 6], [3, 6, 3], [6, 3, 3].
    """
    arrangements = math.factorial(sum(counts))
    for count in counts:
        if count > 1:
            arrangements //= math.factorial(count)
    return arrangements


def _checked_int(value: object, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f'{what} must be an integer, got {value!r}')
    return int(value)


def _checked_probs(probs: object) -> list[float]:
    if not isinstance(probs, (list, tuple)):
        raise TypeError(f'Probabilities must be a list of numbers, got {type(probs)}')
    if not probs:
        raise ValueError('A distribution needs at least one result')
    checked = []
    for p in probs:
        if isinstance(p, bool) or not isinstance(p, Real):
            raise TypeError(f'Probability {p!r} is not a number')
        if not 0.0 <= p <= 1.0:
            raise ValueError(f'Found probability value {p} which is not in range 0.0..1.0')
        checked.append(float(p))
    if abs(math.fsum(checked) - 1.0) > TOLERANCE:
        raise ValueError('Total probabilities too far from 1.0 for a valid distribution')
    return checked


class Probabilities:
    def __init__(self, probs: Sequence[float] = (1.0,), offset: int = 0):
        self._set(_checked_probs(probs), _checked_int(offset, 'Offset'))

    def _set(self, probs: Sequence[float], offset: int) -> None:
        start = 0
        end = len(probs)
        while start < end - 1 and probs[start] == 0.0:
            start += 1
        while end - 1 > start and probs[end - 1] == 0.0:
            end -= 1
        self._probs: tuple[float, ...] = tuple(probs[start:end])
        self._offset = offset + start
        self._ge_cache: dict[int, float] = {}
        self._le_cache: dict[int, float] = {}

    @classmethod
    def _derived(cls, probs: Sequence[float], offset: int) -> Self:
        # Built from already-validated distributions, so skips validation.
        pd = cls.__new__(cls)
        pd._set(probs, offset)
        return pd

    @classmethod
    def from_dict(cls, prob_map: Mapping[int, float]) -> Self:
        if not isinstance(prob_map, Mapping):
            raise TypeError('from_dict expected a mapping of result to probability')
        if not prob_map:
            raise ValueError('A distribution needs at least one result')
        results = [_checked_int(result, 'Result') for result in prob_map]
        low, high = min(results), max(results)
        if high - low + 1 > MAX_OUTCOMES:
            raise ResourceLimitError('Range of possible results too large')
        probs: list[float] = [0.0] * (high - low + 1)
        for result, p in prob_map.items():
            probs[result - low] = p
        return cls(probs, low)

    @classmethod
    def for_fair_die(cls, sides: int) -> Self:
        sides = _checked_int(sides, 'Sides')
        if sides < 1:
            raise ConstructionError(f'Sides must be at least 1, got {sides}')
        if sides > MAX_SIDES:
            raise ResourceLimitError(f'Sides can be at most {MAX_SIDES}, got {sides}')
        return cls._derived([1.0 / sides] * sides, 1)

    def to_ao(self) -> tuple[list[float], int]:
        """The (probabilities, offset) pair accepted by the constructor."""
        return list(self._probs), self._offset

    def to_dict(self) -> dict[int, float]:
        return dict(self)

    def __iter__(self) -> Iterator[tuple[int, float]]:
        for idx, p in enumerate(self._probs):
            if p > 0.0:
                yield idx + self._offset, p

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Probabilities):
            return False
        return (self._offset, self._probs) == (other._offset, other._probs)

    def __hash__(self) -> int:
        return hash((self._offset, self._probs))

    def __repr__(self) -> str:
        return f'Probabilities({list(self._probs)!r}, {self._offset})'

    def isclose(self, other: 'Probabilities', abs_tol: float = 1e-12) -> bool:
        if not isinstance(other, Probabilities):
            raise TypeError('Parameter to isclose is not a Probabilities')
        low = min(self.min, other.min)
        high = max(self.max, other.max)
        return all(
            math.isclose(self.p_eql(r), other.p_eql(r), rel_tol=0.0, abs_tol=abs_tol)
            for r in range(low, high + 1)
        )

    @property
    def min(self) -> int:
        return self._offset

    @property
    def max(self) -> int:
        return self._offset + len(self._probs) - 1

    @cached_property
    def expected(self) -> float:
        return math.fsum(r * p for r, p in self)

    def p_eql(self, target: int) -> float:
        idx = _checked_int(target, 'Target') - self._offset
        if idx < 0 or idx >= len(self._probs):
            return 0.0
        return self._probs[idx]

    def p_gt(self, target: int) -> float:
        return self.p_ge(_checked_int(target, 'Target') + 1)

    def p_ge(self, target: int) -> float:
        target = _checked_int(target, 'Target')
        if target <= self.min:
            return 1.0
        if target > self.max:
            return 0.0
        if target not in self._ge_cache:
            self._ge_cache[target] = math.fsum(self._probs[target - self._offset:])
        return self._ge_cache[target]

    def p_le(self, target: int) -> float:
        target = _checked_int(target, 'Target')
        if target >= self.max:
            return 1.0
        if target < self.min:
            return 0.0
        if target not in self._le_cache:
            self._le_cache[target] = math.fsum(self._probs[:target - self._offset + 1])
        return self._le_cache[target]

    def p_lt(self, target: int) -> float:
        return self.p_le(_checked_int(target, 'Target') - 1)

    def given_ge(self, target: int) -> 'Probabilities':
        """Distribution of results, knowing the result is at least ``target``."""
        target = max(_checked_int(target, 'Target'), self.min)
        p = self.p_ge(target)
        if not p > 0.0:
            raise ValueError(f'There is no valid distribution given a result >= {target}')
        scale = 1.0 / p
        return self._derived(
            [x * scale for x in self._probs[target - self._offset:]], target
        )

    def given_le(self, target: int) -> 'Probabilities':
        """Distribution of results, knowing the result is at most ``target``."""
        target = min(_checked_int(target, 'Target'), self.max)
        p = self.p_le(target)
        if not p > 0.0:
            raise ValueError(f'There is no valid distribution given a result <= {target}')
        scale = 1.0 / p
        return self._derived(
            [x * scale for x in self._probs[:target - self._offset + 1]], self._offset
        )

    def shift(self, delta: int) -> 'Probabilities':
        return self._derived(self._probs, self._offset + _checked_int(delta, 'Shift'))

    @classmethod
    def add(cls, pd_a: 'Probabilities', pd_b: 'Probabilities') -> 'Probabilities':
        """Distribution of the sum of independent results from both."""
        return cls.add_scaled(1, pd_a, 1, pd_b)

    @classmethod
    def add_scaled(
            cls, m_a: int, pd_a: 'Probabilities', m_b: int, pd_b: 'Probabilities'
    ) -> 'Probabilities':
        """Distribution of ``m_a * a + m_b * b``, e.g. ``m_b = -1`` to subtract."""
        if not (isinstance(pd_a, Probabilities) and isinstance(pd_b, Probabilities)):
            raise TypeError('Parameter to add_scaled is not a Probabilities')
        m_a = _checked_int(m_a, 'Multiplier')
        m_b = _checked_int(m_b, 'Multiplier')

        extremes = [
            m_a * a + m_b * b
            for a in (pd_a.min, pd_a.max)
            for b in (pd_b.min, pd_b.max)
        ]
        low, high = min(extremes), max(extremes)
        if high - low + 1 > MAX_OUTCOMES:
            raise ResourceLimitError('Probability distribution too large')

        new_probs = [0.0] * (high - low + 1)
        for i, pa in enumerate(pd_a._probs):
            if pa == 0.0:
                continue
            base = m_a * (i + pd_a._offset) + m_b * pd_b._offset - low
            for j, pb in enumerate(pd_b._probs):
                new_probs[base + m_b * j] += pa * pb
        return cls._derived(new_probs, low)

    def repeat_sum(self, n: int) -> 'Probabilities':
        """Distribution of the sum of ``n`` independent results."""
        n = _checked_int(n, 'Repeat count')
        if n < 1:
            raise ValueError('Cannot combine probabilities less than once')
        if n * len(self._probs) > MAX_OUTCOMES:
            raise ResourceLimitError('Probability distribution too large')

        power = self
        result: Optional[Probabilities] = None
        use_power = 1
        while True:
            if use_power & n:
                result = power if result is None else self.add(result, power)
            use_power <<= 1
            if use_power > n:
                break
            power = self.add(power, power)
        assert result is not None
        return result

    def repeat_n_sum_k(
            self, n: int, k: int, mode: Union[KeepMode, str] = KeepMode.BEST
    ) -> 'Probabilities':
        """Distribution of the sum of the best (or worst) ``k`` of ``n`` results.

        For each possible value ``q`` of the k-th kept die, the dice divide
        into those strictly preferred to ``q``, those equal to it, and those
        rejected. Each split is weighted by its probability and number of
        arrangements, and the preferred dice contribute the sum of the
        conditional distribution beyond ``q``.
        """
        n = _checked_int(n, 'Repeat count')
        k = _checked_int(k, 'Keep count')
        mode = KeepMode.coerce(mode)
        if n < 1:
            raise ValueError('Cannot combine probabilities less than once')
        if k < 1:
            raise ValueError('Cannot keep less than one result')
        if n > MAX_ARRANGEMENT_DICE:
            raise ResourceLimitError('Too many dice to calculate numbers of arrangements')
        if k >= n:
            return self.repeat_sum(n)

        logger.debug(
            'Summing %s %d of %d over %d outcomes', mode.value, k, n, len(self._probs)
        )
        new_offset = self._offset * k
        new_probs = [0.0] * ((len(self._probs) - 1) * k + 1)
        discards = n - k

        for q, p_tied in self:
            keep_distributions = self._keep_distributions(k, q, mode)
            p_rejected, p_preferred = self._tails(q, mode)

            for n_preferred in range(k):
                n_tied_kept = k - n_preferred
                p_keepers = p_preferred ** n_preferred * p_tied ** n_tied_kept
                if not p_keepers > 0.0:
                    continue
                kept = keep_distributions[n_preferred]
                for n_rejected in range(discards + 1):
                    n_tied_discarded = discards - n_rejected
                    p_split = (
                        p_keepers
                        * p_tied ** n_tied_discarded
                        * p_rejected ** n_rejected
                    )
                    if not p_split > 0.0:
                        continue
                    p_split *= count_arrangements(
                        (n_rejected, n_tied_kept + n_tied_discarded, n_preferred)
                    )
                    for result, p_result in kept:
                        new_probs[result - new_offset] += p_result * p_split

        return self._derived(new_probs, new_offset)

    def _tails(self, q: int, mode: KeepMode) -> tuple[float, float]:
        if mode is KeepMode.BEST:
            return self.p_lt(q), self.p_gt(q)
        return self.p_gt(q), self.p_lt(q)

    def _keep_distributions(
            self, k: int, q: int, mode: KeepMode
    ) -> list['Probabilities']:
        # Indexed by the number of kept results strictly preferred to q.
        preferred: Optional[Probabilities] = None
        if mode is KeepMode.BEST and self.p_gt(q) > 0.0:
            preferred = self.given_ge(q + 1)
        elif mode is KeepMode.WORST and self.p_lt(q) > 0.0:
            preferred = self.given_le(q - 1)

        distributions = [self._derived([1.0], q * k)]
        if preferred is not None:
            for n_preferred in range(1, k):
                distributions.append(
                    preferred.repeat_sum(n_preferred).shift(q * (k - n_preferred))
                )
        return distributions
