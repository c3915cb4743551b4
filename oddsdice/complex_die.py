import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Optional, Sequence, TypeVar, Union

from .probabilities import Probabilities
from .results import DieResult, apply_roll
from .roller import Die, Rng
from .rules import Effect, MapRule, RerollRule

logger = logging.getLogger(__name__)

R = TypeVar('R', RerollRule, MapRule)

# Limits on resolving open-ended rerolls. Hitting either one marks the
# distribution as incomplete.
MAX_DEPTH = 20
MIN_BRANCH_PROBABILITY = 1e-16


@dataclass(frozen=True)
class _Branch:
    """A partially resolved sequence of rolls for one die.

    Branches with equal state have identical futures, so their probabilities
    can be pooled.
    """
    total: Optional[int]
    remaining: tuple[int, ...]
    effect: Effect = Effect.BASIC
    subtracting: bool = False


class ComplexDie:
    """A die whose rolls may trigger rerolls, and whose total may be mapped.

    An exploding six-sided die that needs 8 or more to score a success:

    >>> die = ComplexDie(6, rerolls=[(6, 'le', 'add')], maps=[(8, 'le', 1, 'Success')])
    """

    def __init__(
            self, sides: int,
            rerolls: Optional[Sequence[Union[RerollRule, Sequence[object]]]] = None,
            maps: Optional[Sequence[Union[MapRule, Sequence[object]]]] = None,
            rng: Optional[Rng] = None,
    ):
        self.die = Die(sides, rng)
        self.rerolls: tuple[RerollRule, ...] = _build_rules(RerollRule, rerolls)
        self.maps: tuple[MapRule, ...] = _build_rules(MapRule, maps)
        self.result: Optional[DieResult] = None
        self._complete = True

    def __repr__(self) -> str:
        return f'ComplexDie({self.sides}, rerolls={self.rerolls!r}, maps={self.maps!r})'

    @property
    def sides(self) -> int:
        return self.die.sides

    def roll(self) -> DieResult:
        result = DieResult(self.die.roll())
        remaining = [rule.limit for rule in self.rerolls]
        while True:
            idx = self._find_rule(self.die.result, remaining, len(result.rolls) == 1)
            if idx is None:
                break
            remaining[idx] -= 1
            result.add_roll(self.die.roll(), self.rerolls[idx].effect)

        if self.maps:
            assert result.total is not None
            result.apply_map(*self._map_value(result.total))
        self.result = result
        return result

    def explain(self) -> Optional[str]:
        if self.result is None:
            return None
        return self.result.explain_value()

    @cached_property
    def probabilities(self) -> Probabilities:
        return self._calc_probabilities()

    @property
    def probabilities_complete(self) -> bool:
        """False when open-ended rerolls cut the calculation short."""
        self.probabilities
        return self._complete

    @property
    def min(self) -> int:
        return self._minmax[0]

    @property
    def max(self) -> int:
        return self._minmax[1]

    @cached_property
    def _minmax(self) -> tuple[int, int]:
        # Without rerolls the faces are enough, however many sides there are.
        if not self.rerolls:
            if not self.maps:
                return self.die.min, self.die.max
            mapped = [self._map_value(value)[0] for value in self.die.values]
            return min(mapped), max(mapped)
        low, high = self.probabilities.min, self.probabilities.max
        if self.probabilities_complete:
            return low, high
        logical_low, logical_high = self._logical_minmax()
        return min(low, logical_low), max(high, logical_high)

    def _calc_probabilities(self) -> Probabilities:
        self._complete = True
        if not (self.rerolls or self.maps):
            return self.die.probabilities

        if self.rerolls:
            totals = self._resolve_rerolls()
        else:
            totals = self.die.probabilities.to_dict()

        if not self._complete:
            logger.debug('Reroll resolution for %r was cut short', self)

        if not self.maps:
            return Probabilities.from_dict(totals)
        mapped: dict[int, float] = {}
        for total, p in totals.items():
            value, _ = self._map_value(total)
            mapped[value] = mapped.get(value, 0.0) + p
        return Probabilities.from_dict(mapped)

    def _find_rule(
            self, value: Optional[int], remaining: Sequence[int], first_roll: bool
    ) -> Optional[int]:
        for idx, (rule, uses_left) in enumerate(zip(self.rerolls, remaining)):
            # Subtracting only happens on the first extra roll.
            if rule.effect is Effect.SUBTRACT and not first_roll:
                continue
            if uses_left > 0 and rule.applies(value):
                return idx
        return None

    def _map_value(self, total: int) -> tuple[int, str]:
        for rule in self.maps:
            value = rule.map_from(total)
            if value is not None:
                return value, rule.mapped_label
        return 0, ''

    def _resolve_rerolls(self) -> dict[int, float]:
        totals: dict[int, float] = {}
        start = _Branch(None, tuple(rule.limit for rule in self.rerolls))
        self._expand({start: 1.0}, totals, 1)
        return totals

    def _expand(
            self, frontier: dict[_Branch, float], totals: dict[int, float], depth: int
    ) -> None:
        next_frontier: dict[_Branch, float] = {}
        for branch, probability in frontier.items():
            each = probability / self.sides
            for value in self.die.values:
                total, _, subtracting = apply_roll(
                    branch.total, value, branch.effect, branch.subtracting
                )
                idx = self._find_rule(value, branch.remaining, branch.total is None)
                if idx is not None and (
                    depth >= MAX_DEPTH or each < MIN_BRANCH_PROBABILITY
                ):
                    self._complete = False
                    idx = None
                if idx is None:
                    totals[total] = totals.get(total, 0.0) + each
                    continue

                remaining = list(branch.remaining)
                remaining[idx] -= 1
                child = _Branch(
                    total, tuple(remaining), self.rerolls[idx].effect, subtracting
                )
                next_frontier[child] = next_frontier.get(child, 0.0) + each

        if next_frontier:
            logger.debug('Reroll depth %d has %d open branches', depth, len(next_frontier))
            self._expand(next_frontier, totals, depth + 1)

    def _logical_minmax(self) -> tuple[int, int]:
        # Loose bounds from the rule extremes, used when the calculated
        # distribution is missing its long tails.
        low, high = 1, self.sides
        subtract_triggers: list[int] = []
        for rule in self.rerolls:
            triggers = [v for v in self.die.values if rule.applies(v)]
            if not triggers:
                continue
            if rule.effect is Effect.ADD:
                high += max(triggers) * rule.limit
            elif rule.effect is Effect.SUBTRACT:
                subtract_triggers.append(min(triggers))
        if subtract_triggers:
            low = min(subtract_triggers) - high
        if not self.maps:
            return low, high
        mapped = [self._map_value(total)[0] for total in range(low, high + 1)]
        return min(mapped), max(mapped)


def _build_rules(
        rule_type: type[R], rules: Optional[Sequence[Union[R, Sequence[object]]]]
) -> tuple[R, ...]:
    if rules is None:
        return ()
    if not isinstance(rules, (list, tuple)):
        raise TypeError(
            f'{rule_type.__name__} items should be in a list, instead got {rules!r}'
        )
    return tuple(rule_type.coerce(rule) for rule in rules)
