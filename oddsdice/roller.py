from functools import cached_property
from random import randrange
from typing import Callable, Optional

from typing_extensions import TypeAlias

from .exceptions import ConstructionError
from .probabilities import Probabilities

# Draws a uniform integer in [0, n).
Rng: TypeAlias = Callable[[int], int]


def random_rng(n: int) -> int:
    return randrange(n)


class Die:
    """A basic die that rolls 1..sides, with equal weighting for each value."""

    def __init__(self, sides: int, rng: Optional[Rng] = None):
        if isinstance(sides, bool) or not isinstance(sides, int):
            raise TypeError(f'Sides must be an integer, got {sides!r}')
        if sides < 1:
            raise ConstructionError(f'Sides value {sides} is too low, it must be 1 or greater')
        if rng is not None and not callable(rng):
            raise TypeError(f'Random source {rng!r} is not callable')
        self.sides = sides
        self.rng = rng or random_rng
        self.result: Optional[int] = None

    def __repr__(self) -> str:
        return f'Die({self.sides})'

    @property
    def min(self) -> int:
        return 1

    @property
    def max(self) -> int:
        return self.sides

    @property
    def values(self) -> range:
        return range(1, self.sides + 1)

    @cached_property
    def probabilities(self) -> Probabilities:
        return Probabilities.for_fair_die(self.sides)

    def roll(self) -> int:
        self.result = self.rng(self.sides) + 1
        return self.result
