from functools import cached_property
from typing import Mapping, Optional, Sequence, Union

from .complex_die import ComplexDie
from .exceptions import ConstructionError
from .parser import BunchSpec, RollSpec
from .probabilities import Probabilities
from .results import DieResult
from .roller import Rng
from .rules import KeepMode, MapRule, RerollRule


class Bunch:
    """A number of identical dice rolled together and summed.

    With a keep mode, only the best or worst ``keep_number`` results count:

    >>> bunch = Bunch(5, 10, keep_mode='best', keep_number=2)
    """

    def __init__(
            self, ndice: int, sides: int,
            rerolls: Optional[Sequence[Union[RerollRule, Sequence[object]]]] = None,
            maps: Optional[Sequence[Union[MapRule, Sequence[object]]]] = None,
            keep_mode: Optional[Union[KeepMode, str]] = None,
            keep_number: Optional[int] = None,
            rng: Optional[Rng] = None,
            name: str = '',
    ):
        if isinstance(ndice, bool) or not isinstance(ndice, int):
            raise TypeError(f'Number of dice must be an integer, got {ndice!r}')
        if ndice < 1:
            raise ConstructionError(f'Number of dice must be 1 or more, got {ndice}')
        self.ndice = ndice
        self.single_die = ComplexDie(sides, rerolls, maps, rng)
        self.name = name

        self.keep_mode: Optional[KeepMode] = None
        self.keep_number: Optional[int] = None
        if keep_mode is not None:
            self.keep_mode = KeepMode.coerce(keep_mode)
            self.keep_number = 1 if keep_number is None else keep_number
            if isinstance(self.keep_number, bool) or not isinstance(self.keep_number, int):
                raise TypeError(f'Keep number must be an integer, got {keep_number!r}')
            if self.keep_number < 1:
                raise ConstructionError("Can't keep less than one die")

        self.result: Optional[int] = None
        self.result_details: list[DieResult] = []
        self.kept: list[DieResult] = []
        self.discarded: list[DieResult] = []

    @classmethod
    def from_spec(cls, spec: BunchSpec, rng: Optional[Rng] = None) -> 'Bunch':
        return cls(
            spec.ndice, spec.sides,
            rerolls=spec.rerolls,
            maps=spec.maps,
            keep_mode=spec.keep_mode,
            keep_number=spec.keep_number,
            rng=rng,
        )

    def __repr__(self) -> str:
        return f'Bunch({self.label!r})'

    @property
    def sides(self) -> int:
        return self.single_die.sides

    @property
    def label(self) -> str:
        return self.name or f'{self.ndice}d{self.sides}'

    @property
    def counted_dice(self) -> int:
        if self.keep_number is None:
            return self.ndice
        return min(self.keep_number, self.ndice)

    @property
    def min(self) -> int:
        return self.counted_dice * self.single_die.min

    @property
    def max(self) -> int:
        return self.counted_dice * self.single_die.max

    @cached_property
    def probabilities(self) -> Probabilities:
        single = self.single_die.probabilities
        if self.keep_mode is None or self.keep_number is None:
            return single.repeat_sum(self.ndice)
        return single.repeat_n_sum_k(self.ndice, self.keep_number, self.keep_mode)

    @property
    def probabilities_complete(self) -> bool:
        return self.single_die.probabilities_complete

    def roll(self) -> int:
        self.result_details = [self.single_die.roll() for _ in range(self.ndice)]
        if self.keep_number is None or self.keep_number >= self.ndice:
            self.kept = list(self.result_details)
            self.discarded = []
        else:
            ordered = sorted(self.result_details, key=int)
            if self.keep_mode is KeepMode.BEST:
                self.discarded = ordered[:-self.keep_number]
                self.kept = ordered[-self.keep_number:]
            else:
                self.kept = ordered[:self.keep_number]
                self.discarded = ordered[self.keep_number:]
        self.result = sum(int(die) for die in self.kept)
        return self.result

    def explain(self) -> Optional[str]:
        if self.result is None:
            return None
        has_maps = bool(self.single_die.maps)

        if self.keep_mode is None and not has_maps:
            explanation = ' + '.join(die.explain_value() for die in self.result_details)
            if self.ndice > 1:
                explanation += f' = {self.result}'
            return explanation

        explanation = ', '.join(die.explain_value() for die in self.result_details)
        if self.keep_mode is not None:
            separator = ', ' if has_maps else ' + '
            explanation += '. Keep: ' + separator.join(
                die.explain_total() for die in self.kept
            )
        if has_maps:
            explanation += f'. Successes: {self.result}'
        elif self.keep_number is not None and self.keep_number > 1:
            explanation += f' = {self.result}'
        return explanation


class Dice:
    """Bunches of dice added or subtracted together, plus a fixed offset.

    >>> dice = Dice([BunchSpec(3, 6)], offset=6, name='Hit points')
    """

    def __init__(
            self, bunches: Sequence[Union[BunchSpec, Mapping[str, object]]],
            offset: int = 0, name: str = '', rng: Optional[Rng] = None,
    ):
        specs = [_bunch_spec(bunch) for bunch in bunches]
        if isinstance(offset, bool) or not isinstance(offset, int):
            raise TypeError(f'Offset must be an integer, got {offset!r}')
        self.bunches = [Bunch.from_spec(spec, rng) for spec in specs]
        self.multipliers = [spec.multiplier for spec in specs]
        self.offset = offset
        self.name = name
        self.result: Optional[int] = None

    @classmethod
    def from_spec(cls, spec: RollSpec, rng: Optional[Rng] = None) -> 'Dice':
        return cls(spec.bunches, spec.offset, rng=rng)

    def __repr__(self) -> str:
        return f'Dice({self.bunches!r}, offset={self.offset})'

    def roll(self) -> int:
        self.result = self.offset + sum(
            multiplier * bunch.roll()
            for multiplier, bunch in zip(self.multipliers, self.bunches)
        )
        return self.result

    @property
    def min(self) -> int:
        return self.offset + sum(
            multiplier * (bunch.min if multiplier > 0 else bunch.max)
            for multiplier, bunch in zip(self.multipliers, self.bunches)
        )

    @property
    def max(self) -> int:
        return self.offset + sum(
            multiplier * (bunch.max if multiplier > 0 else bunch.min)
            for multiplier, bunch in zip(self.multipliers, self.bunches)
        )

    @property
    def minmax(self) -> tuple[int, int]:
        return self.min, self.max

    @cached_property
    def probabilities(self) -> Probabilities:
        probs = Probabilities()
        for multiplier, bunch in zip(self.multipliers, self.bunches):
            probs = Probabilities.add_scaled(1, probs, multiplier, bunch.probabilities)
        return probs.shift(self.offset)

    @property
    def probabilities_complete(self) -> bool:
        return all(bunch.probabilities_complete for bunch in self.bunches)

    def explain(self) -> Optional[str]:
        if self.result is None:
            return None
        if not self.bunches:
            return str(self.offset)

        explanations = [f'{bunch.label}: {bunch.explain()}' for bunch in self.bunches]
        values = [
            multiplier * (bunch.result or 0)
            for multiplier, bunch in zip(self.multipliers, self.bunches)
        ]
        if self.offset:
            values.append(self.offset)
        if len(values) > 1 or self.multipliers[0] < 0:
            explanations.append(_sum_text(values, self.result))
        return '. '.join(explanations)


def _bunch_spec(bunch: Union[BunchSpec, Mapping[str, object]]) -> BunchSpec:
    if isinstance(bunch, BunchSpec):
        return bunch
    if isinstance(bunch, Mapping):
        return BunchSpec(**bunch)  # type: ignore[arg-type]
    raise TypeError(f'Expected a BunchSpec or mapping, got {bunch!r}')


def _sum_text(values: Sequence[int], total: int) -> str:
    parts = [str(values[0])]
    for value in values[1:]:
        parts.append(f'- {-value}' if value < 0 else f'+ {value}')
    parts += ['=', str(total)]
    return ' '.join(parts)
