import operator
from dataclasses import dataclass
from enum import Enum
from numbers import Integral
from typing import Callable, Optional, Sequence, Union, cast

from typing_extensions import TypeAlias

from .exceptions import ConstructionError

Comparator: TypeAlias = Callable[[object, object], bool]
TriggerValue: TypeAlias = Union[int, range]

# Arbitrary cap on repeats of a single reroll rule. It should be larger than
# anything seen in real-world tabletop games.
MAX_REROLLS = 1000


class Operator(Enum):
    """Comparison applied as ``operator(trigger_value, die_value)``.

    Note the order: ``Operator.LE`` with a trigger value of 10 matches die
    values of 10 or more, because it asks whether ``10 <= value``.
    """
    EQ = "=="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    IN = "in"

    def __call__(self, left: object, right: object) -> bool:
        return _COMPARATORS[self](left, right)

    @property
    def tag(self) -> str:
        if self is Operator.IN:
            return 'range-member'
        return self.name.lower()

    def accepts(self, trigger_value: object) -> bool:
        if self is Operator.IN:
            return isinstance(trigger_value, range)
        return isinstance(trigger_value, int) and not isinstance(trigger_value, bool)

    @classmethod
    def coerce(cls, oper: Union['Operator', str]) -> 'Operator':
        if isinstance(oper, Operator):
            return oper
        if isinstance(oper, str):
            for member in cls:
                if oper in (member.value, member.tag):
                    return member
        raise ConstructionError(f'Unrecognised trigger operator {oper!r}')


def _range_member(trigger: object, value: object) -> bool:
    return value in cast(range, trigger)


_COMPARATORS: dict[Operator, Comparator] = {
    Operator.EQ: cast(Comparator, operator.eq),
    Operator.NE: cast(Comparator, operator.ne),
    Operator.GT: cast(Comparator, operator.gt),
    Operator.GE: cast(Comparator, operator.ge),
    Operator.LT: cast(Comparator, operator.lt),
    Operator.LE: cast(Comparator, operator.le),
    Operator.IN: _range_member,
}


class Effect(Enum):
    """Reason for a roll of a die, and how it combines with the total so far."""
    BASIC = 'basic'
    ADD = 'add'
    SUBTRACT = 'subtract'
    REPLACE = 'replace'
    USE_BEST = 'use_best'
    USE_WORST = 'use_worst'

    @property
    def symbol(self) -> str:
        return _EFFECT_SYMBOLS[self]

    @classmethod
    def coerce(cls, effect: Union['Effect', str]) -> 'Effect':
        if isinstance(effect, Effect):
            return effect
        if isinstance(effect, str):
            try:
                return cls(effect.lower())
            except ValueError:
                pass
        raise ConstructionError(f'Unrecognised reroll effect {effect!r}')


_EFFECT_SYMBOLS = {
    Effect.BASIC: ',',
    Effect.ADD: '+',
    Effect.SUBTRACT: '-',
    Effect.REPLACE: '|',
    Effect.USE_BEST: '/',
    Effect.USE_WORST: '\\',
}


def _checked_operator(trigger_value: object, oper: Union[Operator, str]) -> Operator:
    checked = Operator.coerce(oper)
    if not checked.accepts(trigger_value):
        raise ConstructionError(
            f'Trigger value {trigger_value!r} cannot be used with operator {checked.tag}'
        )
    return checked


@dataclass(frozen=True)
class RerollRule:
    """A rule such as "re-roll a result of 1 and use the new value".

    ``RerollRule(6, 'le', 'add')`` makes a six-sided die explode on a 6.
    """
    trigger_value: TriggerValue
    trigger_operator: Operator
    effect: Effect
    limit: int = MAX_REROLLS

    def __post_init__(self) -> None:
        oper = _checked_operator(self.trigger_value, self.trigger_operator)
        effect = Effect.coerce(self.effect)
        if effect is Effect.BASIC:
            raise ConstructionError('A reroll rule needs an effect other than basic')
        limit = MAX_REROLLS if self.limit is None else self.limit
        if isinstance(limit, bool) or not isinstance(limit, Integral):
            raise TypeError(f'Reroll limit must be an integer, got {limit!r}')
        if limit < 1:
            raise ConstructionError(f'Reroll limit must be 1 or more, got {limit}')
        if effect is Effect.SUBTRACT:
            limit = 1
        object.__setattr__(self, 'trigger_operator', oper)
        object.__setattr__(self, 'effect', effect)
        object.__setattr__(self, 'limit', int(limit))

    def applies(self, value: int) -> bool:
        return bool(self.trigger_operator(self.trigger_value, value))

    @classmethod
    def coerce(cls, rule: Union['RerollRule', Sequence[object]]) -> 'RerollRule':
        if isinstance(rule, RerollRule):
            return rule
        if isinstance(rule, (tuple, list)):
            return cls(*rule)
        raise TypeError(f'Expected a RerollRule or tuple, got {rule!r}')


@dataclass(frozen=True)
class MapRule:
    """Converts a die total into a game value, e.g. counting successes."""
    trigger_value: TriggerValue
    trigger_operator: Operator
    mapped_value: int = 0
    mapped_label: str = ''

    def __post_init__(self) -> None:
        oper = _checked_operator(self.trigger_value, self.trigger_operator)
        if isinstance(self.mapped_value, bool) or not isinstance(self.mapped_value, Integral):
            raise TypeError(f'Mapped value must be an integer, got {self.mapped_value!r}')
        object.__setattr__(self, 'trigger_operator', oper)
        object.__setattr__(self, 'mapped_value', int(self.mapped_value))
        object.__setattr__(self, 'mapped_label', str(self.mapped_label or ''))

    def map_from(self, value: int) -> Optional[int]:
        if self.trigger_operator(self.trigger_value, value):
            return self.mapped_value
        return None

    @classmethod
    def coerce(cls, rule: Union['MapRule', Sequence[object]]) -> 'MapRule':
        if isinstance(rule, MapRule):
            return rule
        if isinstance(rule, (tuple, list)):
            return cls(*rule)
        raise TypeError(f'Expected a MapRule or tuple, got {rule!r}')


class KeepMode(Enum):
    BEST = 'best'
    WORST = 'worst'

    @classmethod
    def coerce(cls, mode: Union['KeepMode', str]) -> 'KeepMode':
        if isinstance(mode, KeepMode):
            return mode
        if isinstance(mode, str):
            name = mode.lower()
            if name.startswith('keep_'):
                name = name[len('keep_'):]
            try:
                return cls(name)
            except ValueError:
                pass
        raise ConstructionError(f'Keep mode can be best or worst, got {mode!r}')
