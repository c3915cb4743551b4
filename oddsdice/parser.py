import inspect
import re
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from typing_extensions import Self, TypeAlias

from .exceptions import DiceSyntaxError, TokenizeError
from .rules import Effect, KeepMode, Operator

RerollSpec: TypeAlias = tuple
MapSpec: TypeAlias = tuple

# The notation reads "die value OP number", while rules are evaluated as
# "number OP die value", so each comparison flips.
NOTATION_OPERATORS = {
    '==': Operator.EQ,
    '>=': Operator.LE,
    '>': Operator.LT,
    '<=': Operator.GE,
    '<': Operator.GT,
}
COMPARISON = r'(>=|<=|==|>|<)?'


@dataclass
class BunchSpec:
    ndice: int
    sides: int
    multiplier: int = 1
    rerolls: Optional[list[RerollSpec]] = None
    maps: Optional[list[MapSpec]] = None
    keep_mode: Optional[KeepMode] = None
    keep_number: Optional[int] = None

    def as_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            'ndice': self.ndice,
            'sides': self.sides,
            'multiplier': self.multiplier,
        }
        for key in ('rerolls', 'maps', 'keep_mode', 'keep_number'):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


@dataclass
class RollSpec:
    bunches: list[BunchSpec] = field(default_factory=list)
    offset: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            'bunches': [bunch.as_dict() for bunch in self.bunches],
            'offset': self.offset,
        }


class TokenMeta(ABCMeta):
    match_regexes: list[str] = []

    def __new__(
            metacls, name: str, bases: tuple[type, ...], namespace: dict[str, object],
            **kwargs: object
    ) -> type:
        return super().__new__(metacls, name, bases, namespace)

    def __init__(
            cls, name: str, bases: tuple[type, ...], namespace: dict[str, object],
            match: Optional[str] = None,
    ) -> None:
        super().__init__(name, bases, namespace)
        if match is None and not (
            inspect.isabstract(cls)
            or cls.has_regex()
        ):
            raise TypeError("Token classes must have a regex matcher.")
        elif match is not None:
            TokenMeta.match_regexes.append(match)
            cls._regex = re.compile(f"^{match}$", re.IGNORECASE)

    def has_regex(cls) -> bool:
        try:
            cls._regex
            return True
        except AttributeError:
            return False


class BaseToken(metaclass=TokenMeta):
    @classmethod
    def match(cls, token_str: str) -> Optional[Self]:
        try:
            return cls.from_str(token_str)
        except ValueError:
            return None

    @classmethod
    def parse(cls, token_str: str) -> Optional[re.Match[str]]:
        return cls._regex.match(token_str)

    @classmethod
    @abstractmethod
    def from_str(cls, token_str: str) -> Self:
        ...


class Token(BaseToken, match=r"\S"):
    ADD: ClassVar['Token']
    SUB: ClassVar['Token']

    def __init__(self, token_str: str):
        self.token_str = token_str

    def __str__(self) -> str:
        return self.token_str

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.token_str!r})'

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Token):
            return False
        return type(self) is type(other) and self.token_str == other.token_str

    def __hash__(self) -> int:
        return hash((type(self), self.token_str))

    @classmethod
    def from_str(cls, token_str: str) -> 'Token':
        if token_str == '+':
            return Token.ADD
        elif token_str == '-':
            return Token.SUB

        for token_type in cls.__subclasses__():
            if match := token_type.match(token_str):
                return match

        raise ValueError(f'Unknown token {token_str!r}')


Token.ADD = Token('+')
Token.SUB = Token('-')


class Constant(Token, match=r'\d+'):
    def __init__(self, value: int):
        super().__init__(str(value))
        self.value = value

    @classmethod
    def from_str(cls, token_str: str) -> 'Constant':
        if cls.parse(token_str):
            return Constant(int(token_str))
        raise ValueError(f'Invalid numeric syntax {token_str!r}')


class Dice(Token, match=r'(\d+)d(\d+)'):
    def __init__(self, count: int, sides: int):
        super().__init__(f'{count}d{sides}')
        self.count = count
        self.sides = sides

    @classmethod
    def from_str(cls, token_str: str) -> 'Dice':
        if match := cls.parse(token_str):
            count: str = match.group(1)
            sides: str = match.group(2)
            return Dice(int(count), int(sides))
        raise ValueError(f'Invalid dice syntax {token_str!r}')


class Modifier(Token, match=r'([xrkm])(\d*)\.?'):
    """Single-letter modifiers: ``x``, ``rN``, ``kN`` and ``mN``."""

    @classmethod
    def from_str(cls, token_str: str) -> 'Modifier':
        if match := cls.parse(token_str):
            letter: str = match.group(1).lower()
            digits: str = match.group(2)
            if letter == 'x' and not digits:
                return Explode()
            if letter != 'x' and digits:
                return {
                    'r': RerollAtMost,
                    'k': KeepBest,
                    'm': SuccessAtLeast,
                }[letter](int(digits))
        raise ValueError(f'Invalid modifier syntax {token_str!r}')


class Explode(Modifier):
    def __init__(self) -> None:
        super().__init__('x')


class RerollAtMost(Modifier):
    def __init__(self, threshold: int):
        super().__init__(f'r{threshold}')
        self.threshold = threshold


class KeepBest(Modifier):
    def __init__(self, count: int):
        super().__init__(f'k{count}')
        self.count = count


class SuccessAtLeast(Modifier):
    def __init__(self, threshold: int):
        super().__init__(f'm{threshold}')
        self.threshold = threshold


class VerboseModifier(Token, match=r'[rmk]:[^\s.]*\.'):
    """Modifiers spelled out as ``r:...``, ``m:...`` or ``k:...`` up to a full stop."""

    @classmethod
    def from_str(cls, token_str: str) -> 'VerboseModifier':
        if cls.parse(token_str):
            return {
                'r': Reroll,
                'm': Map,
                'k': Keep,
            }[token_str[0].lower()].from_verbose(token_str)
        raise ValueError(f'Invalid modifier syntax {token_str!r}')


class Reroll(VerboseModifier):
    REROLL_RE = re.compile(
        rf'^r:{COMPARISON}(\d+)(?:,([a-z_]+)(?:,(\d+))?)?\.$', re.IGNORECASE
    )

    def __init__(
            self, value: int, oper: Operator, effect: Effect,
            limit: Optional[int] = None,
    ):
        limit_str = '' if limit is None else f',{limit}'
        super().__init__(f'r:{oper.tag}{value},{effect.value}{limit_str}.')
        self.value = value
        self.oper = oper
        self.effect = effect
        self.limit = limit

    @property
    def rule(self) -> RerollSpec:
        if self.limit is None:
            return (self.value, self.oper, self.effect)
        return (self.value, self.oper, self.effect, self.limit)

    @classmethod
    def from_verbose(cls, token_str: str) -> 'Reroll':
        if match := cls.REROLL_RE.match(token_str):
            comparison: Optional[str] = match.group(1)
            value: str = match.group(2)
            effect: Optional[str] = match.group(3)
            limit: Optional[str] = match.group(4)
            return Reroll(
                int(value),
                NOTATION_OPERATORS[comparison or '=='],
                Effect.coerce(effect or 'replace'),
                int(limit) if limit else None,
            )
        raise ValueError(f'Invalid reroll syntax {token_str!r}')


class Map(VerboseModifier):
    MAP_RE = re.compile(
        rf'^m:{COMPARISON}(\d+)(?:,([+-]?\d+)(?:,([a-z0-9_]+))?)?\.$', re.IGNORECASE
    )

    def __init__(
            self, value: int, oper: Operator, mapped_value: int = 1,
            label: Optional[str] = None,
    ):
        label_str = '' if label is None else f',{label}'
        super().__init__(f'm:{oper.tag}{value},{mapped_value}{label_str}.')
        self.value = value
        self.oper = oper
        self.mapped_value = mapped_value
        self.label = label

    @property
    def rule(self) -> MapSpec:
        if self.label is None:
            return (self.value, self.oper, self.mapped_value)
        return (self.value, self.oper, self.mapped_value, self.label)

    @classmethod
    def from_verbose(cls, token_str: str) -> 'Map':
        if match := cls.MAP_RE.match(token_str):
            comparison: Optional[str] = match.group(1)
            value: str = match.group(2)
            mapped_value: Optional[str] = match.group(3)
            label: Optional[str] = match.group(4)
            return Map(
                int(value),
                NOTATION_OPERATORS[comparison or '=='],
                int(mapped_value) if mapped_value else 1,
                label,
            )
        raise ValueError(f'Invalid map syntax {token_str!r}')


class Keep(VerboseModifier):
    KEEP_RE = re.compile(r'^k:(\d+)(?:,(best|worst))?\.$', re.IGNORECASE)

    def __init__(self, count: int, mode: KeepMode = KeepMode.BEST):
        super().__init__(f'k:{count},{mode.value}.')
        self.count = count
        self.mode = mode

    @classmethod
    def from_verbose(cls, token_str: str) -> 'Keep':
        if match := cls.KEEP_RE.match(token_str):
            count: str = match.group(1)
            mode: Optional[str] = match.group(2)
            return Keep(int(count), KeepMode.coerce(mode or 'best'))
        raise ValueError(f'Invalid keep syntax {token_str!r}')


# Reversing because more specific regexes follow less specific ones. This
# ensures we test from most to least specific.
TOKENIZER = re.compile('|'.join(reversed(TokenMeta.match_regexes)), re.IGNORECASE)


def tokenize(expression: str) -> list[Token]:
    matches = (match.group(0) for match in TOKENIZER.finditer(expression))
    try:
        return list(map(Token.from_str, matches))
    except ValueError as exc:
        raise TokenizeError(str(exc)) from exc


def apply_modifier(bunch: BunchSpec, modifier: Token) -> None:
    if isinstance(modifier, Explode):
        _add_reroll(bunch, (bunch.sides, Operator.EQ, Effect.ADD))
    elif isinstance(modifier, RerollAtMost):
        _add_reroll(bunch, (modifier.threshold, Operator.GE, Effect.REPLACE, 1))
    elif isinstance(modifier, Reroll):
        _add_reroll(bunch, modifier.rule)
    elif isinstance(modifier, SuccessAtLeast):
        _add_map(bunch, (modifier.threshold, Operator.LE, 1))
    elif isinstance(modifier, Map):
        _add_map(bunch, modifier.rule)
    elif isinstance(modifier, KeepBest):
        _set_keep(bunch, KeepMode.BEST, modifier.count)
    elif isinstance(modifier, Keep):
        _set_keep(bunch, modifier.mode, modifier.count)
    else:
        raise ValueError(f'Unhandled modifier {modifier!r}')


def _add_reroll(bunch: BunchSpec, rule: RerollSpec) -> None:
    bunch.rerolls = (bunch.rerolls or []) + [rule]


def _add_map(bunch: BunchSpec, rule: MapSpec) -> None:
    bunch.maps = (bunch.maps or []) + [rule]


def _set_keep(bunch: BunchSpec, mode: KeepMode, count: int) -> None:
    if bunch.keep_mode is not None:
        raise DiceSyntaxError('Cannot set keepers for a bunch twice')
    bunch.keep_mode = mode
    bunch.keep_number = count


def parse(notation: str) -> RollSpec:
    """Converts dice notation such as ``'3d6+2'`` into a ``RollSpec``.

    Raises ``DiceSyntaxError`` naming the first fragment that cannot be read.
    """
    tokens = tokenize(notation)
    spec = RollSpec()
    sign: Optional[int] = None
    current: Optional[BunchSpec] = None
    seen_term = False

    for token in tokens:
        if token is Token.ADD or token is Token.SUB:
            if sign is not None:
                raise DiceSyntaxError(f'Unexpected "{token}" after another sign')
            sign = 1 if token is Token.ADD else -1
            current = None
        elif isinstance(token, (Dice, Constant)):
            if sign is None and seen_term:
                raise DiceSyntaxError(f'Missing + or - before "{token}"')
            seen_term = True
            multiplier = sign or 1
            if isinstance(token, Dice):
                current = BunchSpec(token.count, token.sides, multiplier)
                spec.bunches.append(current)
            else:
                current = None
                spec.offset += multiplier * token.value
            sign = None
        elif isinstance(token, (Modifier, VerboseModifier)):
            if current is None:
                raise DiceSyntaxError(f'"{token}" modifier must follow dice')
            apply_modifier(current, token)
        else:
            raise DiceSyntaxError(f'Illegal token "{token}"')

    if not tokens:
        raise DiceSyntaxError('No dice or numbers to parse')
    if sign is not None:
        raise DiceSyntaxError('Dice notation cannot end with a sign')
    return spec
