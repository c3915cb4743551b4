from typing import Optional, SupportsInt, Union

from .rules import Effect


def apply_roll(
        total: Optional[int], roll: int, effect: Effect, subtracting: bool
) -> tuple[int, Effect, bool]:
    """Combines a new roll with the running total of a die.

    Returns the new total, the effect as actually applied, and whether later
    additions now subtract instead.
    """
    if subtracting and effect is Effect.ADD:
        effect = Effect.SUBTRACT
    if total is None or effect in (Effect.BASIC, Effect.REPLACE):
        return roll, effect, subtracting
    if effect is Effect.ADD:
        return total + roll, effect, subtracting
    if effect is Effect.SUBTRACT:
        return total - roll, effect, True
    if effect is Effect.USE_BEST:
        return max(total, roll), effect, subtracting
    return min(total, roll), effect, subtracting


class DieResult:
    """The rolls that made up one result of a die, and how they combined.

    >>> result = DieResult(6)
    >>> result.add_roll(3, Effect.ADD)
    9
    >>> result.explain_value()
    '[6+3] 9'
    """

    def __init__(
            self, first_roll: Optional[int] = None,
            first_reason: Union[Effect, str] = Effect.BASIC,
    ):
        self.rolls: list[int] = []
        self.roll_reasons: list[Effect] = []
        self.total: Optional[int] = None
        self.value: Optional[int] = None
        self.mapped = False
        self.map_label = ''
        self._subtracting = False
        if first_roll is not None:
            self.add_roll(first_roll, first_reason)

    def add_roll(self, roll: int, reason: Union[Effect, str] = Effect.BASIC) -> int:
        self.total, applied, self._subtracting = apply_roll(
            self.total, int(roll), Effect.coerce(reason), self._subtracting
        )
        self.rolls.append(int(roll))
        self.roll_reasons.append(applied)
        self.mapped = False
        self.map_label = ''
        self.value = self.total
        return self.total

    def apply_map(self, value: int, label: str = '') -> None:
        self.mapped = True
        self.value = value
        self.map_label = label

    def explain_value(self) -> str:
        if len(self.rolls) < 2:
            text = str(self.total)
        else:
            steps = ''.join(
                f'{reason.symbol}{roll}'
                for roll, reason in zip(self.rolls[1:], self.roll_reasons[1:])
            )
            text = f'[{self.rolls[0]}{steps}] {self.total}'
        return text + self._label_suffix()

    def explain_total(self) -> str:
        return str(self.total) + self._label_suffix()

    def _label_suffix(self) -> str:
        if self.mapped and self.map_label:
            return f' {self.map_label}'
        return ''

    def __int__(self) -> int:
        return int(self.value or 0)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SupportsInt):
            return NotImplemented
        return int(self) < int(other)

    def __repr__(self) -> str:
        return f'DieResult(rolls={self.rolls!r}, total={self.total}, value={self.value})'
