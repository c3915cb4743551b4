from typing import Optional

from .dice import Dice
from .parser import parse
from .roller import Rng

# Left arrow symbol. (Reads better on my terminal.)
ARROW = '⬅'


class Formatter:
    def bold(self, text: object) -> str:
        return str(text)

    def arrow(self) -> str:
        return '<='

    def str(self, text: object) -> str:
        return str(text)


class AnsiFormatter(Formatter):
    def bold(self, text: object) -> str:
        return f"\033[1m{self.str(text)}\033[22m"

    def arrow(self) -> str:
        # Gets an extra space because it's wide in a monospace setting.
        return ARROW + ' '


PLAIN = Formatter()
ANSI = AnsiFormatter()


def create(notation: str, rng: Optional[Rng] = None) -> Dice:
    """Builds dice from notation, e.g. ``create('3d8+5')``."""
    return Dice.from_spec(parse(notation), rng)


def eval_expr(
        notation: str, rng: Optional[Rng] = None, formatter: Formatter = PLAIN,
) -> str:
    dice = create(notation, rng)
    dice.roll()
    return format_roll(dice, formatter)


def format_roll(dice: Dice, fmt: Formatter = PLAIN) -> str:
    return ' '.join([
        fmt.bold(dice.result),
        fmt.arrow(),
        fmt.str(dice.explain()),
    ])


def format_odds(dice: Dice, fmt: Formatter = PLAIN) -> str:
    lines = [
        f'{value:>6}: {probability:8.4%}'
        for value, probability in dice.probabilities
    ]
    lines.append(f'Expected: {fmt.bold(format(dice.probabilities.expected, ".4f"))}')
    if not dice.probabilities_complete:
        lines.append('Rare outcomes of open-ended rerolls are approximated.')
    return '\n'.join(lines)
