import re
import readline
import sys
from typing import Optional

from .exceptions import DiceError
from .oddsdice import ANSI, create, eval_expr, format_odds

ODDS_FLAG = '--odds'
ODDS_PREFIX = '?'
DIE_SIZES = [4, 6, 8, 10, 12, 20, 100]
BUNCH_RE = re.compile(r'(\d+)d(\d*)([xkrm]\d*)?$', re.IGNORECASE)


def modifier_cycle(ndice: int, sides: int) -> list[str]:
    return ['x', f'k{max(ndice - 1, 1)}', 'r1', f'm{sides}']


def next_bunch(text: str) -> Optional[str]:
    """Steps a bunch through die sizes, or through its modifiers once it has one.

    ``'4d6'`` becomes ``'4d8'``, while ``'4d6k'`` becomes ``'4d6k3'`` and then
    ``'4d6r1'``.
    """
    match = BUNCH_RE.match(text.lower())
    if not match:
        return None
    count: str = match.group(1)
    sides: str = match.group(2)
    modifier: Optional[str] = match.group(3)

    if not modifier:
        if not sides or int(sides) not in DIE_SIZES:
            return f'{count}d{DIE_SIZES[0]}'
        next_idx = (DIE_SIZES.index(int(sides)) + 1) % len(DIE_SIZES)
        return f'{count}d{DIE_SIZES[next_idx]}'
    if not sides:
        return None

    cycle = modifier_cycle(int(count), int(sides))
    idx = [option[0] for option in cycle].index(modifier[0])
    if modifier != cycle[idx]:
        return f'{count}d{sides}{cycle[idx]}'
    return f'{count}d{sides}{cycle[(idx + 1) % len(cycle)]}'


def completion(text: str, state: int) -> Optional[str]:
    if state > 0:
        return None
    if text:
        return next_bunch(text)

    line = readline.get_line_buffer().strip()
    if not line:
        return '1d20'
    if line[-1] in '+-':
        return '1d6'
    return '+ 1d6'


def evaluate_line(line: str) -> str:
    if line.startswith(ODDS_PREFIX):
        return format_odds(create(line[len(ODDS_PREFIX):]), ANSI)
    return eval_expr(line, formatter=ANSI)


def repl() -> None:
    readline.parse_and_bind('tab: complete')
    readline.parse_and_bind('complete -o nosort')
    readline.set_completer(completion)
    try:
        while 'exit' not in (line := input().strip().lower()):
            if not line:
                continue
            try:
                print(evaluate_line(line))
            except DiceError as exc:
                print(f'Error: {exc}')
    except (KeyboardInterrupt, EOFError):
        pass


def main() -> None:
    args = sys.argv[1:]
    odds = ODDS_FLAG in args
    if arg_expression := ' '.join(arg for arg in args if arg != ODDS_FLAG).strip():
        try:
            if odds:
                print(format_odds(create(arg_expression)))
            else:
                print(eval_expr(arg_expression))
        except DiceError as exc:
            sys.exit(f'Error: {exc}')
    else:
        repl()


if __name__ == '__main__':
    main()
