import sys

import pytest

from oddsdice.__main__ import completion, evaluate_line, main, next_bunch
from oddsdice.dice import Dice
from oddsdice.exceptions import ConstructionError, DiceSyntaxError
from oddsdice.oddsdice import ANSI, create, eval_expr, format_odds


def high_rng(sides: int) -> int:
    return sides - 1


def mid_rng(sides: int) -> int:
    return sides // 2


def low_rng(sides: int) -> int:
    return 0


@pytest.mark.parametrize(
    'input,output',
    [
        ('2d20', '40 <= 2d20: 20 + 20 = 40'),
        ('4d6k3', '18 <= 4d6: 6, 6, 6, 6. Keep: 6 + 6 + 6 = 18'),
        ('3d10m8', '3 <= 3d10: 10, 10, 10. Successes: 3'),
        ('1d20 + 1d4 - 2', '22 <= 1d20: 20. 1d4: 4. 20 + 4 - 2 = 22'),
    ],
)
def test_eval_expr_high_rolls(input, output):
    result = eval_expr(input, rng=high_rng)
    assert result == output


@pytest.mark.parametrize(
    'input,output',
    [
        ('2d6+3', '11 <= 2d6: 4 + 4 = 8. 8 + 3 = 11'),
        ('2d20k:1,worst.', '11 <= 2d20: 11, 11. Keep: 11'),
        ('5', '5 <= 5'),
    ],
)
def test_eval_expr_mid_rolls(input, output):
    result = eval_expr(input, rng=mid_rng)
    assert result == output


@pytest.mark.parametrize(
    'input,output',
    [
        ('1d20', '1 <= 1d20: 1'),
        ('2d6-1d4', '1 <= 2d6: 1 + 1 = 2. 1d4: 1. 2 - 1 = 1'),
        ('1d10r:1,add,1.', '2 <= 1d10: [1+1] 2'),
        ('1d10r:<=2,subtract.', '0 <= 1d10: [1-1] 0'),
    ],
)
def test_eval_expr_low_rolls(input, output):
    result = eval_expr(input, rng=low_rng)
    assert result == output


def test_eval_expr_ansi():
    result = eval_expr('1d6', rng=low_rng, formatter=ANSI)
    assert result == '\033[1m1\033[22m ⬅  1d6: 1'


def test_create():
    dice = create('3d6')
    assert isinstance(dice, Dice)
    assert dice.probabilities.p_eql(3) == pytest.approx(1 / 216)
    assert dice.minmax == (3, 18)


def test_create_huge_die():
    dice = create('1d200000 + 1', rng=high_rng)
    assert dice.roll() == 200_001
    assert dice.minmax == (2, 200_001)


@pytest.mark.parametrize(
    'input,error',
    [
        ('0d6', ConstructionError),
        ('2d0', ConstructionError),
        ('4d6k0', ConstructionError),
        ('2d6+', DiceSyntaxError),
        ('2d6 % 3', DiceSyntaxError),
    ],
)
def test_create_errors(input, error):
    with pytest.raises(error):
        create(input)


def test_format_odds():
    lines = format_odds(create('1d4')).splitlines()
    assert lines == [
        '     1: 25.0000%',
        '     2: 25.0000%',
        '     3: 25.0000%',
        '     4: 25.0000%',
        'Expected: 2.5000',
    ]


def test_format_odds_approximated():
    text = format_odds(create('1d6x'))
    assert text.splitlines()[-2] == 'Expected: 4.2000'
    assert 'approximated' in text.splitlines()[-1]


def test_evaluate_line_odds():
    assert evaluate_line('?1d2').splitlines()[0] == '     1: 50.0000%'


def test_main_odds(monkeypatch, capsys):
    monkeypatch.setattr(sys, 'argv', ['oddsdice', '--odds', '1d2'])
    main()
    out = capsys.readouterr().out
    assert out == '     1: 50.0000%\n     2: 50.0000%\nExpected: 1.5000\n'


def test_main_roll(monkeypatch, capsys):
    monkeypatch.setattr(sys, 'argv', ['oddsdice', '1d1', '+', '2'])
    main()
    assert capsys.readouterr().out == '3 <= 1d1: 1. 1 + 2 = 3\n'


def test_main_error(monkeypatch):
    monkeypatch.setattr(sys, 'argv', ['oddsdice', '1d6+'])
    with pytest.raises(SystemExit):
        main()


@pytest.mark.parametrize(
    'text,expected',
    [
        ('2d', '2d4'),
        ('2d6', '2d8'),
        ('1d100', '1d4'),
        ('3d7', '3d4'),
        ('4d6k', '4d6k3'),
        ('4D6K', '4d6k3'),
        ('4d6k3', '4d6r1'),
        ('4d6r1', '4d6m6'),
        ('4d6m6', '4d6x'),
        ('4d6x', '4d6k3'),
        ('1d20k', '1d20k1'),
        ('5d7m', '5d7m7'),
        ('2dk', None),
        ('k3', None),
    ],
)
def test_next_bunch(text, expected):
    assert next_bunch(text) == expected


@pytest.mark.parametrize(
    'line,expected',
    [
        ('', '1d20'),
        ('2d6 +', '1d6'),
        ('2d6', '+ 1d6'),
    ],
)
def test_completion_after_line(monkeypatch, line, expected):
    monkeypatch.setattr('readline.get_line_buffer', lambda: line)
    assert completion('', 0) == expected
    assert completion('', 1) is None


def test_completion_steps_current_bunch():
    assert completion('4d6k3', 0) == '4d6r1'
