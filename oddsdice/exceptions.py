class DiceError(Exception):
    pass


class ConstructionError(DiceError, ValueError):
    """Raised when dice or rules are built from invalid parameters."""


class DiceSyntaxError(DiceError, ValueError):
    pass


class TokenizeError(DiceSyntaxError):
    pass


class ResourceLimitError(DiceError):
    """Raised when a distribution would grow past the outcome ceiling."""
