"""Wildcard pattern translation."""

_WILDCARDS = str.maketrans({"?": "_", "*": "%"})


def translate(pattern: str) -> str:
    """Convert a ``?``/``*`` wildcard pattern into a SQL LIKE pattern.

    ``?`` matches exactly one character and ``*`` matches any run of
    characters. Everything else is passed through as is, so a literal
    ``%`` or ``_`` in the pattern still acts as a LIKE wildcard. Callers
    that need those characters matched literally must avoid them in keys.
    """
    return pattern.translate(_WILDCARDS)
