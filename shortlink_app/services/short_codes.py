"""
Sequential short codes over a 62-symbol alphabet.

Codes are ordered by symbol position: digits, then lowercase, then uppercase
(the same ordering Base62 uses for digit values). The first code is "0000" and
every later code is the successor of the previous one, so a counter of issued
links is all the state needed to produce the next code.
"""

BASE62_CHARS = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
SEED_CODE = BASE62_CHARS[0] * 4

_NEXT_CHAR = dict(zip(BASE62_CHARS, BASE62_CHARS[1:]))
_FIRST = BASE62_CHARS[0]
_LAST = BASE62_CHARS[-1]


def successor(code: str) -> str:
    """
    Return the code that follows ``code``.

    Scanning from the right, a trailing 'Z' wraps to '0' and carries into the
    next position; any other symbol advances by one and the scan stops. When
    every position carries ("ZZZZ"), a leading '0' is prepended, so the result
    is one character longer ("00000").

    Raises:
        ValueError: if ``code`` is empty or contains a symbol outside the alphabet
    """
    if not is_valid_code(code):
        raise ValueError(f"Invalid short code {code!r}")

    chars = list(code)
    for position in range(len(chars) - 1, -1, -1):
        if chars[position] == _LAST:
            chars[position] = _FIRST
            continue
        chars[position] = _NEXT_CHAR[chars[position]]
        return "".join(chars)

    return _FIRST + "".join(chars)


def is_valid_code(code: str) -> bool:
    """True when ``code`` is non-empty and uses only alphabet symbols."""
    return bool(code) and all(char in BASE62_CHARS for char in code)
