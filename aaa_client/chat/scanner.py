"""Balanced-brace scanner for JSON objects embedded in free-form text.

The chat backend writes control objects inline with prose, without a length
prefix or delimiter. The only framing is brace balance, so the scanner walks
characters with a small state machine:

    NORMAL     braces change depth, ``"`` enters IN_STRING
    IN_STRING  braces are inert, ``"`` returns to NORMAL
    ESCAPED    the next character is consumed verbatim, then the scanner
               returns to whichever state it escaped from

The result is only *structurally* balanced. Whether it parses as JSON is the
caller's problem.
"""

from __future__ import annotations

import enum
from typing import Iterable, NamedTuple


class _State(enum.Enum):
    NORMAL = "normal"
    IN_STRING = "in_string"
    ESCAPED = "escaped"


class ScanResult(NamedTuple):
    """A balanced ``{...}`` span and the text around it."""

    json: str
    rest: str
    prefix: str = ""


def find_balanced_end(chars: Iterable[str]) -> int | None:
    """Return the offset of the brace closing the object that ``chars`` opens.

    ``chars`` must start at an opening ``{``. Returns ``None`` when the input
    runs out before the depth returns to zero.
    """
    state = _State.NORMAL
    resume = _State.NORMAL
    depth = 0

    for offset, ch in enumerate(chars):
        if state is _State.ESCAPED:
            state = resume
            continue

        if ch == "\\":
            resume = state
            state = _State.ESCAPED
            continue

        if ch == '"':
            state = _State.NORMAL if state is _State.IN_STRING else _State.IN_STRING
            continue

        if state is _State.IN_STRING:
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1

        if depth == 0:
            return offset

    return None


def scan_json_prefix(text: str) -> ScanResult | None:
    """Find the first balanced ``{...}`` object in ``text``.

    >>> scan_json_prefix('hello {"a":"}"} world')
    ScanResult(json='{"a":"}"}', rest=' world', prefix='hello ')

    Returns ``None`` when there is no ``{`` or the object is never closed.
    Partial objects are not buffered; the caller treats the text as literal.
    """
    start = text.find("{")
    if start == -1:
        return None

    end = find_balanced_end(text[start:])
    if end is None:
        return None

    stop = start + end + 1
    return ScanResult(json=text[start:stop], rest=text[stop:], prefix=text[:start])
