"""Lenient JSON for hand-edited manifests.

Manifests may carry ``//`` line comments, ``/* */`` block comments and
trailing commas. ``strip_jsonish`` rewrites such text into strict JSON,
replacing every removed character with a space (newlines are kept) so that
``json`` error positions still point at the original line and column.
"""

import json
from typing import Any, Final


_CODE: Final[int] = 0
_STRING: Final[int] = 1
_STRING_ESCAPE: Final[int] = 2
_LINE_COMMENT: Final[int] = 3
_BLOCK_COMMENT: Final[int] = 4


def _next_significant(text: str, start: int) -> str:
    """Return the first character after ``start`` that is not blank or comment."""
    i, n = start, len(text)
    while i < n:
        char = text[i]
        if char in " \t\r\n":
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            return char
    return ""


def _blank(chunk: str) -> str:
    return "".join("\n" if c == "\n" else " " for c in chunk)


def strip_jsonish(text: str) -> str:
    """Rewrite JSON-ish ``text`` into strict JSON.

    Examples:
        >>> strip_jsonish('[1,]')
        '[1 ]'
        >>> json.loads(strip_jsonish('{"url": "file:///tmp//x", /* c */ "b": [1,],}'))
        {'url': 'file:///tmp//x', 'b': [1]}
    """
    out: list[str] = []
    state = _CODE
    i, n = 0, len(text)

    while i < n:
        char = text[i]

        if state == _STRING:
            out.append(char)
            if char == "\\":
                state = _STRING_ESCAPE
            elif char == '"':
                state = _CODE
            i += 1
        elif state == _STRING_ESCAPE:
            out.append(char)
            state = _STRING
            i += 1
        elif state == _LINE_COMMENT:
            if char == "\n":
                out.append(char)
                state = _CODE
            else:
                out.append(" ")
            i += 1
        elif state == _BLOCK_COMMENT:
            if text.startswith("*/", i):
                out.append("  ")
                state = _CODE
                i += 2
            else:
                out.append(_blank(char))
                i += 1
        elif char == '"':
            out.append(char)
            state = _STRING
            i += 1
        elif text.startswith("//", i):
            out.append("  ")
            state = _LINE_COMMENT
            i += 2
        elif text.startswith("/*", i):
            out.append("  ")
            state = _BLOCK_COMMENT
            i += 2
        elif char == "," and _next_significant(text, i + 1) in ("]", "}"):
            out.append(" ")
            i += 1
        else:
            out.append(char)
            i += 1

    return "".join(out)


def loads_jsonish(text: str) -> Any:
    """Parse JSON-ish text.

    Raises:
        json.JSONDecodeError: If the text is not valid once comments and
            trailing commas are removed
    """
    return json.loads(strip_jsonish(text))


__all__ = ["loads_jsonish", "strip_jsonish"]
