"""Quote-aware scanning helpers shared by the corrector and the strategies."""

from __future__ import annotations

from collections.abc import Callable, Iterator
import re

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}", "]"}

# A double-quoted JSON string literal; raw newlines tolerated.
STRING_LITERAL = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)
_STRUCTURAL = re.compile(r'[{}\[\]"\\]')


def iter_segments(text: str) -> Iterator[tuple[bool, str]]:
    """Yield ``(is_string, chunk)`` pairs covering ``text`` in order.

    An unterminated quote is left inside a non-string chunk.
    """
    pos = 0
    for match in STRING_LITERAL.finditer(text):
        if match.start() > pos:
            yield False, text[pos : match.start()]
        yield True, match.group(0)
        pos = match.end()
    if pos < len(text):
        yield False, text[pos:]


def map_outside_strings(text: str, func: Callable[[str], str]) -> str:
    """Apply ``func`` to every chunk of ``text`` not inside a string literal."""
    return "".join(
        chunk if is_string else func(chunk) for is_string, chunk in iter_segments(text)
    )


def map_inside_strings(text: str, func: Callable[[str], str]) -> str:
    """Apply ``func`` to every string literal (quotes included) in ``text``."""
    return "".join(
        func(chunk) if is_string else chunk for is_string, chunk in iter_segments(text)
    )


def find_balanced_end(text: str, start: int) -> int | None:
    """Return the index just past the bracket matching ``text[start]``.

    Tracks double-quote state and escapes so brackets inside strings are
    ignored. Returns None when the structure never closes (e.g. truncated
    output) or a closer does not match its opener.
    """
    if start >= len(text) or text[start] not in _OPENERS:
        return None
    stack: list[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in _CLOSERS:
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return index + 1
    return None


def iter_balanced_spans(text: str, limit: int = 64) -> Iterator[tuple[int, int]]:
    """Yield up to ``limit`` balanced top-level ``{...}``/``[...]`` spans.

    One pass over ``text``. When a structure never closes, or a closer does
    not match, its complete inner spans are yielded instead and the scan
    carries on from there.
    """
    opened: list[int] = []
    pending: list[tuple[int, int]] = []
    yielded = 0
    for kind, index in _iter_structure(text):
        if kind == "open":
            opened.append(index)
            continue
        if kind == "broken":
            ready, pending = pending, []
            opened.clear()
        else:
            start = opened.pop()
            while pending and pending[-1][0] > start:
                pending.pop()
            if opened:
                pending.append((start, index + 1))
                continue
            ready = [(start, index + 1)]
        for span in ready:
            yield span
            yielded += 1
            if yielded >= limit:
                return
    for span in pending[: limit - yielded]:
        yield span


def enclosing_spans(
    text: str, position: int, limit: int = 64
) -> list[tuple[int, int]]:
    """Balanced ``{...}`` spans still open at ``position``, innermost first."""
    opened: list[int] = []
    watched: list[int] | None = None
    watched_set: set[int] = set()
    ends: dict[int, int] = {}
    for kind, index in _iter_structure(text):
        if watched is None and index >= position:
            watched = [i for i in opened if text[i] == "{"][-limit:]
            if not watched:
                return []
            watched_set = set(watched)
        if kind == "open":
            opened.append(index)
        elif kind == "close":
            start = opened.pop()
            if watched is not None and start in watched_set:
                ends[start] = index + 1
                if len(ends) == len(watched_set):
                    break
        else:
            opened.clear()
            if watched is not None:
                break
    return [(start, ends[start]) for start in reversed(watched or []) if start in ends]


def first_opener(text: str) -> int | None:
    """Index of the first ``{`` or ``[`` in ``text``."""
    return _next_opener(text, 0)


def _next_opener(text: str, pos: int) -> int | None:
    indices = [i for i in (text.find("{", pos), text.find("[", pos)) if i != -1]
    return min(indices) if indices else None


def _iter_structure(text: str) -> Iterator[tuple[str, int]]:
    """Yield ``("open" | "close" | "broken", index)`` bracket events.

    Quotes are only tracked inside a structure, so a stray quote in prose
    cannot hide the brackets after it. A mismatched closer breaks the open
    structure and the scan restarts at depth zero.
    """
    expected: list[str] = []
    in_string = False
    skip_to = 0
    for match in _STRUCTURAL.finditer(text):
        index = match.start()
        if index < skip_to:
            continue
        ch = match.group()
        if in_string:
            if ch == "\\":
                skip_to = index + 2
            elif ch == '"':
                in_string = False
            continue
        if ch in _OPENERS:
            expected.append(_OPENERS[ch])
            yield "open", index
        elif ch in _CLOSERS:
            if not expected:
                continue
            if expected.pop() == ch:
                yield "close", index
            else:
                expected.clear()
                yield "broken", index
        elif ch == '"' and expected:
            in_string = True
