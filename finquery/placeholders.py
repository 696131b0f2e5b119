"""Scanner for ``PLACEHOLDER(kind, search text)`` tokens in synthesized SQL.

The model is told never to compare embeddings itself and to emit a
placeholder instead. Tokens are located by a single left-to-right scan:

    PLACEHOLDER ( kind , search text )

- the marker is matched case-insensitively on an identifier boundary
- markers inside SQL string literals are ignored
- the argument list ends at the balancing ``)``; parentheses inside quotes
  do not count
- a quote only opens a quoted argument when it is the argument's first
  non-space character; elsewhere (``McDonald's``) it is plain text
- arguments split on the first comma that is not escaped (``\\,``), not
  quoted and not nested
"""

import re

from finquery.errors import PlaceholderParseError
from finquery.models import Placeholder, PlaceholderKind

MARKER = "PLACEHOLDER"

_NON_ALPHA = re.compile(r"[^A-Za-z]")
_QUOTES = ("'", '"')


def sanitize_search_text(text: str) -> str:
    """Strip every non-alphabetic character.

    Known limitation: multi-word and non-English text is corrupted
    ("home office" -> "homeoffice", "café" -> "caf").
    """
    return _NON_ALPHA.sub("", text)


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def _skip_literal(sql: str, pos: int) -> int:
    """Return the index just past the quoted literal starting at ``pos``."""
    quote = sql[pos]
    i = pos + 1
    while i < len(sql):
        if sql[i] == quote:
            # doubled quote is an escaped quote in SQL
            if i + 1 < len(sql) and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return len(sql)


def _marker_at(sql: str, pos: int) -> int | None:
    """If a marker starts at ``pos``, return the index of its ``(``."""
    end = pos + len(MARKER)
    if sql[pos:end].upper() != MARKER:
        return None
    if pos > 0 and _is_ident_char(sql[pos - 1]):
        return None
    i = end
    while i < len(sql) and sql[i].isspace():
        i += 1
    if i < len(sql) and sql[i] == "(":
        return i
    return None


def _scan_arguments(sql: str, open_paren: int) -> tuple[int, int | None]:
    """Walk from ``open_paren`` to its balancing ``)``.

    Returns ``(close_index, split_index)`` where ``split_index`` is the
    first top-level unescaped comma, or ``None`` if there is none.
    """
    depth = 0
    split = None
    quote = None
    arg_start = False
    i = open_paren
    while i < len(sql):
        ch = sql[i]
        if ch == "\\":
            i += 2
            arg_start = False
            continue
        if quote:
            if ch == quote:
                quote = None
        elif ch in _QUOTES and arg_start:
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i, split
        elif ch == "," and depth == 1 and split is None:
            split = i
        if i == open_paren or i == split:
            arg_start = True
        elif not ch.isspace():
            arg_start = False
        i += 1
    raise PlaceholderParseError(
        f"Unterminated placeholder starting at offset {open_paren}"
    )


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def _classify(kind: str, raw: str) -> PlaceholderKind:
    cleaned = kind.strip().strip("'\"").strip().lower()
    if not cleaned:
        raise PlaceholderParseError(f"Placeholder has an empty kind: {raw}")
    try:
        return PlaceholderKind(cleaned)
    except ValueError:
        allowed = ", ".join(k.value for k in PlaceholderKind)
        raise PlaceholderParseError(
            f"Unknown placeholder kind {cleaned!r} in {raw} (expected one of: {allowed})"
        ) from None


def find_placeholders(sql: str) -> list[Placeholder]:
    """Return every placeholder in ``sql`` in order of appearance."""
    found: list[Placeholder] = []
    i = 0
    while i < len(sql):
        ch = sql[i]
        if ch in _QUOTES:
            i = _skip_literal(sql, i)
            continue

        open_paren = _marker_at(sql, i) if ch in "pP" else None
        if open_paren is None:
            i += 1
            continue

        close, split = _scan_arguments(sql, open_paren)
        raw = sql[i:close + 1]
        if split is None:
            raise PlaceholderParseError(
                f"Placeholder needs two comma-separated arguments: {raw}"
            )

        kind = _classify(sql[open_paren + 1:split], raw)
        search_text = sanitize_search_text(_unescape(sql[split + 1:close]))
        if not search_text:
            raise PlaceholderParseError(f"Placeholder has no usable search text: {raw}")

        found.append(
            Placeholder(
                kind=kind,
                search_text=search_text,
                raw_text=raw,
                start=i,
                end=close + 1,
            )
        )
        i = close + 1
    return found


def contains_placeholder(sql: str) -> bool:
    """True if any marker (well-formed or not) remains outside string literals."""
    i = 0
    while i < len(sql):
        if sql[i] in _QUOTES:
            i = _skip_literal(sql, i)
            continue
        if sql[i] in "pP" and _marker_at(sql, i) is not None:
            return True
        i += 1
    return False
