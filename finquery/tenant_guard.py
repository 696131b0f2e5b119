"""Mechanical tenant-isolation check applied before any query reaches the database.

The synthesis prompt asks the model to filter by business, but model output
is untrusted. ``check_tenant_isolation`` tokenizes the resolved SQL and
accepts it only if:

- it is a single ``SELECT``/``WITH`` statement with no data-modifying
  keywords and no set operations
- every table reference in a ``SELECT`` block that reads a base table
  (anything other than a CTE or a subquery) has its own
  ``<alias>.<tenant column> = <business id>`` in the block's ``WHERE``
  clause; an unqualified filter only covers a block with a single table
- that clause has no ``OR`` at the same nesting level
- the filter stands alone: no ``NOT`` in front of it and no operator after it
- no comparison anywhere pits the tenant column against another value

It is a conservative filter: some valid queries (e.g. a tenant filter
wrapped in redundant parentheses) are rejected.
"""

import re
from typing import NamedTuple

from finquery.errors import TenantIsolationError

TENANT_PARAM = "business_id"

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<comment>--[^\n]*|/\*.*?\*/)
  | (?P<string>'(?:[^']|'')*'|\$(?P<tag>\w*)\$.*?\$(?P=tag)\$)
  | (?P<qident>"(?:[^"]|"")*")
  | (?P<op><->|<=>|<\#>|<=|>=|<>|!=|::|\|\||[-+*/%<>=~!@\#^&|.,])
  | (?P<param>:[A-Za-z_]\w*)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<word>[A-Za-z_][A-Za-z0-9_$]*)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<semicolon>;)
    """,
    re.VERBOSE | re.DOTALL,
)

FORBIDDEN_KEYWORDS = {
    "INSERT", "UPDATE", "DELETE", "MERGE", "UPSERT", "DROP", "ALTER", "CREATE",
    "TRUNCATE", "GRANT", "REVOKE", "COPY", "CALL", "EXECUTE", "DO", "VACUUM",
    "INTO", "SET", "LOCK",
}
SET_OPERATIONS = {"UNION", "INTERSECT", "EXCEPT"}
WHERE_TERMINATORS = {
    "GROUP", "ORDER", "LIMIT", "HAVING", "OFFSET", "WINDOW", "FETCH", "FOR",
}
FROM_TERMINATORS = WHERE_TERMINATORS | {"WHERE"}
JOIN_WORDS = {
    "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "OUTER", "CROSS", "NATURAL",
    "ON", "USING", "LATERAL",
}
NON_ALIAS_WORDS = FROM_TERMINATORS | JOIN_WORDS
FILTER_PRECEDERS = {"WHERE", "AND", "OR", "ON", "HAVING"}
FILTER_FOLLOWERS = {"AND", "OR"} | FROM_TERMINATORS | JOIN_WORDS
COMPARISON_OPS = {"=", "<>", "!=", "<", ">", "<=", ">="}
COMPARISON_WORDS = {"IN", "LIKE", "ILIKE", "IS", "BETWEEN", "NOT", "SIMILAR", "ANY"}


class Token(NamedTuple):
    kind: str
    value: str
    depth: int

    @property
    def upper(self) -> str:
        return self.value.upper() if self.kind == "word" else ""


def tokenize(sql: str) -> list[Token]:
    """Split SQL into tokens annotated with parenthesis depth (comments dropped)."""
    tokens: list[Token] = []
    depth = 0
    pos = 0
    while pos < len(sql):
        match = _TOKEN_RE.match(sql, pos)
        if not match:
            raise TenantIsolationError(
                f"Cannot tokenize query near offset {pos}: {sql[pos:pos + 20]!r}"
            )
        pos = match.end()
        kind = match.lastgroup
        if kind in ("ws", "comment"):
            continue
        value = match.group()
        if kind == "rparen":
            depth -= 1
            if depth < 0:
                raise TenantIsolationError("Unbalanced parentheses in query")
        tokens.append(Token(kind, value, depth))
        if kind == "lparen":
            depth += 1
    if depth != 0:
        raise TenantIsolationError("Unbalanced parentheses in query")
    return tokens


def _identifier(token: Token) -> str | None:
    if token.kind == "word":
        return token.value.lower()
    if token.kind == "qident":
        return token.value[1:-1].replace('""', '"')
    return None


def _literal_value(token: Token) -> str | None:
    if token.kind == "string" and token.value.startswith("'"):
        return token.value[1:-1].replace("''", "'")
    if token.kind == "number":
        return token.value
    return None


def _is_tenant_value(token: Token, business_id: str) -> bool:
    if token.kind == "param":
        return token.value[1:] == TENANT_PARAM
    return _literal_value(token) == business_id


def _is_comparison(token: Token) -> bool:
    return (token.kind == "op" and token.value in COMPARISON_OPS) or token.upper in COMPARISON_WORDS


def _is_tenant_column(tokens: list[Token], j: int, column: str) -> bool:
    """True if ``tokens[j]`` starts a (possibly qualified) reference to ``column``."""
    if j < 0 or j >= len(tokens):
        return False
    if _identifier(tokens[j]) == column:
        return True
    return (
        j + 2 < len(tokens)
        and _identifier(tokens[j]) is not None
        and tokens[j + 1].value == "."
        and _identifier(tokens[j + 2]) == column
    )


def _column_start(tokens: list[Token], i: int) -> int:
    """Index of the first token of the column reference ending at ``i``."""
    if i >= 2 and tokens[i - 1].value == "." and _identifier(tokens[i - 2]) is not None:
        return i - 2
    return i


def _stands_alone(tokens: list[Token], first: int, last: int) -> bool:
    """True if ``tokens[first:last + 1]`` is a whole condition, not an operand."""
    if first > 0:
        before = tokens[first - 1]
        if before.kind != "lparen" and before.upper not in FILTER_PRECEDERS:
            return False
    if last + 1 < len(tokens):
        after = tokens[last + 1]
        if after.kind not in ("rparen", "semicolon") and after.upper not in FILTER_FOLLOWERS:
            return False
    return True


def _tenant_comparisons(
    tokens: list[Token], column: str, business_id: str
) -> dict[int, str | None]:
    """Map each valid ``= business id`` comparison to the alias it qualifies.

    Keys are indices of the tenant-column token; values are the qualifier
    (``t`` in ``t.business_id``) or ``None``. Equality between two tenant
    columns (a join) is allowed but not counted. Any other comparison of
    the tenant column raises.
    """
    valid = {}
    for i, token in enumerate(tokens):
        if _identifier(token) != column:
            continue
        start = _column_start(tokens, i)
        if i + 1 < len(tokens) and _is_comparison(tokens[i + 1]):
            op, operand = tokens[i + 1], i + 2
            first, last = start, operand
        elif start > 0 and _is_comparison(tokens[start - 1]):
            op, operand = tokens[start - 1], start - 2
            first, last = operand, i
        else:
            # plain reference, e.g. in a select list or GROUP BY
            continue

        if op.value == "=" and 0 <= operand < len(tokens):
            if _is_tenant_value(tokens[operand], business_id):
                if not _stands_alone(tokens, first, last):
                    raise TenantIsolationError(
                        f"The {column} filter must be a plain condition joined with AND"
                    )
                valid[i] = _identifier(tokens[start]) if start != i else None
                continue
            if _is_tenant_column(tokens, operand, column) or _identifier(tokens[operand]) == column:
                continue
        raise TenantIsolationError(
            f"Query compares {column} to something other than the requesting business"
        )
    return valid


def _cte_names(tokens: list[Token]) -> set[str]:
    names = set()
    if not tokens or tokens[0].upper != "WITH":
        return names
    for i, token in enumerate(tokens[:-2]):
        if token.depth != 0 or tokens[i + 1].upper != "AS":
            continue
        rest = tokens[i + 2:i + 4]
        if rest and (rest[0].kind == "lparen" or (rest[0].upper in ("MATERIALIZED", "NOT"))):
            name = _identifier(token)
            if name:
                names.add(name)
    return names


def _select_blocks(tokens: list[Token]) -> list[list[int]]:
    """For each SELECT keyword, indices of the tokens at its own depth."""
    blocks = []
    for start, token in enumerate(tokens):
        if token.upper != "SELECT":
            continue
        depth = token.depth
        block = []
        for i in range(start, len(tokens)):
            if tokens[i].depth < depth:
                break
            if tokens[i].depth == depth:
                if i > start and tokens[i].upper == "SELECT":
                    break
                block.append(i)
        blocks.append(block)
    return blocks


def _table_references(tokens: list[Token], block: list[int], ctes: set[str]) -> list[str]:
    """Alias (or bare name) of every base table the block reads."""
    references = []
    in_from = False
    expect_table = False
    pos = 0
    while pos < len(block):
        token = tokens[block[pos]]
        word = token.upper
        pos += 1
        if word == "FROM":
            in_from, expect_table = True, True
            continue
        if not in_from:
            continue
        if word in FROM_TERMINATORS:
            break
        if word == "JOIN" or (token.kind == "op" and token.value == ","):
            expect_table = True
            continue
        if word == "LATERAL" or not expect_table:
            continue
        expect_table = False
        name = _identifier(token)
        if name is None:
            # subquery or function; its own SELECT block is checked separately
            continue
        # schema-qualified name: take the last part
        while pos + 1 < len(block) and tokens[block[pos]].value == ".":
            name = _identifier(tokens[block[pos + 1]]) or name
            pos += 2
        alias = name
        if pos < len(block) and tokens[block[pos]].upper == "AS":
            pos += 1
        if pos < len(block):
            candidate = tokens[block[pos]]
            if candidate.kind in ("word", "qident") and candidate.upper not in NON_ALIAS_WORDS:
                alias = _identifier(candidate)
                pos += 1
        if name not in ctes:
            references.append(alias)
    return references


def _where_clause(tokens: list[Token], block: list[int]) -> list[int]:
    clause = []
    inside = False
    for i in block:
        word = tokens[i].upper
        if word == "WHERE":
            inside = True
            continue
        if inside and word in WHERE_TERMINATORS:
            break
        if inside:
            clause.append(i)
    return clause


def check_tenant_isolation(sql: str, business_id: str, column: str = "business_id") -> None:
    """Raise ``TenantIsolationError`` unless ``sql`` is provably tenant-scoped."""
    column = column.lower()
    tokens = tokenize(sql)
    if tokens and tokens[-1].kind == "semicolon":
        tokens = tokens[:-1]
    if not tokens:
        raise TenantIsolationError("Empty query")
    if any(t.kind == "semicolon" for t in tokens):
        raise TenantIsolationError("Only a single statement may be executed")
    if tokens[0].upper not in ("SELECT", "WITH"):
        raise TenantIsolationError("Only SELECT queries may be executed")

    for token in tokens:
        if token.upper in FORBIDDEN_KEYWORDS:
            raise TenantIsolationError(f"Keyword {token.upper} is not allowed")
        if token.upper in SET_OPERATIONS:
            raise TenantIsolationError(f"Set operation {token.upper} is not allowed")

    valid = _tenant_comparisons(tokens, column, business_id)
    ctes = _cte_names(tokens)

    for block in _select_blocks(tokens):
        references = _table_references(tokens, block, ctes)
        if not references:
            continue
        where = _where_clause(tokens, block)
        scoped = {valid[i] for i in where if i in valid}
        if not scoped:
            raise TenantIsolationError(
                f"Query is missing the {column} = '{business_id}' filter"
            )
        for reference in references:
            if reference in scoped or (None in scoped and len(references) == 1):
                continue
            raise TenantIsolationError(
                f"Query is missing the {column} = '{business_id}' filter for {reference}"
            )
        if any(tokens[i].upper == "OR" for i in where):
            raise TenantIsolationError(
                f"OR next to the {column} filter could expose other businesses' rows"
            )
