"""Statement splitting, statement sniffing and default row limits."""

import re
from typing import List, Optional

_STATEMENT_PATTERN = re.compile(r"[^;]+;")
_LIMIT_PATTERN = re.compile(r"\blimit\s+\d+", re.IGNORECASE)
_CONTROL_PATTERNS = {
    "begin": re.compile(r"^(?:begin|start\s+transaction)(?:\s+(?:transaction|work))?\s*;?$", re.IGNORECASE),
    "commit": re.compile(r"^(?:commit|end)(?:\s+(?:transaction|work))?\s*;?$", re.IGNORECASE),
    "rollback": re.compile(r"^(?:rollback|abort)(?:\s+(?:transaction|work))?\s*;?$", re.IGNORECASE),
}


def locate_statements(text: str) -> List[str]:
    """Split SQL text into statements terminated by ``;``.

    A trailing statement without a terminator is kept. Semicolons inside
    string literals are not recognised.
    """
    statements = []
    end = 0
    for match in _STATEMENT_PATTERN.finditer(text):
        statement = match.group(0).strip()
        if statement.rstrip(";").strip():
            statements.append(statement)
        end = match.end()

    remainder = text[end:].strip()
    if remainder:
        statements.append(remainder)
    return statements


def is_select(sql: str) -> bool:
    return sql.strip().lower().startswith("select")


def transaction_control(sql: str) -> Optional[str]:
    """Return ``"begin"``, ``"commit"`` or ``"rollback"`` for a bare transaction statement.

    Savepoint forms such as ``ROLLBACK TO SAVEPOINT a`` are not matched.
    """
    statement = sql.strip()
    for name, pattern in _CONTROL_PATTERNS.items():
        if pattern.match(statement):
            return name
    return None


def apply_default_limit(sql: str, limit: int) -> str:
    """Append ``LIMIT <limit>`` to a SELECT that has none.

    The limit goes before a trailing semicolon. Non-SELECT statements and
    limits of zero or less leave the text unchanged.
    """
    if limit <= 0 or not is_select(sql) or _LIMIT_PATTERN.search(sql):
        return sql

    statement = sql.strip()
    if statement.endswith(";"):
        return f"{statement[:-1].rstrip()} LIMIT {limit};"
    return f"{statement} LIMIT {limit}"
