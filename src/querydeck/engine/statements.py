# src/querydeck/engine/statements.py
"""
Lightweight statement classification.

None of this is a SQL parser: the router only needs to know what kind of
statement it was handed (SELECT-like vs. DDL/DML/admin), whether the user
already bounded it with a LIMIT, and whether it aggregates. The leading
keyword comes from the sqlglot tokenizer so comments and odd whitespace are
skipped correctly; the rest are anchored regexes.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Optional

from sqlglot.errors import TokenError
from sqlglot.tokens import Tokenizer, TokenType

# Statements that don't return a pageable result set
NON_SELECT_KEYWORDS = frozenset(
    {
        "COPY", "INSERT", "UPDATE", "DELETE", "CREATE", "ALTER", "DROP",
        "TRUNCATE", "EXPORT", "IMPORT", "ATTACH", "DETACH", "INSTALL", "LOAD",
        "SET", "PRAGMA", "CHECKPOINT", "VACUUM", "ANALYZE", "BEGIN", "COMMIT",
        "ROLLBACK", "CALL", "EXECUTE", "EXPLAIN", "SHOW", "DESCRIBE", "USE",
    }
)

_LINE_COMMENT_RE = re.compile(r"--.*$", re.MULTILINE)
_BLOCK_COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/")
_FIRST_WORD_RE = re.compile(r"^\s*([A-Za-z_]+)")
_WS_RE = re.compile(r"\s+")

_DDL_RE = re.compile(
    r"^\s*(CREATE|DROP|ALTER)\s+(OR\s+REPLACE\s+)?(TEMP\s+|TEMPORARY\s+)?(TABLE|VIEW|SCHEMA|INDEX|MACRO)",
    re.IGNORECASE,
)
_USER_LIMIT_RE = re.compile(r"\bLIMIT\s+\d+", re.IGNORECASE)
_TRAILING_LIMIT_RE = re.compile(r"\bLIMIT\s+(\d+)\s*;?\s*$", re.IGNORECASE)
_AGGREGATION_RE = re.compile(
    r"\b(GROUP\s+BY|HAVING|COUNT\s*\(|SUM\s*\(|AVG\s*\(|MAX\s*\(|MIN\s*\()",
    re.IGNORECASE,
)
_TARGET_DB_RE = re.compile(
    r"^\s*(CREATE|DROP|ALTER)\s+(?:OR\s+REPLACE\s+)?(?:TEMP\s+|TEMPORARY\s+)?(?:TABLE|VIEW)\s+"
    r"(?:IF\s+(?:NOT\s+)?EXISTS\s+)?[\"'`]?(\w+)[\"'`]?\s*\.",
    re.IGNORECASE,
)
_ATTACH_RE = re.compile(
    r"^\s*ATTACH\s+(?:DATABASE\s+)?(?:IF\s+NOT\s+EXISTS\s+)?['\"]([^'\"]+)['\"]\s+AS\s+[\"'`]?(\w+)[\"'`]?"
    r"\s*(?:\(\s*(READ_ONLY)\s*\))?",
    re.IGNORECASE,
)
_DETACH_RE = re.compile(
    r"^\s*DETACH\s+(?:DATABASE\s+)?(?:IF\s+EXISTS\s+)?[\"'`]?(\w+)[\"'`]?\s*;?\s*$",
    re.IGNORECASE,
)

# Default databases that never need a per-database schema refresh
_DEFAULT_DATABASES = {"memory", "main"}


@dataclass(frozen=True)
class AttachInfo:
    path: str
    alias: str
    read_only: bool = False


# ------------------------------ Normalization ---------------------------------


def strip_comments(sql: str) -> str:
    return _BLOCK_COMMENT_RE.sub("", _LINE_COMMENT_RE.sub("", sql or "")).strip()


def normalize_sql(sql: str) -> str:
    """Collapse whitespace and drop trailing semicolons."""
    return _WS_RE.sub(" ", (sql or "").strip()).rstrip("; ").strip()


def hash_query(sql: str) -> str:
    """Stable 16-hex-char fingerprint of the normalized statement."""
    return hashlib.sha256(normalize_sql(sql).encode("utf-8")).hexdigest()[:16]


# ------------------------------ Classification --------------------------------


def statement_keyword(sql: str) -> str:
    """
    Upper-cased leading keyword of the statement, or "" for empty input.

    Falls back to a regex over the comment-stripped text when the tokenizer
    rejects the input (e.g. an unterminated string literal).
    """
    if not sql or not sql.strip():
        return ""
    try:
        tokens = Tokenizer().tokenize(sql)
    except TokenError:
        m = _FIRST_WORD_RE.match(strip_comments(sql))
        return m.group(1).upper() if m else ""
    return tokens[0].text.upper() if tokens else ""


def is_non_select_statement(sql: str) -> bool:
    return statement_keyword(sql) in NON_SELECT_KEYWORDS


def is_ddl_statement(sql: str) -> bool:
    """CREATE/DROP/ALTER of a table, view, schema, index or macro."""
    return _DDL_RE.search(strip_comments(sql)) is not None


def has_user_limit(sql: str) -> bool:
    """True when a LIMIT n appears anywhere (subqueries included)."""
    return _USER_LIMIT_RE.search(strip_comments(sql)) is not None


def trailing_limit(sql: str) -> Optional[int]:
    """The LIMIT n that ends the statement, ignoring LIMITs in subqueries/CTEs."""
    m = _TRAILING_LIMIT_RE.search(strip_comments(sql))
    return int(m.group(1)) if m else None


def is_aggregation_query(sql: str) -> bool:
    return _AGGREGATION_RE.search(strip_comments(sql)) is not None


def extract_target_database(sql: str) -> Optional[str]:
    """
    Database qualifier of a CREATE/DROP/ALTER TABLE|VIEW target.

    Returns None for unqualified names and for the default memory/main
    databases.
    """
    m = _TARGET_DB_RE.match(strip_comments(sql))
    if not m:
        return None
    name = m.group(2)
    if name.lower() in _DEFAULT_DATABASES:
        return None
    return name


def parse_attach_statement(sql: str) -> Optional[AttachInfo]:
    m = _ATTACH_RE.match(strip_comments(sql))
    if not m:
        return None
    return AttachInfo(path=m.group(1), alias=m.group(2), read_only=bool(m.group(3)))


def parse_detach_statement(sql: str) -> Optional[str]:
    """Alias named by a DETACH statement, if it is one."""
    m = _DETACH_RE.match(strip_comments(sql))
    return m.group(1) if m else None


# ------------------------------ Rewriting -------------------------------------


def _statement_body(sql: str) -> str:
    """`sql` up to its last token, without trailing comments or semicolons."""
    text = sql or ""
    try:
        tokens = Tokenizer().tokenize(text)
    except TokenError:
        return strip_comments(text).rstrip(";").rstrip()
    while tokens and tokens[-1].token_type == TokenType.SEMICOLON:
        tokens.pop()
    if not tokens:
        return ""
    return text[: tokens[-1].end + 1].strip()


def apply_pagination(sql: str, limit: Optional[int], offset: int = 0) -> str:
    """Append LIMIT/OFFSET to a statement that has none of its own."""
    paged = _statement_body(sql)
    if limit is not None:
        paged += f" LIMIT {int(limit)}"
    if offset and offset > 0:
        paged += f" OFFSET {int(offset)}"
    return paged
