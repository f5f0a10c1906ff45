"""SQL statement allow-list"""
from typing import Optional, Tuple

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from askdb.config import settings


ALLOWED_PREFIXES = ("select", "with")

# Node types that must not appear anywhere in an accepted statement
FORBIDDEN_NODES = (
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Drop,
    exp.Create,
    exp.Alter,
    exp.Merge,
    exp.TruncateTable,
    exp.Command,
    exp.Into,
)


class SQLValidationError(Exception):
    """Raised when a statement is not allowed to run"""
    pass


class SQLGuard:
    """
    Read-only statement guard.

    The prefix check (trimmed, case-folded text must start with SELECT or WITH)
    always runs. When ``parser_guard`` is on the statement is also parsed with
    sqlglot and must be a single query with no data-changing node inside it;
    the prefix alone can be fooled by comments or a second statement.
    """

    def __init__(self, parser_guard: Optional[bool] = None, dialect: str = "postgres"):
        self.parser_guard = settings.sql_parser_guard_enabled if parser_guard is None else parser_guard
        self.dialect = dialect

    def validate(self, sql: str) -> Tuple[str, bool]:
        """
        Returns: (cleaned_sql, is_valid)
        Raises: SQLValidationError if the statement is not allowed
        """
        cleaned = (sql or "").strip()
        if not cleaned:
            raise SQLValidationError("Empty SQL statement")

        self._check_prefix(cleaned)
        if self.parser_guard:
            self._check_parsed(cleaned)
        return cleaned, True

    @staticmethod
    def is_allowed_prefix(sql: str) -> bool:
        return (sql or "").strip().lower().startswith(ALLOWED_PREFIXES)

    def _check_prefix(self, sql: str) -> None:
        if not self.is_allowed_prefix(sql):
            raise SQLValidationError("Only SELECT queries are allowed for security reasons")

    def _check_parsed(self, sql: str) -> None:
        try:
            statements = [s for s in sqlglot.parse(sql, read=self.dialect) if s is not None]
        except SqlglotError as e:
            raise SQLValidationError(f"Failed to parse SQL: {str(e)}")

        if len(statements) != 1:
            raise SQLValidationError(
                f"Exactly one statement is allowed, got {len(statements)}"
            )

        root = statements[0]
        if not isinstance(root, exp.Query):
            raise SQLValidationError("Only SELECT statements are allowed")

        for node in root.walk():
            if isinstance(node, FORBIDDEN_NODES):
                raise SQLValidationError(f"Forbidden operation: {type(node).__name__}")
