"""
Database Mock for Component Testing

Stands in for PostgresClientWrapper so repositories can be exercised
without a database: records every statement and replays canned rows.
"""
from typing import Any, Dict, List, Optional


class MockPostgresClient:
    """Mock for PostgresClientWrapper (asyncpg-based)"""

    def __init__(self):
        self.queries: List[tuple] = []
        self._row_responses: List[Optional[Dict[str, Any]]] = []
        self._rows_response: List[Dict[str, Any]] = []
        self._execute_response: int = 1
        self._should_raise: Optional[Exception] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    def _record(self, method: str, query: str, params):
        self.queries.append((method, query, list(params or [])))
        if self._should_raise:
            raise self._should_raise

    async def query_row(self, query: str, params: List[Any] = None) -> Optional[Dict[str, Any]]:
        self._record("query_row", query, params)
        if len(self._row_responses) > 1:
            return self._row_responses.pop(0)
        return self._row_responses[0] if self._row_responses else None

    async def query(self, query: str, params: List[Any] = None) -> List[Dict[str, Any]]:
        self._record("query", query, params)
        return self._rows_response

    async def execute(self, query: str, params: List[Any] = None) -> int:
        """Rows affected"""
        self._record("execute", query, params)
        return self._execute_response

    # Test helper methods

    def set_row_response(self, *rows: Optional[Dict[str, Any]]):
        """Rows returned by successive query_row calls (the last one repeats)"""
        self._row_responses = list(rows)

    def set_rows_response(self, rows: List[Dict[str, Any]]):
        self._rows_response = rows

    def set_execute_response(self, rows_affected: int):
        self._execute_response = rows_affected

    def set_error(self, error: Exception):
        self._should_raise = error

    def get_queries(self, method: Optional[str] = None) -> List[tuple]:
        if method:
            return [q for q in self.queries if q[0] == method]
        return self.queries

    def get_last_query(self) -> Optional[tuple]:
        return self.queries[-1] if self.queries else None

    def assert_query_executed(self, pattern: str, method: Optional[str] = None):
        """Assert that a statement containing pattern was run"""
        for q in self.get_queries(method):
            if pattern.lower() in q[1].lower():
                return q
        raise AssertionError(f"No query matching '{pattern}' was executed. Queries: {self.queries}")
