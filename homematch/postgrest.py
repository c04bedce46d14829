# homematch/postgrest.py
"""Minimal PostgREST/Supabase HTTP client.

Queries are built fluently (``client.table("properties").select("*").eq(...)``)
and sent with ``requests`` on ``execute()``. Filter values pass through
``homematch.filters.render_value`` so user input never reaches the query
string unsanitized; ``or_`` only accepts clause bodies produced by the
builders in ``homematch.filters``.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import requests

from .errors import PostgrestError
from .filters import render_value, sanitize_filter_value, validate_column
from .utils import logger


@dataclass
class APIResponse:
    data: Any
    count: Optional[int] = None
    status: int = 200


def _parse_count(content_range: Optional[str]) -> Optional[int]:
    # "0-19/123" or "*/0"
    if not content_range or "/" not in content_range:
        return None
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class QueryBuilder:
    def __init__(self, client: "PostgrestClient", table: str):
        self.client = client
        self.table = table
        self.method = "GET"
        self.params: List[Tuple[str, str]] = []
        self.headers: Dict[str, str] = {}
        self.body: Any = None
        self._maybe_single = False

    # -- verbs
    def select(self, columns: str = "*", count: Optional[str] = None, head: bool = False):
        self.method = "HEAD" if head else "GET"
        self.params.append(("select", "".join(columns.split())))
        if count:
            self.headers["Prefer"] = f"count={count}"
        return self

    def insert(self, rows: Any):
        self.method = "POST"
        self.body = rows
        self.headers["Prefer"] = "return=representation"
        return self

    def upsert(self, rows: Any, on_conflict: Optional[str] = None):
        self.method = "POST"
        self.body = rows
        self.headers["Prefer"] = "resolution=merge-duplicates,return=representation"
        if on_conflict:
            self.params.append(("on_conflict", validate_column(on_conflict)))
        return self

    def delete(self):
        self.method = "DELETE"
        self.headers["Prefer"] = "return=representation"
        return self

    # -- filters
    def _filter(self, column: str, op: str, value: str):
        self.params.append((validate_column(column), f"{op}.{value}"))
        return self

    def eq(self, column: str, value: Any):
        return self._filter(column, "eq", render_value(value))

    def neq(self, column: str, value: Any):
        return self._filter(column, "neq", render_value(value))

    def gt(self, column: str, value: Any):
        return self._filter(column, "gt", render_value(value))

    def gte(self, column: str, value: Any):
        return self._filter(column, "gte", render_value(value))

    def lt(self, column: str, value: Any):
        return self._filter(column, "lt", render_value(value))

    def lte(self, column: str, value: Any):
        return self._filter(column, "lte", render_value(value))

    def ilike(self, column: str, value: Any):
        return self._filter(column, "ilike", f"%{sanitize_filter_value(value)}%")

    def is_(self, column: str, value: Optional[bool]):
        literal = "null" if value is None else render_value(value)
        return self._filter(column, "is", literal)

    def not_is(self, column: str, value: Optional[bool]):
        literal = "null" if value is None else render_value(value)
        return self._filter(column, "not.is", literal)

    def in_(self, column: str, values: Iterable[Any]):
        rendered = [v for v in (render_value(x) for x in values) if v]
        return self._filter(column, "in", "(" + ",".join(rendered) + ")")

    def contains(self, column: str, values: Sequence[Any]):
        rendered = [render_value(v).replace("{", "").replace("}", "") for v in values]
        return self._filter(column, "cs", "{" + ",".join(r for r in rendered if r) + "}")

    def or_(self, clause: str):
        self.params.append(("or", f"({clause})"))
        return self

    # -- modifiers
    def order(self, column: str, desc: bool = False):
        self.params.append(("order", f"{validate_column(column)}.{'desc' if desc else 'asc'}"))
        return self

    def limit(self, count: int):
        self.params.append(("limit", str(int(count))))
        return self

    def range(self, start: int, end: int):
        self.params.append(("offset", str(int(start))))
        self.params.append(("limit", str(int(end) - int(start) + 1)))
        return self

    def maybe_single(self):
        self._maybe_single = True
        return self

    def execute(self) -> APIResponse:
        response = self.client.request(self.method, f"/rest/v1/{self.table}",
                                       params=self.params, json=self.body, headers=self.headers)
        if self._maybe_single:
            rows = response.data or []
            response.data = rows[0] if isinstance(rows, list) and rows else None
        return response


class PostgrestClient:
    """HTTP access to a Supabase project: PostgREST tables, RPC and the auth user endpoint."""

    def __init__(self, base_url: str, api_key: str, session: Optional[requests.Session] = None,
                 timeout: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self, validate_column(name))

    def rpc(self, fn: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        return self.request("POST", f"/rest/v1/rpc/{validate_column(fn)}", json=params or {})

    def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """Resolve a Supabase access token to its user, or ``None`` if it is not valid."""
        try:
            res = self.session.request(
                "GET", f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.api_key, "Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PostgrestError(f"Auth request failed: {e}") from e
        if res.status_code in (401, 403):
            return None
        if not res.ok:
            raise PostgrestError("Auth request failed", status=res.status_code)
        user = res.json()
        return user if user and user.get("id") else None

    def request(self, method: str, path: str, params: Optional[List[Tuple[str, str]]] = None,
                json: Any = None, headers: Optional[Dict[str, str]] = None) -> APIResponse:
        all_headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        all_headers.update(headers or {})
        try:
            res = self.session.request(method, f"{self.base_url}{path}", params=params or [],
                                       json=json, headers=all_headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("PostgREST %s %s failed: %s", method, path, e)
            raise PostgrestError(f"Request failed: {e}") from e

        if not res.ok:
            try:
                payload = res.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}
            raise PostgrestError(payload.get("message") or f"HTTP {res.status_code}",
                                 status=res.status_code, code=payload.get("code"),
                                 details=payload.get("details"))

        count = _parse_count(res.headers.get("Content-Range"))
        if method == "HEAD" or res.status_code == 204 or not res.content:
            return APIResponse(data=None, count=count, status=res.status_code)
        return APIResponse(data=res.json(), count=count, status=res.status_code)
