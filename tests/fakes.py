# tests/fakes.py
"""Scripted stand-ins for ``requests`` sessions used by the HTTP clients."""
import json as jsonlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlsplit

from homematch.postgrest import PostgrestClient


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, headers: Optional[Dict[str, str]] = None,
                 text: Optional[str] = None):
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {}
        if text is None:
            text = "" if json_data is None else jsonlib.dumps(json_data)
        self.text = text
        self.content = text.encode()

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._json is None:
            return jsonlib.loads(self.text)
        return self._json


@dataclass
class Call:
    method: str
    url: str
    params: List = field(default_factory=list)
    json: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Any = None

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    def param(self, name: str) -> List[str]:
        pairs = list(self.params) + parse_qsl(urlsplit(self.url).query)
        return [v for k, v in pairs if k == name]


class FakeSession:
    """Routes requests to scripted responses by method and path suffix.

    A route's response may be a ``FakeResponse``, an exception instance to
    raise, a callable taking the ``Call``, or a list of those consumed in
    order (the last one repeats).
    """

    def __init__(self):
        self.calls: List[Call] = []
        self.routes: List = []

    def on(self, method: str, path: str, response) -> "FakeSession":
        self.routes.append((method.upper(), path, response))
        return self

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        call = Call(method.upper(), url, list(params or []), json, dict(headers or {}), timeout)
        self.calls.append(call)
        for m, path, response in self.routes:
            if m == call.method and call.path.endswith(path):
                if isinstance(response, list):
                    current = response[0] if len(response) == 1 else response.pop(0)
                else:
                    current = response
                return self._resolve(current, call)
        return FakeResponse(200, [])

    def get(self, url, headers=None, timeout=None, params=None):
        return self.request("GET", url, params=params, headers=headers, timeout=timeout)

    @staticmethod
    def _resolve(response, call):
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(call)
        return response

    def find(self, method: str, path: str) -> List[Call]:
        return [c for c in self.calls if c.method == method.upper() and c.path.endswith(path)]


def make_client(session: Optional[FakeSession] = None) -> PostgrestClient:
    return PostgrestClient("https://db.example.test", "service-key", session=session or FakeSession())
