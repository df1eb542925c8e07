"""
tests/conftest.py
"""
from __future__ import annotations

import base64
import itertools
import json
from typing import Any, Generator
from urllib.parse import unquote

import pytest
import requests
from flask.testing import FlaskClient

from minblog import gateway
from minblog.gateway import ContentHost, GatewayConfig, TokenService, app

API = "https://api.github.test"
RAW = "https://raw.github.test"
REPO = "owner/blog"
SECRET = "test-secret"
EMAIL = "owner@example.com"

TEST_CONFIG = GatewayConfig(
    github_token="ghp-test",
    auth_secret=SECRET,
    allowed_emails=frozenset({EMAIL}),
    github_repo=REPO,
    github_api=API,
    fetch_workers=4,
)


class FakeResponse:
    """The handful of ``requests.Response`` attributes ContentHost reads."""

    def __init__(self, status_code: int = 200, payload: Any = None, *, text: str | None = None):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeGitHub:
    """
    In-memory stand-in for a ``requests.Session`` talking to the contents API.

    Files live in ``files`` as ``path -> (bytes, sha)``. Paths listed in
    ``broken`` answer 500, in ``down`` raise a transport error and in
    ``garbage`` answer 200 with an HTML body.
    """

    def __init__(self):
        self.files: dict[str, tuple[bytes, str]] = {}
        self.calls: list[tuple[str, str, dict | None]] = []
        self.broken: set[str] = set()
        self.down: set[str] = set()
        self.garbage: set[str] = set()
        self.closed = False
        self._shas = itertools.count(1)

    # --- test setup -------------------------------------------------------
    def add(self, path: str, content: str | bytes, sha: str | None = None) -> str:
        data = content.encode() if isinstance(content, str) else content
        sha = sha or f"sha{next(self._shas)}"
        self.files[path] = (data, sha)
        return sha

    def text(self, path: str) -> str:
        return self.files[path][0].decode()

    def methods(self) -> list[str]:
        return [m for m, _url, _body in self.calls]

    # --- requests.Session API surface -------------------------------------
    def request(self, method, url, json=None, timeout=None, **kwargs):
        self.calls.append((method, url, json))

        prefix = f"{API}/repos/{REPO}/contents/"
        raw = url.startswith(RAW + "/")
        if raw:
            path = unquote(url[len(RAW) + 1 :])
        else:
            assert url.startswith(prefix), url
            path = unquote(url[len(prefix) :])

        if path in self.down:
            raise requests.ConnectionError("connection refused")
        if path in self.broken:
            return FakeResponse(500, {"message": "Server Error"})
        if path in self.garbage:
            return FakeResponse(200, text="<html>oops</html>")

        if raw:
            if path not in self.files:
                return FakeResponse(404, text="404: Not Found")
            return FakeResponse(200, text=self.text(path))
        return getattr(self, f"_{method.lower()}")(path, json or {})

    def close(self):
        self.closed = True

    # --- contents API -----------------------------------------------------
    def _entry(self, path: str) -> dict:
        return {
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": self.files[path][1],
            "type": "file",
            "download_url": f"{RAW}/{path}",
        }

    def _get(self, path, body):
        if path in self.files:
            # GitHub wraps the base64 payload at 60 columns
            encoded = base64.encodebytes(self.files[path][0]).decode()
            return FakeResponse(200, {**self._entry(path), "content": encoded, "encoding": "base64"})
        children = sorted(p for p in self.files if p.rsplit("/", 1)[0] == path)
        if children:
            return FakeResponse(200, [self._entry(p) for p in children])
        return FakeResponse(404, {"message": "Not Found"})

    def _put(self, path, body):
        sha = body.get("sha")
        current = self.files.get(path)
        if current and not sha:
            return FakeResponse(422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
        if sha and (current is None or current[1] != sha):
            return FakeResponse(409, {"message": f"{path} does not match {sha}"})
        self.add(path, base64.b64decode(body["content"]))
        return FakeResponse(201 if current is None else 200, {"content": self._entry(path), "commit": {}})

    def _delete(self, path, body):
        current = self.files.get(path)
        if current is None:
            return FakeResponse(404, {"message": "Not Found"})
        if body.get("sha") != current[1]:
            return FakeResponse(409, {"message": f"{path} does not match {body.get('sha')}"})
        del self.files[path]
        return FakeResponse(200, {"content": None, "commit": {}})


@pytest.fixture(scope="session", autouse=True)
def _configure_app() -> None:
    """Point the app at the fake repository once for the whole session."""
    app.config.update(TESTING=True, GATEWAY=TEST_CONFIG)


@pytest.fixture
def github(monkeypatch) -> FakeGitHub:
    """Every ContentHost built by the app talks to this fake instead of GitHub."""
    fake = FakeGitHub()
    monkeypatch.setattr(gateway, "github_session", lambda cfg: fake)
    return fake


@pytest.fixture
def host(github) -> ContentHost:
    return ContentHost(REPO, github, api=API)


_ip_counter = itertools.count(1)


@pytest.fixture
def client(github) -> Generator[FlaskClient, None, None]:
    """
    A test client with its own REMOTE_ADDR, so the login rate-limit
    never bleeds between tests.
    """
    n = next(_ip_counter)
    with app.test_client() as c:
        c.environ_base["REMOTE_ADDR"] = f"10.0.{n // 250}.{n % 250 + 1}"
        yield c


@pytest.fixture
def cfg() -> GatewayConfig:
    return TEST_CONFIG


@pytest.fixture
def token() -> str:
    return TokenService(SECRET).issue(EMAIL)


@pytest.fixture
def auth(token) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_now():
    """Headers minted on demand, so a monkeypatched ``utc_now`` also drives the token."""

    def _headers() -> dict[str, str]:
        return {"Authorization": f"Bearer {TokenService(SECRET).issue(EMAIL)}"}

    return _headers
