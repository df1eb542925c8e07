#!/usr/bin/env python3
"""
A single-file edge gateway for a markdown blog kept in a GitHub repository.

The browser never sees the GitHub credential: it logs in here, receives a
signed session token, and every read or write of a post goes through this
process, which talks to the GitHub contents API on its behalf.
"""

import base64
import hashlib
import hmac
import json
import math
import os
import re
from collections import defaultdict, deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import wraps
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from threading import Lock
from time import time
from typing import DefaultDict
from urllib.parse import quote

import click
import requests
from flask import Flask, Response, g, request
from itsdangerous import BadData, URLSafeSerializer
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
ENV_FILE = Path(os.environ.get("MINBLOG_ENV_FILE", str(ROOT / ".env")))

ENV_KEYS = (
    "GITHUB_TOKEN",
    "AUTH_SECRET",
    "ALLOWED_EMAILS",
    "GITHUB_REPO",
    "GITHUB_API",
    "FETCH_WORKERS",
    "UPSTREAM_TIMEOUT",
    "UPSTREAM_RETRIES",
)
REQUIRED_KEYS = ("GITHUB_TOKEN", "AUTH_SECRET", "ALLOWED_EMAILS", "GITHUB_REPO")

GITHUB_API = "https://api.github.com"
CATEGORIES = ("diary", "tech", "life")
TOKEN_TTL = timedelta(days=7)
FETCH_WORKERS = 8
UPSTREAM_TIMEOUT = 20
UPSTREAM_RETRIES = 2
UPLOAD_MAX_BYTES = 10 * 1024 * 1024
LOGIN_RATE_LIMIT = 5  # attempts per minute and client

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

FRONT_MATTER_RE = re.compile(r"\A---\n(.+?)\n---\n(.*)\Z", re.S)
DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")
ISO_DATE_RE = re.compile(r"\A\d{4}-\d{2}-\d{2}\Z")
IDENTITY_KEYS = {"id", "filename", "category", "content"}

try:
    __version__ = version("minblog")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"

USER_AGENT = f"minblog-gateway/{__version__}"


################################################################################
# Errors
################################################################################
class GatewayError(Exception):
    """A failure that maps onto one HTTP status."""

    status = 500

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else type(self).__name__


class BadRequest(GatewayError):
    status = 400


class Unauthorized(GatewayError):
    status = 401


class NotFound(GatewayError):
    status = 404


class ConfigError(GatewayError):
    status = 500


class UpstreamError(GatewayError):
    """GitHub answered with something other than success."""

    status = 502

    def __init__(self, message: str, *, upstream_status: int | None = None, body: str = ""):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body


class Conflict(UpstreamError):
    """The file's version token did not match (or the file already exists)."""

    status = 409


################################################################################
# Configuration
################################################################################
@dataclass(frozen=True)
class GatewayConfig:
    github_token: str
    auth_secret: str
    allowed_emails: frozenset
    github_repo: str
    github_api: str = GITHUB_API
    fetch_workers: int = FETCH_WORKERS
    timeout: int = UPSTREAM_TIMEOUT
    retries: int = UPSTREAM_RETRIES

    def missing(self) -> list[str]:
        values = {
            "GITHUB_TOKEN": self.github_token,
            "AUTH_SECRET": self.auth_secret,
            "ALLOWED_EMAILS": self.allowed_emails,
            "GITHUB_REPO": self.github_repo,
        }
        return [k for k in REQUIRED_KEYS if not values[k]]


def _read_env_file() -> dict[str, str]:
    env = {}
    if not ENV_FILE.exists():
        return env
    for ln in ENV_FILE.read_text().splitlines():
        ln = ln.strip()
        if not ln or ln.startswith("#") or "=" not in ln:
            continue
        k, v = ln.split("=", 1)
        env[k.strip()] = v.strip()
    return env


def parse_allow_list(raw: str) -> frozenset:
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


def load_config(environ=None) -> GatewayConfig:
    """Build the process-wide settings from the environment (then ``.env``)."""
    environ = os.environ if environ is None else environ
    env_file = _read_env_file()
    raw = {k: (environ.get(k) or env_file.get(k) or "").strip() for k in ENV_KEYS}
    return GatewayConfig(
        github_token=raw["GITHUB_TOKEN"],
        auth_secret=raw["AUTH_SECRET"],
        allowed_emails=parse_allow_list(raw["ALLOWED_EMAILS"]),
        github_repo=raw["GITHUB_REPO"].strip("/"),
        github_api=(raw["GITHUB_API"] or GITHUB_API).rstrip("/"),
        fetch_workers=int(raw["FETCH_WORKERS"] or FETCH_WORKERS),
        timeout=int(raw["UPSTREAM_TIMEOUT"] or UPSTREAM_TIMEOUT),
        retries=int(raw["UPSTREAM_RETRIES"] or UPSTREAM_RETRIES),
    )


################################################################################
# App
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(GATEWAY=load_config(), MAX_CONTENT_LENGTH=UPLOAD_MAX_BYTES)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)


def gateway_config() -> GatewayConfig:
    cfg = app.config["GATEWAY"]
    missing = cfg.missing()
    if missing:
        raise ConfigError("Gateway is not configured: missing " + ", ".join(missing))
    return cfg


# -------------------------------------------------------------------------
# Time helpers
# -------------------------------------------------------------------------
def utc_now() -> datetime:
    """Return an *aware* datetime in UTC."""
    return datetime.now(timezone.utc)


def today_iso() -> str:
    return utc_now().date().isoformat()


################################################################################
# Front matter
################################################################################
def split_front_matter(raw: str) -> tuple[dict[str, str], str]:
    """
    Split ``raw`` into its ``key: value`` header and the markdown body.

    • Only a block opened by ``---`` on the very first line and closed by a
      ``---`` line counts as front matter.
    • Each header line is cut at its *first* colon, so ``time: 12:30`` keeps
      ``12:30`` as the value. Lines without a colon are ignored.
    • Without a header the whole input is returned untouched as the body.
    """
    match = FRONT_MATTER_RE.match(raw)
    if not match:
        return {}, raw

    meta: dict[str, str] = {}
    for line in match.group(1).split("\n"):
        key, sep, value = line.partition(":")
        if key and sep:
            meta[key.strip()] = value.strip()
    return meta, match.group(2).strip()


def render_front_matter(*, title: str, date: str, category: str, content: str) -> str:
    # values are written verbatim: a newline in a value would break the header
    return f"---\ntitle: {title}\ndate: {date}\ncategory: {category}\n---\n\n{content}"


def slugify(title: str) -> str:
    s = re.sub(r"[^\w\s-]", "", title.strip())
    return re.sub(r"\s+", "-", s).lower()


################################################################################
# GitHub contents client
################################################################################
@dataclass(frozen=True)
class RepoFile:
    name: str
    path: str
    sha: str
    download_url: str | None
    type: str = "file"


@dataclass(frozen=True)
class FileContent:
    data: bytes
    sha: str


@dataclass(frozen=True)
class WrittenFile:
    path: str
    sha: str
    download_url: str | None


def github_session(cfg: GatewayConfig) -> requests.Session:
    """A session that authenticates every call and retries flaky GETs."""
    session = requests.Session()
    session.headers.update(
        {
            "Authorization": f"token {cfg.github_token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
    )
    retry = Retry(
        total=cfg.retries,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    session.mount("https://", HTTPAdapter(max_retries=retry))
    return session


class ContentHost:
    """
    Files of one repository, addressed by path, through the contents API.

    Updates and deletes need the file's current blob SHA. ``update_file``
    and ``remove_file`` fetch it first and then write; the pair is not
    atomic, so two editors racing each other get a ``Conflict`` at best and
    last-write-wins at worst.
    """

    def __init__(self, repo: str, session, *, api: str = GITHUB_API, timeout: int = UPSTREAM_TIMEOUT):
        self.repo = repo
        self.session = session
        self.api = api.rstrip("/")
        self.timeout = timeout

    def url(self, path: str) -> str:
        return f"{self.api}/repos/{self.repo}/contents/{quote(path.strip('/'))}"

    def _call(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise UpstreamError(f"GitHub request failed: {exc}") from None

        if resp.status_code == 404:
            raise NotFound(f"Not found: {url}")
        if resp.status_code == 409 or (resp.status_code == 422 and method == "PUT"):
            raise Conflict(
                f"GitHub rejected the write ({resp.status_code}): {resp.text}",
                upstream_status=resp.status_code,
                body=resp.text,
            )
        if not resp.ok:
            raise UpstreamError(
                f"GitHub API error ({resp.status_code}): {resp.text}",
                upstream_status=resp.status_code,
                body=resp.text,
            )
        return resp

    def _json(self, method: str, path: str, **kwargs):
        resp = self._call(method, self.url(path), **kwargs)
        try:
            return resp.json()
        except ValueError:
            raise UpstreamError(f"GitHub sent a non-JSON body for {path}") from None

    def list(self, path: str) -> list[RepoFile]:
        data = self._json("GET", path)
        if not isinstance(data, list):
            raise UpstreamError(f"{path} is not a directory")
        return [
            RepoFile(
                name=d.get("name", ""),
                path=d.get("path", ""),
                sha=d.get("sha", ""),
                download_url=d.get("download_url"),
                type=d.get("type", "file"),
            )
            for d in data
        ]

    def read_file(self, path: str) -> FileContent:
        data = self._json("GET", path)
        if not isinstance(data, dict) or "content" not in data:
            raise UpstreamError(f"{path} is not a file")
        try:
            raw = base64.b64decode(data["content"])
        except ValueError:
            raise UpstreamError(f"GitHub sent undecodable content for {path}") from None
        return FileContent(data=raw, sha=data.get("sha", ""))

    def write_file(self, path: str, data: bytes, message: str, sha: str | None = None) -> WrittenFile:
        body = {"message": message, "content": base64.b64encode(data).decode("ascii")}
        if sha:
            body["sha"] = sha
        result = self._json("PUT", path, json=body)
        content = (result or {}).get("content") or {}
        return WrittenFile(
            path=content.get("path", path),
            sha=content.get("sha", ""),
            download_url=content.get("download_url"),
        )

    def update_file(self, path: str, data: bytes, message: str) -> WrittenFile:
        current = self.read_file(path)
        return self.write_file(path, data, message, sha=current.sha)

    def delete_file(self, path: str, sha: str, message: str) -> None:
        self._call("DELETE", self.url(path), json={"message": message, "sha": sha})

    def remove_file(self, path: str, message: str) -> None:
        current = self.read_file(path)
        self.delete_file(path, current.sha, message)

    def fetch_raw(self, url: str) -> str:
        return self._call("GET", url).text

    def close(self) -> None:
        self.session.close()


def content_host() -> ContentHost:
    if "store" not in g:
        cfg = gateway_config()
        g.store = ContentHost(
            cfg.github_repo, github_session(cfg), api=cfg.github_api, timeout=cfg.timeout
        )
    return g.store


@app.teardown_appcontext
def close_store(error=None):
    store = g.pop("store", None)
    if store is not None:
        store.close()


################################################################################
# Session tokens
################################################################################
class TokenService:
    """
    Stateless session tokens: ``base64(payload).base64(hmac-sha256)``.

    The payload is ``{"email": ..., "exp": <unix seconds>}``. Nothing is
    stored server-side, so a token stays valid until ``exp`` even after the
    browser "logs out".
    """

    def __init__(self, secret: str, *, ttl: timedelta = TOKEN_TTL):
        self.ttl = ttl
        self._serializer = URLSafeSerializer(
            secret,
            salt="session-token",
            signer_kwargs={"digest_method": hashlib.sha256},
        )

    def issue(self, email: str, *, now: datetime | None = None) -> str:
        now = now or utc_now()
        payload = {"email": email, "exp": math.ceil((now + self.ttl).timestamp())}
        return self._serializer.dumps(payload)

    def verify(self, token: str, *, now: datetime | None = None) -> dict | None:
        if not token or "." not in token:
            return None
        try:
            payload = self._serializer.loads(token)
        except BadData:
            return None  # forged, truncated or not base64/JSON

        if not isinstance(payload, dict):
            return None
        email, exp = payload.get("email"), payload.get("exp")
        if not isinstance(email, str) or not isinstance(exp, int):
            return None

        # base64 tolerates a few spare bits; only the canonical token is accepted
        canonical = self._serializer.dumps(payload).encode()
        if not hmac.compare_digest(canonical, token.encode()):
            return None

        now = now or utc_now()
        if exp <= now.timestamp():
            return None
        return payload


def token_service() -> TokenService:
    if "tokens" not in g:
        g.tokens = TokenService(gateway_config().auth_secret)
    return g.tokens


################################################################################
# Authentication
################################################################################
def require_auth() -> dict:
    """Return the verified token payload or stop the request with a 401."""
    header = request.headers.get("Authorization", "")
    if not header:
        raise Unauthorized("Missing Authorization header")

    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Expected a Bearer token")

    payload = token_service().verify(token)
    if payload is None:
        raise Unauthorized("Invalid or expired token")
    g.user_email = payload["email"]
    return payload


def rate_limit(max_requests: int, window: int = 60):
    hits: DefaultDict[str, deque] = defaultdict(deque)
    lock = Lock()

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            now = time()
            # left-most entry after ProxyFix = real client
            ip = (
                request.access_route[0] if request.access_route else request.remote_addr
            ) or "unknown"

            with lock:
                # forget clients whose newest hit has left the window
                for stale in [k for k, q in hits.items() if now - q[-1] > window]:
                    del hits[stale]

                dq = hits[ip]
                while dq and now - dq[0] > window:
                    dq.popleft()

                if len(dq) >= max_requests:
                    retry_after = int(window - (now - dq[0]))
                    return (
                        {"error": "Too many requests – try again later."},
                        429,
                        {"Retry-After": str(retry_after)},
                    )

                dq.append(now)
            return view(*args, **kwargs)

        wrapped.hits = hits
        return wrapped

    return decorator


################################################################################
# Post helpers
################################################################################
def post_path(category: str, filename: str) -> str:
    return f"posts/{category}/{filename}"


def check_category(category) -> str:
    if category not in CATEGORIES:
        raise BadRequest(f"Unknown category: {category!r}")
    return category


def check_filename(filename) -> str:
    if not isinstance(filename, str) or not filename.strip():
        raise BadRequest("filename is required")
    filename = filename.strip()
    if "/" in filename or "\\" in filename or filename.startswith("."):
        raise BadRequest(f"Invalid filename: {filename!r}")
    return filename


def check_date(value) -> str:
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        raise BadRequest("date must look like YYYY-MM-DD")
    return value


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Expected a JSON object body")
    return data


def shape_post(category: str, filename: str, sha: str, text: str) -> dict:
    """
    Turn one stored markdown file into the post object the browser sees.

    The filename's date prefix and stem are fallbacks for a missing or empty
    ``date``/``title``; other header keys are passed through, except those
    that would change the post's identity.
    """
    meta, body = split_front_matter(text)
    m = DATE_PREFIX_RE.match(filename)
    post = {
        "id": sha,
        "filename": filename,
        "category": category,
        "date": m.group(1) if m else "",
        "title": filename.removesuffix(".md"),
    }
    for key, value in meta.items():
        if key in IDENTITY_KEYS:
            continue
        if key in ("date", "title") and not value:
            continue
        post[key] = value
    post["content"] = body
    return post


def compose_post(data: dict, category: str, *, filename: str | None = None) -> tuple[str, str]:
    """
    Return ``(filename, markdown)`` for a create/update body.

    A body with a ``title`` is structured and gets its front matter written
    here; without one, ``content`` is taken as the complete file.
    """
    content = data.get("content")
    if not isinstance(content, str):
        raise BadRequest("content is required")

    title = data.get("title")
    if title is None:
        name = check_filename(filename if filename is not None else data.get("filename"))
        return name, content

    title = str(title).strip()
    if not title or "\n" in title:
        raise BadRequest("title must be a single non-empty line")
    date = check_date(data.get("date") or today_iso())
    if filename is None:
        filename = data.get("filename") or f"{date}-{slugify(title)}"
    name = check_filename(filename)
    text = render_front_matter(title=title, date=date, category=category, content=content)
    return name, text


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def list_posts(store: ContentHost, *, workers: int = FETCH_WORKERS) -> list[dict]:
    """
    Every post of every category, each with its body.

    A category that cannot be listed or a file that cannot be fetched is
    logged and left out; the rest is still returned. Downloads run in a
    bounded thread pool and all of them are awaited.
    """
    listed: list[tuple[str, RepoFile]] = []
    for category in CATEGORIES:
        try:
            files = store.list(f"posts/{category}")
        except GatewayError as exc:
            app.logger.warning("Skipping category %s: %s", category, exc.message)
            continue
        listed.extend(
            (category, f) for f in files if f.type == "file" and f.name.endswith(".md")
        )

    def _fetch(item):
        category, f = item
        try:
            if f.download_url:
                text = store.fetch_raw(f.download_url)
            else:
                text = _decode(store.read_file(f.path).data)
        except GatewayError as exc:
            app.logger.warning("Skipping %s: %s", f.path, exc.message)
            return None
        return shape_post(category, f.name, f.sha, text)

    if not listed:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(listed)))) as pool:
        posts = list(pool.map(_fetch, listed))
    return [p for p in posts if p is not None]


################################################################################
# CORS
################################################################################
@app.before_request
def cors_preflight():
    if request.method == "OPTIONS":
        return Response(status=204)


@app.after_request
def cors_headers(resp):
    resp.headers.update(CORS_HEADERS)
    return resp


################################################################################
# Auth routes
################################################################################
@app.route("/auth/login", methods=["POST"])
@rate_limit(max_requests=LOGIN_RATE_LIMIT, window=60)
def login():
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    cfg = gateway_config()
    if not email or email not in cfg.allowed_emails:
        app.logger.warning("Rejected login for %r", email)
        raise Unauthorized("This email is not allowed to sign in")

    token = token_service().issue(email)
    app.logger.info("Issued session token for %s", email)
    return {"token": token, "email": email}


################################################################################
# Posts
################################################################################
@app.route("/posts", methods=["GET"])
def posts_index():
    cfg = gateway_config()
    return {"posts": list_posts(content_host(), workers=cfg.fetch_workers)}


@app.route("/posts", methods=["POST"])
def create_post():
    require_auth()
    data = json_body()
    category = check_category(data.get("category"))
    filename, text = compose_post(data, category)
    if not filename.endswith(".md"):
        filename += ".md"

    written = content_host().write_file(
        post_path(category, filename), text.encode("utf-8"), f"Create post: {filename}"
    )
    app.logger.info("%s created %s", g.user_email, written.path)
    return {"success": True, "post": shape_post(category, filename, written.sha, text)}, 201


@app.route("/posts/<category>/<filename>", methods=["GET"])
def get_post(category, filename):
    category = check_category(category)
    filename = check_filename(filename)
    stored = content_host().read_file(post_path(category, filename))
    return {"post": shape_post(category, filename, stored.sha, _decode(stored.data))}


@app.route("/posts/<category>/<filename>", methods=["PUT"])
def update_post(category, filename):
    require_auth()
    category = check_category(category)
    filename, text = compose_post(json_body(), category, filename=check_filename(filename))

    written = content_host().update_file(
        post_path(category, filename), text.encode("utf-8"), f"Update post: {filename}"
    )
    app.logger.info("%s updated %s", g.user_email, written.path)
    return {"success": True, "post": shape_post(category, filename, written.sha, text)}


@app.route("/posts/<category>/<filename>", methods=["DELETE"])
def delete_post(category, filename):
    require_auth()
    category = check_category(category)
    filename = check_filename(filename)

    content_host().remove_file(post_path(category, filename), f"Delete post: {filename}")
    app.logger.info("%s deleted %s", g.user_email, post_path(category, filename))
    return {"success": True}


@app.route("/posts/<path:rest>", methods=["GET", "PUT", "DELETE"])
def invalid_post_path(rest):
    raise BadRequest("Invalid path")


################################################################################
# Images
################################################################################
@app.route("/images", methods=["POST"])
def upload_image():
    require_auth()

    f = request.files.get("file")
    if f is None or not f.filename:
        raise BadRequest("No file provided")

    date = check_date(request.form.get("date") or today_iso())
    ext = re.sub(r"[^A-Za-z0-9]", "", Path(f.filename).suffix).lower() or "bin"
    filename = f"{date}-{int(utc_now().timestamp() * 1000)}.{ext}"

    written = content_host().write_file(f"images/{filename}", f.read(), f"Upload image: {filename}")
    app.logger.info("%s uploaded %s", g.user_email, written.path)
    return {
        "success": True,
        "url": f"../images/{filename}",
        "downloadUrl": written.download_url,
    }, 201


################################################################################
# Error responses
################################################################################
@app.errorhandler(GatewayError)
def gateway_error(exc):
    if exc.status >= 500:
        app.logger.error("%s: %s", type(exc).__name__, exc.message)
    return {"error": exc.message}, exc.status


@app.errorhandler(HTTPException)
def http_error(exc):
    """Unknown routes, wrong verbs and oversize bodies, as JSON."""
    resp = exc.get_response()  # keeps headers such as Allow
    resp.set_data(json.dumps({"error": exc.name}))
    resp.content_type = "application/json"
    return resp


@app.errorhandler(Exception)
def internal_error(exc):
    app.logger.exception("Unhandled error")
    return {"error": str(exc) or "Internal Server Error"}, 500


###############################################################################
# CLI – session tokens + config check
###############################################################################
def _configured() -> GatewayConfig:
    cfg = app.config["GATEWAY"]
    missing = cfg.missing()
    if missing:
        raise click.ClickException("Missing settings: " + ", ".join(missing))
    return cfg


@app.cli.command("token")
@click.option("--email", prompt=True, help="Allow-listed email to sign in as")
def cli_token(email: str):
    """Mint a session token without going through /auth/login."""
    cfg = _configured()
    email = email.strip().lower()
    if email not in cfg.allowed_emails:
        raise click.ClickException(f"{email} is not in ALLOWED_EMAILS")

    token = TokenService(cfg.auth_secret).issue(email)
    click.secho("\n🔑  Session token issued (valid for 7 days).\n", fg="yellow")
    click.echo(f"{token}\n")


@app.cli.command("check-config")
def cli_check_config():
    """Fail unless every required setting is present."""
    cfg = _configured()
    click.secho(
        f"✅  Gateway ready for {cfg.github_repo} "
        f"({len(cfg.allowed_emails)} allowed email(s)).",
        fg="green",
    )


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    missing = app.config["GATEWAY"].missing()
    if missing:
        raise SystemExit("Missing settings: " + ", ".join(missing))
    app.run()
