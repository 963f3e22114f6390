"""reqtask executor - request assembly and HTTP execution."""

import base64
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlsplit, urlunsplit

import requests
from requests.structures import CaseInsensitiveDict

from reqtask import __version__
from reqtask.exceptions import AssemblyError
from reqtask.models import (
    BasicAuth,
    BearerAuth,
    FilePart,
    FormBody,
    JsonBody,
    MultipartBody,
    PlainBody,
    ProxyAll,
    ProxyPerScheme,
    ProxyUrl,
    ResolvedTask,
)

logger = logging.getLogger(__name__)

USER_AGENT = f"req/{__version__}"

JSON_CONTENT_TYPE = "application/json"

_HTTP_VERSIONS = {10: "HTTP/1.0", 11: "HTTP/1.1", 20: "HTTP/2"}


@dataclass
class RequestParameters:
    """Everything the HTTP client needs to perform one exchange.

    ``headers`` and ``params`` hold one entry per occurrence, in order.
    ``proxies`` is keyed by ``all``, ``http`` or ``https``.
    """

    method: str
    url: str
    params: list[tuple[str, str]] = field(default_factory=list)
    headers: list[tuple[str, str]] = field(default_factory=list)
    data: bytes | list[tuple[str, str]] | None = None
    files: list[tuple[str, tuple[str | None, bytes | str]]] | None = None
    content_type: str | None = None
    verify: bool = True
    max_redirects: int = 0
    proxies: dict[str, str] = field(default_factory=dict)

    @property
    def allow_redirects(self) -> bool:
        return self.max_redirects > 0

    def header_dict(self) -> CaseInsensitiveDict:
        """Fold repeated header names into one comma-separated value."""
        folded: CaseInsensitiveDict = CaseInsensitiveDict()
        for name, value in self.headers:
            if name in folded:
                folded[name] = f"{folded[name]}, {value}"
            else:
                folded[name] = value
        return folded

    def prepare(self) -> requests.PreparedRequest:
        headers = self.header_dict()
        if self.content_type and "Content-Type" not in headers:
            headers["Content-Type"] = self.content_type
        return requests.Request(
            method=self.method,
            url=self.url,
            headers=headers,
            params=self.params,
            data=self.data,
            files=self.files,
        ).prepare()


class RequestResult:
    """Result of an HTTP request."""

    def __init__(self):
        self.status_code: int = 0
        self.reason: str = ""
        self.http_version: str = "HTTP/1.1"
        self.headers: list[tuple[str, str]] = []
        self.content: bytes = b""
        self.elapsed_ms: float = 0
        self.error: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def authorization_header(auth) -> str:
    if isinstance(auth, BearerAuth):
        return f"Bearer {auth.token}"
    credentials = base64.b64encode(f"{auth.username}:{auth.password}".encode()).decode()
    return f"Basic {credentials}"


def _expand(params: dict[str, tuple[str, ...]]) -> list[tuple[str, str]]:
    return [(name, value) for name, values in params.items() for value in values]


def _check_header(name: str, value: str) -> None:
    # http.client encodes names as ASCII and values as latin-1.
    try:
        name.encode("ascii")
        value.encode("latin-1")
    except UnicodeEncodeError as e:
        raise AssemblyError(f"invalid header: {name}: {value!r} is not encodable as {e.encoding}") from e


def _read_file(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise AssemblyError(f"fail to read uploading file: {path}: {e.strerror or e}") from e


def _body_arguments(body) -> dict[str, Any]:
    if isinstance(body, PlainBody):
        return {"data": body.text.encode("utf-8")}
    if isinstance(body, JsonBody):
        return {
            "data": json.dumps(body.value).encode("utf-8"),
            "content_type": JSON_CONTENT_TYPE,
        }
    if isinstance(body, FormBody):
        return {"data": list(body.fields.items())}
    if isinstance(body, MultipartBody):
        files = []
        for name, part in body.parts.items():
            if isinstance(part, FilePart):
                files.append((name, (Path(part.path).name, _read_file(part.path))))
            else:
                files.append((name, (None, part.value)))
        return {"files": files}
    return {}


def proxy_url_with_credentials(proxy: ProxyUrl) -> str:
    """Validate a proxy URL and embed its credentials as userinfo."""
    parts = urlsplit(proxy.url)
    if not parts.scheme or not parts.hostname:
        raise AssemblyError(f"invalid proxy url: {proxy.url}")
    if proxy.credentials is None:
        return proxy.url
    username, password = proxy.credentials
    host = parts.netloc.rsplit("@", 1)[-1]
    netloc = f"{quote(username, safe='')}:{quote(password, safe='')}@{host}"
    return urlunsplit(parts._replace(netloc=netloc))


def _proxies(proxy) -> dict[str, str]:
    if isinstance(proxy, ProxyAll):
        return {"all": proxy_url_with_credentials(proxy.proxy)}
    if isinstance(proxy, ProxyPerScheme):
        proxies = {}
        if proxy.http is not None:
            proxies["http"] = proxy_url_with_credentials(proxy.http)
        if proxy.https is not None:
            proxies["https"] = proxy_url_with_credentials(proxy.https)
        return proxies
    return {}


def assemble(task: ResolvedTask) -> RequestParameters:
    """Map a resolved task to request parameters.

    The Authorization header from ``auth`` comes first, then the explicit
    headers; a same-named explicit header is kept as well. Raises
    AssemblyError for unreadable multipart files, header names or values
    that cannot go on the wire, and invalid proxy URLs.
    """
    headers: list[tuple[str, str]] = []
    if task.auth is not None:
        headers.append(("Authorization", authorization_header(task.auth)))
    headers.extend(_expand(task.headers))
    for name, value in headers:
        _check_header(name, value)

    return RequestParameters(
        method=task.target.method,
        url=task.target.url,
        params=_expand(task.queries),
        headers=headers,
        verify=not task.config.insecure,
        max_redirects=task.config.redirect,
        proxies=_proxies(task.config.proxy),
        **_body_arguments(task.body),
    )


def _session_proxies(proxies: dict[str, str]) -> dict[str, str]:
    # requests looks up "http"/"https" before "all", so an all-schemes proxy
    # is spelled out per scheme to win over *_proxy environment variables.
    if "all" in proxies:
        return {"http": proxies["all"], "https": proxies["all"]}
    return dict(proxies)


def execute_request(
    params: RequestParameters,
    timeout: float | None = None,
) -> RequestResult:
    """Send the request and return a structured result.

    - Follows up to ``params.max_redirects`` redirects; exceeding the
      limit is reported as an error
    - Captures timing
    - Transport failures are reported on the error field, never raised
    """
    result = RequestResult()

    with requests.Session() as session:
        session.max_redirects = params.max_redirects
        try:
            prepared = params.prepare()
            prepared.headers.setdefault("User-Agent", USER_AGENT)
            settings = session.merge_environment_settings(
                prepared.url,
                _session_proxies(params.proxies),
                None,
                params.verify,
                None,
            )
            logger.debug("Sending %s %s", prepared.method, prepared.url)

            start = time.monotonic()
            resp = session.send(
                prepared,
                allow_redirects=params.allow_redirects,
                timeout=timeout,
                **settings,
            )
            result.elapsed_ms = (time.monotonic() - start) * 1000

            result.status_code = resp.status_code
            result.reason = resp.reason or ""
            result.http_version = _HTTP_VERSIONS.get(
                getattr(resp.raw, "version", 11),
                "HTTP/1.1",
            )
            result.headers = list(resp.headers.items())
            result.content = resp.content

        except requests.exceptions.TooManyRedirects:
            result.error = f"Too many redirects (limit {params.max_redirects})"
        except requests.exceptions.InvalidProxyURL as e:
            result.error = f"Invalid proxy URL: {e}"
        except requests.exceptions.Timeout:
            result.error = f"Request timed out after {timeout}s"
        except requests.exceptions.ConnectionError as e:
            result.error = f"Connection error: {e}"
        except (requests.exceptions.RequestException, UnicodeError) as e:
            result.error = f"Request failed: {e}"

    logger.debug("Finished with status %s in %.0fms", result.status_code, result.elapsed_ms)
    return result
