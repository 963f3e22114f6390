"""reqtask models - task document types and validating decoders.

Every ``parse_*`` function takes the plain tree produced by the TOML/YAML
parser and either returns a fully valid model value or raises
DefinitionError. Mutually exclusive choices (method, body, auth, proxy)
are decoded into one variant class each, so an ambiguous combination can
never be represented.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from reqtask.exceptions import DefinitionError

METHODS = ("GET", "POST", "PUT", "DELETE", "HEAD", "OPTIONS", "CONNECT", "PATCH", "TRACE")

BODY_KINDS = ("plain", "json", "form", "multipart")

DEFAULT_ENV_FILE = ".env"

SINGLE_TASK_NAME = "default"

# A header or query value: one occurrence per element.
Param = tuple[str, ...]


# ── Variants ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Target:
    method: str
    url: str


@dataclass(frozen=True)
class EmptyBody:
    pass


@dataclass(frozen=True)
class PlainBody:
    text: str


@dataclass(frozen=True)
class JsonBody:
    value: Any


@dataclass(frozen=True)
class FormBody:
    fields: dict[str, str]


@dataclass(frozen=True)
class TextPart:
    value: str


@dataclass(frozen=True)
class FilePart:
    path: str


@dataclass(frozen=True)
class MultipartBody:
    parts: dict[str, TextPart | FilePart]


Body = EmptyBody | PlainBody | JsonBody | FormBody | MultipartBody


@dataclass(frozen=True)
class BearerAuth:
    token: str


@dataclass(frozen=True)
class BasicAuth:
    username: str
    password: str


Auth = BearerAuth | BasicAuth


@dataclass(frozen=True)
class ProxyUrl:
    url: str
    username: str | None = None
    password: str | None = None

    @property
    def credentials(self) -> tuple[str, str] | None:
        if self.username is None or self.password is None:
            return None
        return (self.username, self.password)


@dataclass(frozen=True)
class ProxyAll:
    """One proxy for every scheme."""

    proxy: ProxyUrl


@dataclass(frozen=True)
class ProxyPerScheme:
    http: ProxyUrl | None = None
    https: ProxyUrl | None = None


Proxy = ProxyAll | ProxyPerScheme


@dataclass(frozen=True)
class TransportConfig:
    insecure: bool = False
    redirect: int = 0
    proxy: Proxy | None = None
    env_file: str | None = None


@dataclass(frozen=True)
class Task:
    target: Target
    headers: dict[str, Param] = field(default_factory=dict)
    queries: dict[str, Param] = field(default_factory=dict)
    body: Body = EmptyBody()
    description: str = ""
    auth: Auth | None = None
    config: TransportConfig | None = None


@dataclass(frozen=True)
class ResolvedTask:
    """A task with every placeholder substituted.

    ``config`` is the effective transport config (task-level, falling back
    to the document default).
    """

    name: str
    target: Target
    headers: dict[str, Param]
    queries: dict[str, Param]
    body: Body
    description: str
    auth: Auth | None
    config: TransportConfig


@dataclass(frozen=True)
class Document:
    tasks: dict[str, Task]
    values: dict[str, str] = field(default_factory=dict)
    config: TransportConfig | None = None

    def with_values(self, pairs: Iterable[tuple[str, str]]) -> "Document":
        """Return a copy whose variable store is updated with pairs.

        Later pairs override earlier ones and document-declared values.
        """
        values = dict(self.values)
        for key, value in pairs:
            values[key] = value
        return Document(tasks=self.tasks, values=values, config=self.config)

    @property
    def env_file(self) -> str | None:
        return self.config.env_file if self.config else None


# ── Decoders ─────────────────────────────────────────────────────────────


def _expect_mapping(raw: Any, where: str) -> dict:
    if not isinstance(raw, dict):
        raise DefinitionError(where, f"expected a table, got {_type_name(raw)}")
    return raw


def _as_str(raw: Any, where: str) -> str:
    """Accept strings, and numbers as written (YAML turns 8080 into an int)."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, int | float) and not isinstance(raw, bool):
        return str(raw)
    raise DefinitionError(where, f"expected a string, got {_type_name(raw)}")


def _type_name(raw: Any) -> str:
    if raw is None:
        return "null"
    if isinstance(raw, dict):
        return "table"
    if isinstance(raw, list):
        return "array"
    return type(raw).__name__


def _pick_alias(raw: dict, names: tuple[str, ...], where: str) -> Any:
    present = [n for n in names if n in raw]
    if len(present) > 1:
        raise DefinitionError(where, f"duplicate definition: {', '.join(present)}")
    return raw[present[0]] if present else None


def parse_target(raw: dict, where: str) -> Target:
    present = [m for m in METHODS if m in raw]
    if not present:
        raise DefinitionError(where, "missing definition of method and url")
    if len(present) > 1:
        raise DefinitionError(
            where,
            f"duplicate definition of method and url ({', '.join(present)})",
        )
    method = present[0]
    return Target(method=method, url=_as_str(raw[method], f"{where}.{method}"))


def parse_param(raw: Any, where: str) -> Param:
    if isinstance(raw, list):
        return tuple(_as_str(item, f"{where}[{i}]") for i, item in enumerate(raw))
    return (_as_str(raw, where),)


def parse_param_map(raw: Any, where: str) -> dict[str, Param]:
    if raw is None:
        return {}
    raw = _expect_mapping(raw, where)
    return {str(k): parse_param(v, f"{where}.{k}") for k, v in raw.items()}


def _check_json_value(raw: Any, where: str) -> None:
    if raw is None or isinstance(raw, str | bool | int | float):
        return
    if isinstance(raw, list):
        for i, item in enumerate(raw):
            _check_json_value(item, f"{where}[{i}]")
        return
    if isinstance(raw, dict):
        for k, v in raw.items():
            if not isinstance(k, str):
                raise DefinitionError(where, f"object keys must be strings, got {k!r}")
            _check_json_value(v, f"{where}.{k}")
        return
    raise DefinitionError(where, f"unsupported value type {_type_name(raw)}")


def parse_multipart_value(raw: Any, where: str) -> TextPart | FilePart:
    if isinstance(raw, str):
        return TextPart(raw)
    if isinstance(raw, dict) and list(raw) == ["file"] and isinstance(raw["file"], str):
        return FilePart(raw["file"])
    raise DefinitionError(
        where,
        'multipart value must be a string or a table with a single "file" path',
    )


def parse_body(raw: Any, where: str) -> Body:
    if raw is None:
        return EmptyBody()
    raw = _expect_mapping(raw, where)

    unknown = [k for k in raw if k not in BODY_KINDS]
    if unknown:
        raise DefinitionError(
            where,
            f"unknown body kind {unknown[0]!r}, expected one of {', '.join(BODY_KINDS)}",
        )
    present = [k for k in BODY_KINDS if k in raw]
    if len(present) > 1:
        raise DefinitionError(where, f"conflicting body definitions: {', '.join(present)}")
    if not present:
        return EmptyBody()

    kind = present[0]
    value = raw[kind]
    where = f"{where}.{kind}"
    if kind == "plain":
        return PlainBody(_as_str(value, where))
    if kind == "json":
        _check_json_value(value, where)
        return JsonBody(value)
    if kind == "form":
        value = _expect_mapping(value, where)
        return FormBody({str(k): _as_str(v, f"{where}.{k}") for k, v in value.items()})
    value = _expect_mapping(value, where)
    return MultipartBody(
        {str(k): parse_multipart_value(v, f"{where}.{k}") for k, v in value.items()},
    )


def parse_auth(raw: Any, where: str) -> Auth | None:
    if raw is None:
        return None
    raw = _expect_mapping(raw, where)
    present = [k for k in ("bearer", "basic") if k in raw]
    unknown = [k for k in raw if k not in ("bearer", "basic")]
    if unknown:
        raise DefinitionError(where, f"unknown auth kind {unknown[0]!r}")
    if len(present) != 1:
        raise DefinitionError(where, "exactly one of bearer or basic is required")

    if present[0] == "bearer":
        return BearerAuth(_as_str(raw["bearer"], f"{where}.bearer"))

    basic = _expect_mapping(raw["basic"], f"{where}.basic")
    for key in ("username", "password"):
        if key not in basic:
            raise DefinitionError(f"{where}.basic", f"missing {key}")
    return BasicAuth(
        username=_as_str(basic["username"], f"{where}.basic.username"),
        password=_as_str(basic["password"], f"{where}.basic.password"),
    )


def parse_proxy_url(raw: Any, where: str) -> ProxyUrl:
    if isinstance(raw, str):
        return ProxyUrl(raw)
    raw = _expect_mapping(raw, where)
    if "url" not in raw:
        raise DefinitionError(where, "missing proxy url")
    username = raw.get("username")
    password = raw.get("password")
    if (username is None) != (password is None):
        raise DefinitionError(where, "proxy username and password must be given together")
    return ProxyUrl(
        url=_as_str(raw["url"], f"{where}.url"),
        username=None if username is None else _as_str(username, f"{where}.username"),
        password=None if password is None else _as_str(password, f"{where}.password"),
    )


def parse_proxy(raw: Any, where: str) -> Proxy | None:
    if raw is None:
        return None
    if isinstance(raw, str) or (isinstance(raw, dict) and "url" in raw):
        return ProxyAll(parse_proxy_url(raw, where))
    raw = _expect_mapping(raw, where)
    unknown = [k for k in raw if k not in ("http", "https")]
    if unknown:
        raise DefinitionError(where, f"unknown proxy scheme {unknown[0]!r}")
    return ProxyPerScheme(
        http=parse_proxy_url(raw["http"], f"{where}.http") if "http" in raw else None,
        https=parse_proxy_url(raw["https"], f"{where}.https") if "https" in raw else None,
    )


def parse_env_file(raw: Any, where: str) -> str | None:
    if raw is None or raw is False:
        return None
    if raw is True:
        return DEFAULT_ENV_FILE
    if isinstance(raw, str):
        return raw
    raise DefinitionError(where, "env-file must be a boolean or a path")


def parse_config(raw: Any, where: str) -> TransportConfig | None:
    if raw is None:
        return None
    raw = _expect_mapping(raw, where)

    insecure = raw.get("insecure", False)
    if not isinstance(insecure, bool):
        raise DefinitionError(f"{where}.insecure", "expected a boolean")

    redirect = raw.get("redirect", 0)
    if isinstance(redirect, bool) or not isinstance(redirect, int) or redirect < 0:
        raise DefinitionError(f"{where}.redirect", "expected a non-negative integer")

    return TransportConfig(
        insecure=insecure,
        redirect=redirect,
        proxy=parse_proxy(raw.get("proxy"), f"{where}.proxy"),
        env_file=parse_env_file(raw.get("env-file"), f"{where}.env-file"),
    )


def parse_task(raw: Any, where: str) -> Task:
    raw = _expect_mapping(raw, where)
    description = raw.get("description") or ""
    return Task(
        target=parse_target(raw, where),
        headers=parse_param_map(raw.get("headers"), f"{where}.headers"),
        queries=parse_param_map(raw.get("queries"), f"{where}.queries"),
        body=parse_body(raw.get("body"), f"{where}.body"),
        description=_as_str(description, f"{where}.description"),
        auth=parse_auth(raw.get("auth"), f"{where}.auth"),
        config=parse_config(raw.get("config"), f"{where}.config"),
    )


def parse_document(raw: Any) -> Document:
    """Decode a parsed TOML/YAML tree into a Document.

    ``tasks`` may also be spelled ``req`` and ``values`` may be spelled
    ``variables``. A document with no task table but a method key at the
    top level is a single task named ``default``.
    """
    if raw is None:
        raw = {}
    raw = _expect_mapping(raw, "")

    tasks_raw = _pick_alias(raw, ("tasks", "req"), "")
    values_raw = _pick_alias(raw, ("values", "variables"), "")

    if tasks_raw is None and any(m in raw for m in METHODS):
        tasks = {SINGLE_TASK_NAME: parse_task(raw, SINGLE_TASK_NAME)}
        return Document(
            tasks=tasks,
            values=_parse_values(values_raw),
            config=tasks[SINGLE_TASK_NAME].config,
        )
    if tasks_raw is None:
        raise DefinitionError("", "missing field `tasks`")

    tasks_raw = _expect_mapping(tasks_raw, "tasks")
    tasks = {str(name): parse_task(t, f"tasks.{name}") for name, t in tasks_raw.items()}
    return Document(
        tasks=tasks,
        values=_parse_values(values_raw),
        config=parse_config(raw.get("config"), "config"),
    )


def _parse_values(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    raw = _expect_mapping(raw, "values")
    return {str(k): _as_str(v, f"values.{k}") for k, v in raw.items()}
