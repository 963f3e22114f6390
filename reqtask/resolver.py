"""reqtask resolver - apply an interpolation context to a task."""

import logging
from collections.abc import Mapping
from typing import Any

from reqtask.exceptions import TaskNotFound
from reqtask.interpolation import create_context, interpolate
from reqtask.models import (
    BasicAuth,
    BearerAuth,
    Document,
    EmptyBody,
    FilePart,
    FormBody,
    JsonBody,
    MultipartBody,
    Param,
    PlainBody,
    ProxyAll,
    ProxyPerScheme,
    ProxyUrl,
    ResolvedTask,
    Target,
    Task,
    TextPart,
    TransportConfig,
)

logger = logging.getLogger(__name__)

Context = Mapping[str, str]


def resolve_in_value(value: Any, ctx: Context) -> Any:
    """Recursively interpolate object keys and string leaves.

    Numbers, booleans and null are returned unchanged.
    """
    if isinstance(value, str):
        return interpolate(value, ctx)
    if isinstance(value, dict):
        return {interpolate(k, ctx): resolve_in_value(v, ctx) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_in_value(item, ctx) for item in value]
    return value


def resolve_param_map(params: dict[str, Param], ctx: Context) -> dict[str, Param]:
    return {
        interpolate(k, ctx): tuple(interpolate(v, ctx) for v in values)
        for k, values in params.items()
    }


def resolve_body(body, ctx: Context):
    if isinstance(body, PlainBody):
        return PlainBody(interpolate(body.text, ctx))
    if isinstance(body, JsonBody):
        return JsonBody(resolve_in_value(body.value, ctx))
    if isinstance(body, FormBody):
        return FormBody({interpolate(k, ctx): interpolate(v, ctx) for k, v in body.fields.items()})
    if isinstance(body, MultipartBody):
        parts = {}
        for k, part in body.parts.items():
            if isinstance(part, FilePart):
                parts[interpolate(k, ctx)] = FilePart(interpolate(part.path, ctx))
            else:
                parts[interpolate(k, ctx)] = TextPart(interpolate(part.value, ctx))
        return MultipartBody(parts)
    return EmptyBody()


def resolve_auth(auth, ctx: Context):
    if isinstance(auth, BearerAuth):
        return BearerAuth(interpolate(auth.token, ctx))
    if isinstance(auth, BasicAuth):
        return BasicAuth(
            username=interpolate(auth.username, ctx),
            password=interpolate(auth.password, ctx),
        )
    return None


def _resolve_proxy_url(proxy: ProxyUrl | None, ctx: Context) -> ProxyUrl | None:
    if proxy is None:
        return None
    return ProxyUrl(
        url=interpolate(proxy.url, ctx),
        username=None if proxy.username is None else interpolate(proxy.username, ctx),
        password=None if proxy.password is None else interpolate(proxy.password, ctx),
    )


def resolve_config(config: TransportConfig | None, ctx: Context) -> TransportConfig:
    """Interpolate proxy settings; flags, limits and the env-file path pass through."""
    if config is None:
        return TransportConfig()
    proxy = config.proxy
    if isinstance(proxy, ProxyAll):
        proxy = ProxyAll(_resolve_proxy_url(proxy.proxy, ctx))
    elif isinstance(proxy, ProxyPerScheme):
        proxy = ProxyPerScheme(
            http=_resolve_proxy_url(proxy.http, ctx),
            https=_resolve_proxy_url(proxy.https, ctx),
        )
    return TransportConfig(
        insecure=config.insecure,
        redirect=config.redirect,
        proxy=proxy,
        env_file=config.env_file,
    )


def resolve_task(
    name: str,
    task: Task,
    ctx: Context,
    default_config: TransportConfig | None = None,
) -> ResolvedTask:
    """Build the resolved form of task. Neither task nor ctx is modified."""
    config = task.config if task.config is not None else default_config
    return ResolvedTask(
        name=name,
        target=Target(task.target.method, interpolate(task.target.url, ctx)),
        headers=resolve_param_map(task.headers, ctx),
        queries=resolve_param_map(task.queries, ctx),
        body=resolve_body(task.body, ctx),
        description=task.description,
        auth=resolve_auth(task.auth, ctx),
        config=resolve_config(config, ctx),
    )


def resolve(document: Document, task_name: str) -> ResolvedTask:
    """Resolve one named task of document.

    Raises TaskNotFound, or an InterpolationError (ValueNotFound,
    CircularReference) when the variable store or the task cannot be
    interpolated.
    """
    task = document.tasks.get(task_name)
    if task is None:
        raise TaskNotFound(task_name)
    ctx = create_context(document.values)
    logger.debug("Resolving task %s", task_name)
    return resolve_task(task_name, task, ctx, document.config)


def list_tasks(document: Document) -> list[tuple[str, str]]:
    """Return (name, description) for every task, without resolving."""
    return [(name, task.description) for name, task in document.tasks.items()]
