"""reqtask curl - render a resolved task as a curl command."""

import requests

from reqtask.exceptions import AssemblyError
from reqtask.executor import assemble
from reqtask.models import FilePart, MultipartBody, ResolvedTask

BODY_BOUNDARY = "REQUEST_BODY"

# curl computes these itself.
_SKIPPED_HEADERS = {"content-length"}


def shell_escape(s: str) -> str:
    """Escape backslashes and single quotes for a single-quoted argument.

    Only these two characters are handled; the output is meant for reading
    and copy-paste, not as a safe shell boundary.
    """
    return s.replace("\\", "\\\\").replace("'", "\\'")


def heredoc_boundary(body: str, boundary: str = BODY_BOUNDARY) -> str:
    """Wrap boundary in underscores until it does not occur in body."""
    while boundary in body:
        boundary = f"__{boundary}__"
    return boundary


def to_curl(task: ResolvedTask) -> str:
    """Render task as one curl command line.

    Insecure and redirect settings become flags, every header becomes a
    ``-H`` argument and a non-empty body is fed through a heredoc.
    Multipart bodies become ``--form-string`` and ``-F name=@path``
    arguments so uploaded files are passed by path, byte for byte.
    """
    params = assemble(task)
    try:
        request = params.prepare()
    except requests.exceptions.RequestException as e:
        raise AssemblyError(f"invalid request: {e}") from e

    multipart = isinstance(task.body, MultipartBody)
    skipped = _SKIPPED_HEADERS | ({"content-type"} if multipart else set())

    flags = []
    if not params.verify:
        flags.append(" -k")
    if params.allow_redirects:
        flags.append(f" -L --max-redirs {params.max_redirects}")

    lines = [f"curl{''.join(flags)}"]
    lines.append(f" -X {shell_escape(request.method)} '{shell_escape(request.url)}'")
    # Explicit headers keep one entry per occurrence; the rest were added
    # by body encoding.
    explicit = {name.lower() for name, _ in params.headers}
    derived = [(n, v) for n, v in request.headers.items() if n.lower() not in explicit]
    for name, value in params.headers + derived:
        if name.lower() in skipped:
            continue
        lines.append(f" \\\n\t-H '{shell_escape(f'{name}: {value}')}'")

    if multipart:
        for name, part in task.body.parts.items():
            if isinstance(part, FilePart):
                lines.append(f" \\\n\t-F '{shell_escape(f'{name}=@{part.path}')}'")
            else:
                lines.append(f" \\\n\t--form-string '{shell_escape(f'{name}={part.value}')}'")
        return "".join(lines)

    body = request.body
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    if body:
        boundary = heredoc_boundary(body)
        lines.append(f" \\\n\t-d @- << {boundary}\n")
        lines.append(body)
        lines.append(f"\n{boundary}")
    return "".join(lines)
