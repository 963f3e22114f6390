"""reqtask interpolation - placeholder substitution and context building.

Placeholders are ``${name}`` or a bare ``$name`` (ASCII letters and digits).
A doubled ``$$`` in front of a placeholder escapes it: ``$${x}`` renders as
the literal ``${x}``.
"""

import enum
import logging
import re
from collections.abc import Callable, Iterator, Mapping

from reqtask.exceptions import CircularReference, ValueNotFound

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"(\$)?\$(?:\{([^}]+)\}|([A-Za-z0-9]+))")


class InterpolationContext(Mapping):
    """Read-only mapping of variable name to fully resolved value."""

    def __init__(self, values: Mapping[str, str] | None = None):
        self._values = dict(values or {})

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"InterpolationContext({self._values!r})"


def interpolate_with(text: str, lookup: Callable[[str], str]) -> str:
    """Replace every placeholder in text with lookup(name).

    Text between placeholders is copied unchanged. Escaped placeholders
    lose one ``$`` and are not looked up. Errors raised by lookup propagate.
    """
    if "$" not in text:
        return text

    pieces: list[str] = []
    pos = 0
    for m in PLACEHOLDER_PATTERN.finditer(text):
        pieces.append(text[pos : m.start()])
        if m.group(1):
            pieces.append(m.group(0)[1:])
        else:
            pieces.append(lookup(m.group(2) or m.group(3)))
        pos = m.end()
    pieces.append(text[pos:])
    return "".join(pieces)


def interpolate(text: str, ctx: Mapping[str, str]) -> str:
    """Interpolate text against a resolved context.

    Raises ValueNotFound for any name missing from ctx.
    """

    def _lookup(name: str) -> str:
        try:
            return ctx[name]
        except KeyError:
            raise ValueNotFound(name) from None

    return interpolate_with(text, _lookup)


def references(text: str) -> list[str]:
    """Names referenced by unescaped placeholders in text, in order."""
    return [
        m.group(2) or m.group(3)
        for m in PLACEHOLDER_PATTERN.finditer(text)
        if not m.group(1)
    ]


class _Status(enum.Enum):
    UNVISITED = enum.auto()
    IN_PROGRESS = enum.auto()
    DONE = enum.auto()


def create_context(store: Mapping[str, str]) -> InterpolationContext:
    """Resolve a variable store into an InterpolationContext.

    Values may reference other entries in any order and through chains of
    any depth. Each key is resolved once, after all of its dependencies,
    with an explicit stack instead of recursion.

    Raises ValueNotFound when a value references a name missing from the
    store, and CircularReference naming the key that was revisited while
    still in progress. Which member of a cycle gets reported depends on
    traversal order.
    """
    status: dict[str, _Status] = {}
    resolved: dict[str, str] = {}

    for root in store:
        if status.get(root, _Status.UNVISITED) is _Status.DONE:
            continue

        status[root] = _Status.IN_PROGRESS
        stack = [(root, iter(references(store[root])))]
        while stack:
            key, deps = stack[-1]
            for dep in deps:
                state = status.get(dep, _Status.UNVISITED)
                if state is _Status.DONE:
                    continue
                if dep not in store:
                    raise ValueNotFound(dep)
                if state is _Status.IN_PROGRESS:
                    raise CircularReference(dep)
                status[dep] = _Status.IN_PROGRESS
                stack.append((dep, iter(references(store[dep]))))
                break
            else:
                resolved[key] = interpolate_with(store[key], resolved.__getitem__)
                status[key] = _Status.DONE
                stack.pop()

    logger.debug("Resolved %d variables", len(resolved))
    return InterpolationContext({key: resolved[key] for key in store})
