"""reqtask core - document loading, env files, variable merging."""

import logging
import sys
import tomllib
from pathlib import Path
from typing import IO

import yaml
from dotenv import dotenv_values

from reqtask.exceptions import DefinitionError, EnvFileError
from reqtask.models import Document, parse_document

logger = logging.getLogger(__name__)

STDIN = "-"

CWD_DOCUMENT_CANDIDATES = [
    "req.toml",
    "req.yaml",
    "req.yml",
]

FORMATS = ("toml", "yaml")

_SUFFIX_FORMATS = {
    ".toml": "toml",
    ".yaml": "yaml",
    ".yml": "yaml",
}


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates.

    If none exist, returns default.
    """
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_document_path(document_file: str | None) -> str:
    """Find the task document to use.

    Resolution order:
      1. Explicit -f flag (``-`` means stdin; no fallthrough if missing)
      2. req.toml / req.yaml / req.yml in CWD
      3. ./req.toml (reported as missing by the loader)
    """
    if document_file:
        return document_file
    found = resolve_path([Path(c) for c in CWD_DOCUMENT_CANDIDATES])
    return str(found) if found else CWD_DOCUMENT_CANDIDATES[0]


def detect_format(source: str, explicit: str | None = None) -> str:
    """Pick the document format: explicit flag, then file suffix, then TOML."""
    if explicit:
        return explicit
    if source == STDIN:
        return "toml"
    return _SUFFIX_FORMATS.get(Path(source).suffix.lower(), "toml")


def parse_text(text: str, fmt: str):
    """Parse document text into a plain tree.

    Syntax errors become DefinitionError.
    """
    try:
        if fmt == "yaml":
            return yaml.safe_load(text)
        return tomllib.loads(text)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise DefinitionError("", str(e)) from e


def load_document(
    source: str,
    fmt: str | None = None,
    stdin: IO[str] | None = None,
) -> Document:
    """Read and decode a task document from a path, or stdin for ``-``.

    Raises OSError if the file cannot be read and DefinitionError if its
    content is not a valid document.
    """
    fmt = detect_format(source, fmt)
    if source == STDIN:
        text = (stdin or sys.stdin).read()
    else:
        text = Path(source).read_text()
    logger.debug("Loading %s document from %s", fmt, source)
    return parse_document(parse_text(text, fmt))


def load_env_file(path: str) -> dict[str, str]:
    """Load KEY=VALUE pairs from a dotenv file.

    Values are taken literally; placeholders in them are resolved later
    together with the document values.
    """
    env_path = Path(path)
    if not env_path.is_file():
        raise EnvFileError(path, "no such file")
    values = dotenv_values(str(env_path), interpolate=False)
    logger.debug("Loaded %d values from %s", len(values), path)
    return {k: v for k, v in values.items() if v is not None}


def select_env_file(
    document: Document,
    task_name: str | None,
    cli_env_file: str | None = None,
) -> str | None:
    """Env file to load: --env-file, then task config, then document config.

    A task that carries its own config replaces the document config as a
    whole, so ``env-file = false`` there (or no env-file at all) loads
    nothing even when the document names one.
    """
    if cli_env_file:
        return cli_env_file
    task = document.tasks.get(task_name) if task_name else None
    if task is not None and task.config is not None:
        return task.config.env_file
    return document.env_file


def merge_values(
    document: Document,
    env_values: dict[str, str] | None = None,
    cli_values: list[tuple[str, str]] | None = None,
) -> Document:
    """Layer variables over the document store.

    Precedence: CLI -v values > env file values > document values.
    """
    pairs = list((env_values or {}).items()) + list(cli_values or [])
    return document.with_values(pairs)


def parse_var(assignment: str) -> tuple[str, str]:
    """Split a KEY=VALUE assignment at the first ``=``."""
    if "=" not in assignment:
        raise ValueError(f"no `=` found in `{assignment}`")
    key, value = assignment.split("=", 1)
    return key, value
