"""reqtask CLI - run HTTP tasks from a declarative document."""

import logging
import pprint
import sys
from pathlib import Path

import click

TOOL_HELP = """\
req - Run HTTP requests described in a task document.

\b
USAGE
─────
  req                       List tasks (name and description)
  req NAME                  Send task NAME and print the response body
  req NAME --curl           Print an equivalent curl command
  req NAME --dryrun         Print the resolved task without sending

\b
DOCUMENT (req.toml)
───────────────────
  \b
  [values]
  host = "example.com"
  base = "https://${host}"

  [tasks.create_user]
  description = "Create a user"
  POST = "${base}/users"

  [tasks.create_user.headers]
  X-Trace = ["a", "b"]          # repeated header

  [tasks.create_user.body.json]
  name = "${name}"

  [tasks.create_user.auth]
  bearer = "${TOKEN}"

  [config]
  redirect = 5                  # follow up to 5 redirects (0 = none)
  insecure = false
  proxy = "http://proxy:8080"
  env-file = ".env"             # or true for .env

  YAML documents (req.yaml) use the same keys.

\b
VARIABLES
─────────
  ${name} or $name is replaced by a value; $${name} keeps it literal.
  Values may reference each other in any order.
  Precedence: -v KEY=VALUE > env file > [values].
"""


def _parse_vars(ctx, param, value):
    from reqtask.core import parse_var

    pairs = []
    for assignment in value:
        try:
            pairs.append(parse_var(assignment))
        except ValueError as e:
            raise click.BadParameter(str(e), ctx=ctx, param=param) from e
    return pairs


@click.command(
    cls=click.Command,
    help=TOOL_HELP,
    context_settings={"max_content_width": 88},
)
@click.argument("name", required=False)
@click.option(
    "-f",
    "--file",
    "document_file",
    default=None,
    metavar="DEF",
    help="Read task definitions from DEF ('-' for stdin). "
    "Default: req.toml, req.yaml or req.yml in CWD.",
)
@click.option(
    "--format",
    "doc_format",
    type=click.Choice(["toml", "yaml"]),
    default=None,
    help="Document format. Default: from the file suffix, TOML for stdin.",
)
@click.option(
    "-o",
    "--out",
    "output",
    default=None,
    metavar="OUTPUT",
    help="Write the response body to OUTPUT.",
)
@click.option(
    "-i",
    "--include-header",
    is_flag=True,
    default=False,
    help="Include the status line and response headers in the output.",
)
@click.option(
    "-v",
    "--var",
    "variables",
    multiple=True,
    metavar="KEY=VALUE",
    callback=_parse_vars,
    help="Pass a variable. Repeatable. Overrides env file and document values.",
)
@click.option(
    "-e",
    "--env-file",
    default=None,
    metavar="FILE",
    help="Load variables from FILE. Overrides env-file in the document.",
)
@click.option(
    "--curl",
    "show_curl",
    is_flag=True,
    default=False,
    help="Print a compatible curl command instead of sending.",
)
@click.option(
    "--dryrun",
    is_flag=True,
    default=False,
    help="Print the resolved task without sending the request.",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Request timeout in seconds. Default: none.",
)
@click.option("--debug", is_flag=True, default=False, help="Log debug output to stderr.")
def main(
    name,
    document_file,
    doc_format,
    output,
    include_header,
    variables,
    env_file,
    show_curl,
    dryrun,
    timeout,
    debug,
):
    """Send, export or inspect a named task."""
    from reqtask.core import (
        load_document,
        load_env_file,
        merge_values,
        resolve_document_path,
        select_env_file,
    )
    from reqtask.curl import to_curl
    from reqtask.exceptions import (
        AssemblyError,
        DefinitionError,
        EnvFileError,
        InterpolationError,
        TaskNotFound,
    )
    from reqtask.executor import assemble, execute_request
    from reqtask.resolver import list_tasks, resolve

    _setup_logging(debug)

    # --- Load document ---
    source = resolve_document_path(document_file)
    try:
        document = load_document(source, doc_format, stdin=sys.stdin)
    except OSError as e:
        click.echo(f"ERROR: fail to open file: {source}: {e.strerror or e}", err=True)
        sys.exit(1)
    except DefinitionError as e:
        click.echo(f"ERROR: malformed file: {source}: {e}", err=True)
        sys.exit(1)

    if name is None:
        _cmd_list(list_tasks(document))
        return

    # --- Merge variables ---
    env_values = {}
    env_path = select_env_file(document, name, env_file)
    if env_path:
        try:
            env_values = load_env_file(env_path)
        except EnvFileError as e:
            click.echo(f"ERROR: {e}", err=True)
            sys.exit(1)
    document = merge_values(document, env_values, variables)

    # --- Resolve ---
    try:
        task = resolve(document, name)
    except TaskNotFound as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)
    except InterpolationError as e:
        click.echo(f"ERROR: fail to resolve context: {e}", err=True)
        sys.exit(1)

    if dryrun:
        click.echo(pprint.pformat(task))
        return

    # --- Export or send ---
    try:
        if show_curl:
            click.echo(to_curl(task))
            return
        params = assemble(task)
    except AssemblyError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    result = execute_request(params, timeout=timeout)
    if result.error:
        click.echo(f"ERROR: fail to send request: {result.error}", err=True)
        sys.exit(1)

    if include_header:
        _print_header(result)

    if output:
        try:
            Path(output).write_bytes(result.content)
        except OSError as e:
            click.echo(f"ERROR: fail to write output: {output}: {e.strerror or e}", err=True)
            sys.exit(1)
    else:
        click.echo(result.content, nl=False)

    sys.exit(0 if result.ok else 1)


# ── Helpers ──────────────────────────────────────────────────────────────


def _setup_logging(debug):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _cmd_list(tasks):
    for task_name, description in tasks:
        click.echo(f"{task_name}\t{description or '<NO DESCRIPTION>'}")


def _print_header(result):
    status = f"{result.http_version} {result.status_code}"
    if result.reason:
        status = f"{status} {result.reason}"
    click.echo(status)
    for key, value in result.headers:
        click.echo(f"{key}: {value}")
    click.echo()
