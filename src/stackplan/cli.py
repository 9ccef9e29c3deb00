"""CLI entrypoint for stackplan."""

import logging
import os
import sys

import click
from botocore.exceptions import ClientError

from stackplan.aws.state_store import S3StateStore
from stackplan.errors import DocumentError, PlanError
from stackplan.formatter import FORMATTERS, format_json, format_markdown
from stackplan.graph import DependencyGraph
from stackplan.integrations.github import post_plan_comment
from stackplan.loader import load_desired, load_state, read_json
from stackplan.planner import ChangeSetBuilder, PlanContext
from stackplan.policy import ProviderRegistry, default_registry
from stackplan.visualize import GRAPH_FORMATS, to_ascii, to_dot, to_mermaid

logger = logging.getLogger("stackplan")


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(2)


def _registry(policy_path) -> ProviderRegistry:
    registry = default_registry()
    if policy_path:
        registry = ProviderRegistry.from_mapping(read_json(policy_path), base=registry)
    return registry


def _write(path: str, text: str, what: str) -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as exc:
        _fail(f"cannot write {path}: {exc.strerror}")
    click.echo(f"{what} written to {path}", err=True)


policy_option = click.option(
    "--policy",
    "policy_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Extra kind policies (JSON), merged over the built-in kinds.",
)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="warning",
    help="Diagnostics written to stderr.",
)
def main(log_level):
    """Plan infrastructure changes against recorded state."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@main.command("plan")
@click.argument("desired", type=click.Path(exists=True, dir_okay=False))
@click.option("--state", "state_path", type=click.Path(dir_okay=False), default=None,
              help="Local state snapshot (JSON).")
@click.option("--state-bucket", default=None, help="S3 bucket holding state snapshots.")
@click.option("--state-prefix", default="", help="Key prefix inside the state bucket.")
@click.option("--region", default=None, help="AWS region for the state bucket.")
@policy_option
@click.option(
    "--format",
    "output_format",
    type=click.Choice(sorted(FORMATTERS)),
    default="table",
    help="Output format.",
)
@click.option("--redact-values", is_flag=True, help="Mask every attribute value in the output.")
@click.option("--max-concurrent", type=click.IntRange(1, 32), default=4,
              help="Max concurrent resource comparisons.")
@click.option("--out", "out_path", type=click.Path(dir_okay=False), default=None,
              help="Also write the plan as JSON to this file.")
@click.option("--post-github-pr", type=int, default=None, help="Post the plan as a GitHub PR comment.")
def plan_command(
    desired,
    state_path,
    state_bucket,
    state_prefix,
    region,
    policy_path,
    output_format,
    redact_values,
    max_concurrent,
    out_path,
    post_github_pr,
):
    """Plan the changes needed to reconcile deployed resources with DESIRED.

    Exits 0 when nothing changes, 1 when changes are pending and 2 when the
    plan is incomplete or could not be computed.
    """
    if state_path and state_bucket:
        raise click.UsageError("--state and --state-bucket are mutually exclusive.")

    try:
        declared = load_desired(desired)
        if state_bucket:
            store = S3StateStore(state_bucket, prefix=state_prefix, region=region)
            snapshot = store.load(declared.stack, declared.environment)
        else:
            snapshot = load_state(state_path)
        registry = _registry(policy_path)
    except DocumentError as exc:
        _fail(str(exc))

    builder = ChangeSetBuilder(registry, max_concurrent=max_concurrent)
    try:
        result = builder.build(
            declared.resources,
            snapshot.resources,
            stack=declared.stack,
            environment=declared.environment,
            tenant=declared.tenant,
            context=PlanContext(logger=logger),
        )
    except PlanError as exc:
        _fail(str(exc))

    click.echo(FORMATTERS[output_format](result, redact=redact_values))

    if out_path:
        _write(out_path, format_json(result, redact=redact_values), "Plan")

    if post_github_pr is not None:
        token = os.environ.get("GITHUB_TOKEN")
        repo = os.environ.get("GITHUB_REPO")
        if not token or not repo:
            _fail("GITHUB_TOKEN and GITHUB_REPO env vars required.")
        post_plan_comment(
            body=format_markdown(result, redact=redact_values),
            repo=repo,
            pr_number=post_github_pr,
            token=token,
        )

    if not result.ok:
        for error in result.errors:
            click.echo(f"Error: {error}", err=True)
        sys.exit(2)
    sys.exit(1 if result.change_set.summary.has_changes else 0)


@main.command("graph")
@click.argument("desired", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", "output_format", type=click.Choice(GRAPH_FORMATS), default="ascii",
              help="Graph rendering.")
@click.option("--batch-size", type=click.IntRange(min=0), default=0,
              help="Split levels into deployment batches of at most N resources (ascii only).")
@click.option("--out", "out_path", type=click.Path(dir_okay=False), default=None,
              help="Write the graph to this file instead of stdout.")
def graph_command(desired, output_format, batch_size, out_path):
    """Show the declared dependency graph of DESIRED."""
    try:
        declared = load_desired(desired)
    except DocumentError as exc:
        _fail(str(exc))

    graph = DependencyGraph.from_resources(declared.resources)
    try:
        graph.check_acyclic()
    except PlanError as exc:
        _fail(str(exc))

    if output_format == "dot":
        rendered = to_dot(graph)
    elif output_format == "mermaid":
        rendered = to_mermaid(graph)
    else:
        rendered = to_ascii(graph, title=f"{declared.stack}/{declared.environment}", batch_size=batch_size)

    if out_path:
        _write(out_path, rendered, "Graph")
    else:
        click.echo(rendered)


@main.command("kinds")
@policy_option
def kinds_command(policy_path):
    """List the resource kinds the planner can compare."""
    try:
        registry = _registry(policy_path)
    except DocumentError as exc:
        _fail(str(exc))
    for kind in registry.kinds():
        click.echo(f"{kind:<18} {registry.label_for(kind)}")


@main.command("environments")
@click.argument("stack")
@click.option("--state-bucket", required=True, help="S3 bucket holding state snapshots.")
@click.option("--state-prefix", default="", help="Key prefix inside the state bucket.")
@click.option("--region", default=None, help="AWS region for the state bucket.")
def environments_command(stack, state_bucket, state_prefix, region):
    """List environments of STACK that have a stored state snapshot."""
    store = S3StateStore(state_bucket, prefix=state_prefix, region=region)
    try:
        environments = store.list_environments(stack)
    except ClientError as exc:
        _fail(f"cannot list s3://{state_bucket}: {exc}")
    for environment in environments:
        click.echo(environment)
