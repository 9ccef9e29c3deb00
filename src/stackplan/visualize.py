"""Renderings of the declared dependency graph."""

from rich.console import Console
from rich.markup import escape
from rich.text import Text
from rich.tree import Tree

from stackplan.graph import DependencyGraph
from stackplan.models import ResourceIdentity

KIND_COLORS = {
    "MicroService": "lightblue",
    "Worker": "lightblue",
    "CronJob": "lightblue",
    "Lambda": "lightblue",
    "VM": "lightblue",
    "RDS": "lightgreen",
    "Database": "lightgreen",
    "DynamoDB": "lightgreen",
    "Cache": "lightgreen",
    "S3": "lightyellow",
    "SQS": "lightpink",
    "SNS": "lightpink",
    "Queue": "lightpink",
}
DEFAULT_COLOR = "lightgray"

GRAPH_FORMATS = ("ascii", "dot", "mermaid")


def edge_count(graph: DependencyGraph) -> int:
    return sum(len(graph.dependencies(node)) for node in graph.nodes)


def to_ascii(graph: DependencyGraph, title: str = "", batch_size: int = 0) -> str:
    """Render nodes grouped by deployment level, or by batch when ``batch_size`` is set."""
    console = Console(record=True, width=120)
    groups = graph.batches(batch_size) if batch_size > 0 else graph.levels()
    heading = "Batch" if batch_size > 0 else "Level"

    tree = Tree(Text.from_markup(f"[bold]Dependency graph[/bold] {escape(title)}".rstrip()))
    tree.add(Text(f"Nodes: {len(graph)}  Edges: {edge_count(graph)}  Levels: {len(graph.levels())}"))
    external = graph.external_dependencies
    for index, group in enumerate(groups):
        branch = tree.add(Text(f"{heading} {index} ({len(group)})", style="bold"))
        for node in group:
            entry = branch.add(Text(f"[{node.kind}] {node.key}"))
            deps = graph.dependencies(node)
            if deps:
                entry.add(Text(f"depends on: {_keys(deps)}"))
            dependents = graph.dependents(node)
            if dependents:
                entry.add(Text(f"required by: {_keys(dependents)}", style="dim"))
            if node in external:
                entry.add(Text(f"undeclared: {_keys(external[node])}", style="yellow"))

    console.print(tree)
    return console.export_text()


def to_dot(graph: DependencyGraph) -> str:
    """Render the graph as GraphViz DOT, edges pointing at dependencies."""
    lines = [
        "digraph deployment {",
        "  rankdir=LR;",
        "  node [shape=box, style=rounded];",
        "",
    ]
    for node in graph.nodes:
        color = KIND_COLORS.get(node.kind, DEFAULT_COLOR)
        label = f"{_dot(node.name)}\\n({_dot(node.kind)})"
        lines.append(f'  "{_dot(node.key)}" [label="{label}", fillcolor="{color}", style="filled,rounded"];')
    lines.append("")
    for node in graph.nodes:
        for dep in graph.dependencies(node):
            lines.append(f'  "{_dot(node.key)}" -> "{_dot(dep.key)}";')
    lines.append("}")
    return "\n".join(lines) + "\n"


def to_mermaid(graph: DependencyGraph) -> str:
    """Render the graph as a Mermaid flowchart."""
    ids = {node: f"n{index}" for index, node in enumerate(graph.nodes)}
    lines = ["graph LR"]
    for node, node_id in ids.items():
        lines.append(f'  {node_id}["{_mermaid(node.name)}<br/>{_mermaid(node.kind)}"]')
    for node in graph.nodes:
        for dep in graph.dependencies(node):
            lines.append(f"  {ids[node]} --> {ids[dep]}")
    return "\n".join(lines) + "\n"


def _keys(identities: list[ResourceIdentity]) -> str:
    return ", ".join(identity.key for identity in identities)


def _dot(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _mermaid(value: str) -> str:
    return value.replace('"', "#quot;")
