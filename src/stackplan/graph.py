"""Dependency graph over resource identities."""

import heapq
import logging
from collections.abc import Callable, Iterable

from stackplan.errors import DependencyCycleError
from stackplan.models import ResourceIdentity

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Directed graph with an edge A -> B when A depends on B.

    Creation order places B before A. Deletion order places A before B.
    Ties between unrelated nodes always break by identity key.
    """

    def __init__(self):
        self._deps: dict[ResourceIdentity, set[ResourceIdentity]] = {}
        self._external: dict[ResourceIdentity, set[ResourceIdentity]] = {}

    @classmethod
    def from_dependencies(
        cls, dependencies: Iterable[tuple[ResourceIdentity, Iterable[ResourceIdentity]]]
    ) -> "DependencyGraph":
        pairs = [(identity, tuple(deps)) for identity, deps in dependencies]
        graph = cls()
        for identity, _ in pairs:
            graph.add_node(identity)
        for identity, deps in pairs:
            for dep in deps:
                graph.add_edge(identity, dep)
        return graph

    @classmethod
    def from_resources(cls, resources) -> "DependencyGraph":
        """Build a graph from anything with ``identity`` and ``depends_on``."""
        return cls.from_dependencies((r.identity, r.depends_on) for r in resources)

    def add_node(self, identity: ResourceIdentity) -> None:
        self._deps.setdefault(identity, set())

    def add_edge(self, identity: ResourceIdentity, dependency: ResourceIdentity) -> None:
        """Record that identity depends on dependency.

        Dependencies on identities that are not nodes are kept aside and do not
        constrain ordering.
        """
        self.add_node(identity)
        if dependency in self._deps:
            self._deps[identity].add(dependency)
        else:
            self._external.setdefault(identity, set()).add(dependency)

    def __contains__(self, identity) -> bool:
        return identity in self._deps

    def __len__(self) -> int:
        return len(self._deps)

    @property
    def nodes(self) -> list[ResourceIdentity]:
        return sorted(self._deps, key=_key)

    def dependencies(self, identity: ResourceIdentity) -> list[ResourceIdentity]:
        return sorted(self._deps[identity], key=_key)

    def dependents(self, identity: ResourceIdentity) -> list[ResourceIdentity]:
        return sorted((n for n, deps in self._deps.items() if identity in deps), key=_key)

    @property
    def external_dependencies(self) -> dict[ResourceIdentity, list[ResourceIdentity]]:
        return {
            identity: sorted(deps, key=_key)
            for identity, deps in sorted(self._external.items(), key=lambda item: _key(item[0]))
        }

    def find_cycle(self) -> list[ResourceIdentity] | None:
        """Return one cycle as a path whose first node is repeated at the end."""
        visiting: set[ResourceIdentity] = set()
        done: set[ResourceIdentity] = set()

        for start in self.nodes:
            if start in done:
                continue
            # Iterative DFS; the stack holds (node, remaining dependencies).
            path = [start]
            visiting.add(start)
            stack = [(start, iter(self.dependencies(start)))]
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    path.pop()
                    visiting.discard(node)
                    done.add(node)
                    continue
                if child in visiting:
                    return path[path.index(child):] + [child]
                if child not in done:
                    visiting.add(child)
                    path.append(child)
                    stack.append((child, iter(self.dependencies(child))))
        return None

    def check_acyclic(self) -> None:
        cycle = self.find_cycle()
        if cycle:
            raise DependencyCycleError(cycle)

    def subgraph(self, identities: Iterable[ResourceIdentity]) -> "DependencyGraph":
        """Graph over the given nodes only.

        A dependency that passes through a dropped node becomes a direct edge,
        so the subgraph keeps every ordering constraint of the full graph.
        """
        keep = {identity for identity in identities if identity in self._deps}
        graph = DependencyGraph()
        for identity in sorted(keep, key=_key):
            graph.add_node(identity)
        for identity in keep:
            for dep in self._reachable(identity, keep):
                graph.add_edge(identity, dep)
        return graph

    def _reachable(self, start: ResourceIdentity, keep: set[ResourceIdentity]) -> set[ResourceIdentity]:
        found: set[ResourceIdentity] = set()
        seen: set[ResourceIdentity] = set()
        pending = list(self._deps[start])
        while pending:
            node = pending.pop()
            if node in seen:
                continue
            seen.add(node)
            if node in keep:
                found.add(node)
            else:
                pending.extend(self._deps[node])
        return found

    def topological_order(self, priority: Callable[[ResourceIdentity], int] | None = None) -> list[ResourceIdentity]:
        """Creation order: every dependency precedes its dependents.

        Among nodes that are ready at the same time, lower ``priority`` values
        go first, then identity key.
        """
        return self._kahn(reverse=False, priority=priority)

    def deletion_order(self, priority: Callable[[ResourceIdentity], int] | None = None) -> list[ResourceIdentity]:
        """Dependents are removed before their dependencies.

        Ready nodes break ties the same way as in creation order, so unrelated
        deletions come out in ascending identity order.
        """
        return self._kahn(reverse=True, priority=priority)

    def _kahn(self, reverse: bool, priority: Callable[[ResourceIdentity], int] | None) -> list[ResourceIdentity]:
        self.check_acyclic()
        rank = priority or (lambda _: 0)

        dependents: dict[ResourceIdentity, list[ResourceIdentity]] = {n: [] for n in self._deps}
        for identity, deps in self._deps.items():
            for dep in deps:
                dependents[dep].append(identity)
        # Creation releases a node once its dependencies are placed; deletion
        # once its dependents are.
        blockers = dependents if reverse else self._deps
        released_by = self._deps if reverse else dependents

        remaining = {identity: len(blockers[identity]) for identity in self._deps}
        ready = [((rank(n), _key(n)), n) for n, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for successor in released_by[node]:
                remaining[successor] -= 1
                if remaining[successor] == 0:
                    heapq.heappush(ready, ((rank(successor), _key(successor)), successor))

        logger.debug("Sorted %d node(s) into %s order", len(order), "deletion" if reverse else "creation")
        return order

    def order(
        self,
        identities: Iterable[ResourceIdentity],
        reverse: bool = False,
        priority: Callable[[ResourceIdentity], int] | None = None,
    ) -> list[ResourceIdentity]:
        """Order a subset of identities, respecting paths through the rest.

        Identities that are not nodes are appended, sorted by key.
        """
        wanted = set(identities)
        sub = self.subgraph(wanted)
        ordered = sub.deletion_order(priority) if reverse else sub.topological_order(priority)
        ordered.extend(sorted(wanted - set(ordered), key=_key))
        return ordered

    def levels(self) -> list[list[ResourceIdentity]]:
        """Group nodes by depth. Nodes within one level share no edges."""
        depth: dict[ResourceIdentity, int] = {}
        for node in self.topological_order():
            deps = self._deps[node]
            depth[node] = 1 + max((depth[d] for d in deps), default=-1)
        levels: list[list[ResourceIdentity]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for node, level in depth.items():
            levels[level].append(node)
        return [sorted(level, key=_key) for level in levels]

    def batches(self, max_size: int = 0) -> list[list[ResourceIdentity]]:
        """Deployment batches: levels split into chunks of at most ``max_size``.

        A ``max_size`` of zero or less leaves levels whole.
        """
        levels = self.levels()
        if max_size <= 0:
            return levels
        return [level[i:i + max_size] for level in levels for i in range(0, len(level), max_size)]

    def validate_order(self, order: list[ResourceIdentity]) -> list[str]:
        """Return violations of creation order, empty when the order is valid."""
        position = {identity: i for i, identity in enumerate(order)}
        problems = []
        for identity in order:
            for dep in self.dependencies(identity) if identity in self._deps else []:
                if dep not in position:
                    problems.append(f"{identity.key} depends on {dep.key}, which is missing")
                elif position[dep] >= position[identity]:
                    problems.append(f"{identity.key} is ordered before its dependency {dep.key}")
        return problems


def _key(identity: ResourceIdentity) -> tuple[str, ...]:
    return identity.sort_key
