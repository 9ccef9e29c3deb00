"""Tests for dependency ordering and cycle detection."""

import pytest

from stackplan.errors import DependencyCycleError
from stackplan.graph import DependencyGraph
from tests.conftest import ident

DB = ident("Database", "db-1")
APP = ident("MicroService", "app-1")
QUEUE = ident("Queue", "orders")
VPC = ident("VPC", "main")


def _graph(edges, nodes=()):
    deps = {n: [] for n in nodes}
    for node, dep in edges:
        deps.setdefault(node, []).append(dep)
        deps.setdefault(dep, [])
    return DependencyGraph.from_dependencies(deps.items())


def test_dependency_precedes_dependent():
    graph = _graph([(APP, DB)])
    order = graph.topological_order()
    assert order.index(DB) < order.index(APP)


def test_deletion_order_reverses_creation():
    graph = _graph([(APP, DB), (DB, VPC)])
    assert graph.topological_order() == [VPC, DB, APP]
    assert graph.deletion_order() == [APP, DB, VPC]


def test_unrelated_nodes_ordered_by_identity_key():
    graph = _graph([], nodes=[QUEUE, VPC, APP, DB])
    assert graph.topological_order() == sorted([QUEUE, VPC, APP, DB], key=lambda i: i.key)


def test_priority_breaks_ties_before_key():
    graph = _graph([], nodes=[APP, DB])
    order = graph.topological_order(priority=lambda i: 0 if i == APP else 1)
    assert order == [APP, DB]


def test_order_independent_of_insertion_order():
    a = DependencyGraph.from_dependencies([(APP, [DB, QUEUE]), (DB, []), (QUEUE, [])])
    b = DependencyGraph.from_dependencies([(QUEUE, []), (DB, []), (APP, [QUEUE, DB])])
    assert a.topological_order() == b.topological_order()


def test_two_node_cycle_reported_in_full():
    svc_a = ident("MicroService", "svc-a")
    svc_b = ident("MicroService", "svc-b")
    graph = _graph([(svc_a, svc_b), (svc_b, svc_a)])
    assert graph.find_cycle() == [svc_a, svc_b, svc_a]
    with pytest.raises(DependencyCycleError) as exc_info:
        graph.topological_order()
    assert exc_info.value.cycle == [svc_a, svc_b, svc_a]
    assert "svc-a" in str(exc_info.value) and "svc-b" in str(exc_info.value)


def test_self_dependency_is_a_cycle():
    graph = _graph([(APP, APP)])
    assert graph.find_cycle() == [APP, APP]


def test_cycle_behind_acyclic_prefix():
    x, y, z = ident("VM", "x"), ident("VM", "y"), ident("VM", "z")
    graph = _graph([(APP, x), (x, y), (y, z), (z, x)])
    cycle = graph.find_cycle()
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {x, y, z}


def test_acyclic_graph_has_no_cycle():
    assert _graph([(APP, DB), (APP, QUEUE), (DB, VPC)]).find_cycle() is None


def test_external_dependencies_do_not_constrain_order():
    graph = DependencyGraph.from_dependencies([(APP, [DB])])
    assert graph.topological_order() == [APP]
    assert graph.external_dependencies == {APP: [DB]}


def test_levels_group_independent_nodes():
    graph = _graph([(APP, DB), (APP, QUEUE), (DB, VPC)])
    assert graph.levels() == [
        sorted([QUEUE, VPC], key=lambda i: i.key),
        [DB],
        [APP],
    ]


def test_validate_order_reports_violations():
    graph = _graph([(APP, DB)])
    assert graph.validate_order([DB, APP]) == []
    [problem] = graph.validate_order([APP, DB])
    assert "before its dependency" in problem


def test_order_restricts_to_subset():
    graph = _graph([(APP, DB), (DB, VPC)])
    assert graph.order([APP, VPC]) == [VPC, APP]
    assert graph.order([APP, VPC], reverse=True) == [APP, VPC]


def test_order_appends_unknown_identities():
    graph = _graph([(APP, DB)])
    assert graph.order([APP, QUEUE]) == [APP, QUEUE]


def test_empty_graph():
    graph = DependencyGraph()
    assert graph.topological_order() == []
    assert graph.levels() == []
    assert len(graph) == 0


def test_deletion_order_breaks_ties_by_identity_key():
    graph = _graph([(APP, DB)], nodes=[QUEUE, VPC])
    order = graph.deletion_order()
    assert order.index(APP) < order.index(DB)
    assert [n for n in order if n != DB] == sorted([APP, QUEUE, VPC], key=lambda i: i.key)


def test_subgraph_keeps_paths_through_dropped_nodes():
    graph = _graph([(APP, DB), (DB, VPC)], nodes=[QUEUE])
    sub = graph.subgraph([APP, VPC, QUEUE])
    assert sub.nodes == sorted([APP, VPC, QUEUE], key=lambda i: i.key)
    assert sub.dependencies(APP) == [VPC]
    assert sub.dependencies(QUEUE) == []


def test_subgraph_ignores_cycles_among_dropped_nodes():
    graph = _graph([(DB, VPC), (VPC, DB), (APP, DB)], nodes=[QUEUE])
    sub = graph.subgraph([APP, QUEUE])
    assert sub.find_cycle() is None
    assert sub.dependencies(APP) == []


def test_dependents_lists_direct_dependents():
    graph = _graph([(APP, DB), (QUEUE, DB), (DB, VPC)])
    assert graph.dependents(DB) == sorted([APP, QUEUE], key=lambda i: i.key)
    assert graph.dependents(APP) == []


def test_batches_split_levels():
    graph = _graph([(APP, VPC), (DB, VPC), (QUEUE, VPC)])
    assert graph.batches() == graph.levels()
    assert graph.batches(max_size=2) == [
        [VPC],
        sorted([APP, DB, QUEUE], key=lambda i: i.key)[:2],
        sorted([APP, DB, QUEUE], key=lambda i: i.key)[2:],
    ]
