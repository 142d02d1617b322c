"""Tests for the dependency graph (task_engine/graph.py)."""

from __future__ import annotations

import pytest

from taskgraph.errors import Cycle, MissingReference, NotFound, SelfDependency, UnresolvableCycle
from taskgraph.task_engine.graph import DependencyGraph, IssueKind, RemovedEdge
from taskgraph.task_engine.model import Task, TaskCollection


def _flat(n: int, deps: dict[str, list[str]] | None = None, stamps: dict[str, str] | None = None) -> TaskCollection:
    deps = deps or {}
    stamps = stamps or {}
    tasks = []
    for i in range(1, n + 1):
        key = str(i)
        task = Task(id=key, title=f"Task {key}", dependencies=list(deps.get(key, [])))
        if key in stamps:
            task.updated_at = stamps[key]
        tasks.append(task)
    return TaskCollection(tag="master", tasks=tasks)


class TestMutations:
    def test_add_is_idempotent(self) -> None:
        coll = _flat(2)
        graph = DependencyGraph(coll)
        assert graph.add_dependency("2", "1") is True
        assert graph.add_dependency("2", "1") is False
        assert coll.tasks[1].dependencies == ["1"]

    def test_add_self_dependency(self) -> None:
        graph = DependencyGraph(_flat(1))
        with pytest.raises(SelfDependency):
            graph.add_dependency("1", "1")

    def test_add_unknown_ids(self) -> None:
        graph = DependencyGraph(_flat(2))
        with pytest.raises(NotFound):
            graph.add_dependency("1", "5")
        with pytest.raises(NotFound):
            graph.add_dependency("5", "1")

    def test_add_across_depths(self) -> None:
        coll = TaskCollection(
            tag="master",
            tasks=[
                Task(id="1", title="a", subtasks=[Task(id="1.1", title="b")]),
                Task(id="2", title="c", subtasks=[Task(id="2.1", title="d")]),
            ],
        )
        graph = DependencyGraph(coll)
        graph.add_dependency("2.1", "1.1")
        assert graph.prerequisites_of("2.1") == ["1.1"]
        assert graph.dependents_of("1.1") == ["2.1"]
        assert graph.nodes == ["1", "1.1", "2", "2.1"]

    def test_remove_is_idempotent(self) -> None:
        coll = _flat(2, {"2": ["1"]})
        graph = DependencyGraph(coll)
        assert graph.remove_dependency("2", "1") is True
        assert graph.remove_dependency("2", "1") is False
        assert coll.tasks[1].dependencies == []

    def test_remove_forgets_edge_order(self) -> None:
        coll = _flat(3)
        graph = DependencyGraph(coll)
        graph.add_dependency("3", "1")
        graph.add_dependency("3", "2")
        graph.remove_dependency("3", "1")
        assert coll.tasks[2].dependency_order == {"2": 2}
        graph.add_dependency("3", "1")
        assert coll.tasks[2].dependency_order == {"2": 2, "1": 3}

    def test_remove_unknown_task(self) -> None:
        with pytest.raises(NotFound):
            DependencyGraph(_flat(1)).remove_dependency("4", "1")


class TestValidate:
    def test_clean_graph(self) -> None:
        assert DependencyGraph(_flat(3, {"2": ["1"], "3": ["1", "2"]})).validate() == []

    def test_reports_each_kind_in_order(self) -> None:
        coll = _flat(4, {"1": ["1"], "2": ["9", "3"], "3": ["2"]})
        issues = DependencyGraph(coll).validate()
        assert [i.kind for i in issues] == [IssueKind.SELF_DEPENDENCY, IssueKind.MISSING_REFERENCE, IssueKind.CYCLE]
        assert issues[1].task_id == "2" and issues[1].ids == ("9",)
        assert issues[2].ids == ("2", "3")
        assert isinstance(issues[0].to_error(), SelfDependency)
        assert isinstance(issues[1].to_error(), MissingReference)
        assert isinstance(issues[2].to_error(), Cycle)
        assert "2 -> 3 -> 2" in issues[2].message

    def test_two_node_cycle_scenario(self) -> None:
        coll = _flat(2)
        graph = DependencyGraph(coll)
        graph.add_dependency("1", "2")
        graph.add_dependency("2", "1")
        cycles = [i for i in graph.validate() if i.kind == IssueKind.CYCLE]
        assert len(cycles) == 1
        assert set(cycles[0].ids) == {"1", "2"}

    def test_cycle_path_is_walk_stack_slice(self) -> None:
        coll = _flat(4, {"1": ["2"], "2": ["3"], "3": ["4"], "4": ["2"]})
        assert DependencyGraph(coll).find_cycles() == [["2", "3", "4"]]

    def test_cycle_through_subtasks(self) -> None:
        coll = TaskCollection(
            tag="master",
            tasks=[Task(id="1", title="p", subtasks=[
                Task(id="1.1", title="a", dependencies=["1.2"]),
                Task(id="1.2", title="b", dependencies=["1.1"]),
            ])],
        )
        assert DependencyGraph(coll).find_cycles() == [["1.1", "1.2"]]

    def test_long_chain_does_not_recurse(self) -> None:
        n = 3000
        coll = _flat(n, {str(i): [str(i - 1)] for i in range(2, n + 1)})
        coll.tasks[0].dependencies = [str(n)]
        cycles = DependencyGraph(coll).find_cycles()
        assert len(cycles) == 1 and len(cycles[0]) == n

    def test_would_create_cycle(self) -> None:
        graph = DependencyGraph(_flat(3, {"2": ["1"], "3": ["2"]}))
        assert graph.would_create_cycle("1", "3") is True
        assert graph.would_create_cycle("3", "1") is False

    def test_topological_order(self) -> None:
        graph = DependencyGraph(_flat(4, {"1": ["3"], "2": ["1"], "4": []}))
        assert graph.topological_order() == ["3", "1", "2", "4"]
        cyclic = DependencyGraph(_flat(2, {"1": ["2"], "2": ["1"]}))
        with pytest.raises(Cycle):
            cyclic.topological_order()


class TestAutoFix:
    def test_removes_most_recent_edge_of_cycle(self) -> None:
        coll = _flat(
            3,
            {"1": ["2"], "2": ["3"], "3": ["1"]},
            stamps={"1": "2024-01-01T00:00:00+00:00", "2": "2024-03-01T00:00:00+00:00", "3": "2024-02-01T00:00:00+00:00"},
        )
        graph = DependencyGraph(coll)
        removed = graph.auto_fix()
        assert removed == [RemovedEdge("2", "3", IssueKind.CYCLE)]
        assert graph.find_cycles() == []
        assert coll.tasks[1].dependencies == []

    def test_tie_breaks_on_largest_dependent(self) -> None:
        stamp = "2024-01-01T00:00:00+00:00"
        coll = _flat(2, {"1": ["2"], "2": ["1"]}, stamps={"1": stamp, "2": stamp})
        removed = DependencyGraph(coll).auto_fix()
        assert removed == [RemovedEdge("2", "1", IssueKind.CYCLE)]
        assert coll.tasks[0].dependencies == ["2"]

    def test_edges_of_recently_updated_tasks_go_first(self) -> None:
        stamp = "2024-01-01T00:00:00+00:00"
        coll = _flat(3, {"1": ["3", "2"], "2": ["1"], "3": ["1"]}, stamps={"1": "2025-01-01T00:00:00+00:00", "2": stamp, "3": stamp})
        removed = DependencyGraph(coll).auto_fix()
        assert [(e.dependent, e.prerequisite) for e in removed] == [("1", "2"), ("1", "3")]

    def test_fixes_dangling_self_and_duplicates(self) -> None:
        coll = _flat(2, {"1": ["1"], "2": ["7", "1"]})
        coll.tasks[1].dependencies.append("1")
        removed = DependencyGraph(coll).auto_fix()
        assert {(e.dependent, e.prerequisite, e.reason) for e in removed} == {
            ("1", "1", IssueKind.SELF_DEPENDENCY),
            ("2", "7", IssueKind.MISSING_REFERENCE),
            ("2", "1", IssueKind.DUPLICATE),
        }
        assert coll.tasks[0].dependencies == []
        assert coll.tasks[1].dependencies == ["1"]

    def test_converges_on_overlapping_cycles(self) -> None:
        coll = _flat(4, {"1": ["2", "3"], "2": ["1", "4"], "3": ["1"], "4": ["2"]})
        graph = DependencyGraph(coll)
        removed = graph.auto_fix()
        assert removed
        assert all(e.reason == IssueKind.CYCLE for e in removed)
        assert [i for i in graph.validate() if i.kind == IssueKind.CYCLE] == []

    def test_touches_repaired_tasks(self) -> None:
        old = "2020-01-01T00:00:00+00:00"
        coll = _flat(2, {"1": ["2"], "2": ["1"]}, stamps={"1": old, "2": old})
        DependencyGraph(coll).auto_fix()
        assert coll.tasks[1].updated_at > old
        assert coll.tasks[0].updated_at == old

    def test_iteration_bound(self) -> None:
        coll = _flat(2, {"1": ["2"], "2": ["1"]})
        with pytest.raises(UnresolvableCycle):
            DependencyGraph(coll).auto_fix(max_iterations=0)

    def test_noop_on_clean_graph(self) -> None:
        coll = _flat(2, {"2": ["1"]})
        assert DependencyGraph(coll).auto_fix() == []

    def test_insertion_order_outranks_timestamps(self) -> None:
        old, new = "2020-01-01T00:00:00+00:00", "2025-01-01T00:00:00+00:00"
        coll = _flat(2, stamps={"1": old, "2": old})
        graph = DependencyGraph(coll)
        graph.add_dependency("1", "2")
        graph.add_dependency("2", "1")
        assert coll.tasks[0].dependency_order == {"2": 1}
        assert coll.tasks[1].dependency_order == {"1": 2}
        coll.tasks[0].updated_at = new
        assert graph.auto_fix() == [RemovedEdge("2", "1", IssueKind.CYCLE)]
        assert coll.tasks[1].dependency_order == {}

    def test_recorded_edges_go_before_unrecorded_ones(self) -> None:
        coll = _flat(2, {"2": ["1"]}, stamps={"1": "2020-01-01T00:00:00+00:00", "2": "2025-01-01T00:00:00+00:00"})
        graph = DependencyGraph(coll)
        graph.add_dependency("1", "2")
        assert graph.auto_fix() == [RemovedEdge("1", "2", IssueKind.CYCLE)]
        assert coll.tasks[1].dependencies == ["1"]
