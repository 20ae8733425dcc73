"""Task sequencing based on dependencies.

Builds a dependency graph over parsed tasks from explicit hints, category
precedence rules and content similarity, repairs cycles by dropping the
weakest edge on each, and produces a deterministic topological order.

The graph is an arena of tasks keyed by id plus an explicit edge map keyed by
(from_id, to_id). Sequencing never raises: on any internal fault the original
order is returned.
"""

import heapq
import logging
from dataclasses import dataclass, field
from typing import Any

from autofinish.errors import SequencingDegradation
from autofinish.input_parser import split_hint
from autofinish.matchers import KeywordTable, contains_phrase, jaccard, matching_keys, words
from autofinish.models import DependencyEdge, Task

logger = logging.getLogger(__name__)

# category -> categories that must run before it
TYPE_PRECEDENCE: dict[str, tuple[str, ...]] = {
    "api": ("database",),
    "ui": ("database", "api"),
    "test": ("ui", "api", "database"),
    "security": ("ui", "api", "database"),
    "performance": ("ui", "api", "database"),
    "refactor": ("ui", "api", "database"),
    "deployment": ("ui", "api", "database", "test", "security", "performance", "refactor"),
}

SIMILARITY_CLUSTERS: KeywordTable = {
    "ui_component": ("button", "form", "input"),
    "api_endpoint": ("api", "endpoint", "route"),
    "database_schema": ("database", "table", "schema"),
    "test_implementation": ("test", "spec"),
}

TYPE_EDGE_CONFIDENCE = 0.3
IMPLICIT_BASE_CONFIDENCE = 0.35
IMPLICIT_OVERLAP_WEIGHT = 0.1
MIN_HINT_OVERLAP = 0.5

# Hints whose target must run after the hinting task
_FORWARD_RELATIONS = frozenset({"before"})

_STOPWORDS = frozenset({"the", "a", "an", "to", "of", "and", "or", "for", "in", "on", "with"})


@dataclass
class SequencerConfig:
    """Switches for graph construction.

    Attributes:
        enable_explicit: Resolve dependency hints into edges
        enable_type: Apply the category precedence table
        enable_implicit: Link tasks in the same similarity cluster
        detect_cycles: Detect and repair cycles before sorting
    """

    enable_explicit: bool = True
    enable_type: bool = True
    enable_implicit: bool = True
    detect_cycles: bool = True


@dataclass
class DependencyGraph:
    """Task arena plus explicit adjacency.

    Attributes:
        tasks: Tasks keyed by id
        order: Task ids in original input order
        edges: One edge per ordered (from_id, to_id) pair
    """

    tasks: dict[str, Task] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)
    edges: dict[tuple[str, str], DependencyEdge] = field(default_factory=dict)

    @classmethod
    def from_tasks(cls, tasks: list[Task]) -> "DependencyGraph":
        """Create a graph with one node per task and no edges."""
        graph = cls()
        for task in tasks:
            if task.id in graph.tasks:
                raise SequencingDegradation(f"Duplicate task id {task.id}")
            graph.tasks[task.id] = task
            graph.order.append(task.id)
        return graph

    def add_edge(self, edge: DependencyEdge) -> None:
        """Add an edge, keeping the stronger one when the pair already exists."""
        if edge.from_id == edge.to_id:
            return
        key = (edge.from_id, edge.to_id)
        existing = self.edges.get(key)
        if existing is None or edge.confidence > existing.confidence:
            self.edges[key] = edge

    def remove_edge(self, edge: DependencyEdge) -> None:
        self.edges.pop((edge.from_id, edge.to_id), None)

    def successors(self, task_id: str) -> list[str]:
        """Ids that must run after task_id, in original order."""
        targets = {to_id for (from_id, to_id) in self.edges if from_id == task_id}
        return [tid for tid in self.order if tid in targets]

    def predecessors(self, task_id: str) -> list[str]:
        """Ids that must run before task_id, in original order."""
        sources = {from_id for (from_id, to_id) in self.edges if to_id == task_id}
        return [tid for tid in self.order if tid in sources]

    def to_dict(self) -> dict[str, Any]:
        """Serialize nodes and edges."""
        return {
            "nodes": list(self.order),
            "edges": [
                {
                    "from": e.from_id,
                    "to": e.to_id,
                    "provenance": e.provenance,
                    "confidence": round(e.confidence, 3),
                }
                for e in self.edges.values()
            ],
        }


@dataclass
class DependencyAnalysis:
    """Summary of the dependency structure of a task list."""

    total_tasks: int
    total_dependencies: int
    explicit_dependencies: int
    type_dependencies: int
    implicit_dependencies: int
    cycles: list[list[str]]
    removed_edges: list[DependencyEdge]
    graph: dict[str, Any]
    recommendations: list[str]


class TaskSequencer:
    """Orders tasks so every task runs after its resolved dependencies.

    Usage:
        sequencer = TaskSequencer()
        ordered = sequencer.sequence(tasks)
    """

    def __init__(self, config: SequencerConfig | None = None):
        """Initialize sequencer.

        Args:
            config: Graph construction switches (defaults enable everything)
        """
        self.config = config or SequencerConfig()
        self.last_removed_edges: list[DependencyEdge] = []

    def sequence(self, tasks: list[Task]) -> list[Task]:
        """Return tasks in a dependency-respecting order.

        Args:
            tasks: Tasks to order

        Returns:
            A permutation of tasks. Falls back to the input order if
            sequencing fails for any reason.
        """
        self.last_removed_edges = []
        if len(tasks) <= 1:
            return list(tasks)

        try:
            graph = self.build_graph(tasks)
            if self.config.detect_cycles:
                self.last_removed_edges = self.repair_cycles(graph)
            ordered_ids = topological_order(graph)
            ordered = [graph.tasks[task_id] for task_id in ordered_ids]
            if len(ordered) != len(tasks):
                raise SequencingDegradation(
                    f"Ordering lost tasks: {len(ordered)} of {len(tasks)}"
                )
        except Exception as e:
            logger.warning(f"Sequencing failed, falling back to original order: {e}")
            return list(tasks)

        logger.info(f"Sequenced {len(ordered)} tasks with {len(graph.edges)} dependencies")
        return ordered

    def build_graph(self, tasks: list[Task]) -> DependencyGraph:
        """Build the dependency graph for tasks."""
        graph = DependencyGraph.from_tasks(tasks)
        if self.config.enable_explicit:
            for edge in explicit_edges(tasks):
                graph.add_edge(edge)
        if self.config.enable_type:
            for edge in type_edges(tasks):
                graph.add_edge(edge)
        if self.config.enable_implicit:
            for edge in implicit_edges(tasks):
                graph.add_edge(edge)
        return graph

    def repair_cycles(self, graph: DependencyGraph) -> list[DependencyEdge]:
        """Remove the weakest edge of every cycle until the graph is acyclic.

        Bounded by the initial edge count, which guarantees termination.

        Returns:
            Removed edges in removal order
        """
        removed: list[DependencyEdge] = []
        for _ in range(len(graph.edges)):
            cycles = find_cycles(graph)
            if not cycles:
                break
            for cycle in cycles:
                edges = [graph.edges.get(pair) for pair in _cycle_pairs(cycle)]
                if any(edge is None for edge in edges):
                    continue  # already broken by an earlier removal
                weakest = min(edges, key=lambda e: e.confidence)
                graph.remove_edge(weakest)
                removed.append(weakest)
                logger.warning(
                    f"Removed circular dependency {weakest.from_id} -> {weakest.to_id} "
                    f"({weakest.provenance}, confidence {weakest.confidence:.2f})"
                )
        return removed

    def analyze(self, tasks: list[Task]) -> DependencyAnalysis:
        """Describe the dependency structure without reordering anything."""
        graph = self.build_graph(tasks)
        cycles = find_cycles(graph)

        by_provenance = {"explicit": 0, "type": 0, "implicit": 0}
        for edge in graph.edges.values():
            by_provenance[edge.provenance] += 1
        total = len(graph.edges)

        removed = self.repair_cycles(graph) if cycles else []

        recommendations = []
        if cycles:
            recommendations.append("Circular dependencies detected - consider breaking cycles")
        if total == 0:
            recommendations.append("No dependencies found - tasks can be executed in any order")

        return DependencyAnalysis(
            total_tasks=len(tasks),
            total_dependencies=total,
            explicit_dependencies=by_provenance["explicit"],
            type_dependencies=by_provenance["type"],
            implicit_dependencies=by_provenance["implicit"],
            cycles=cycles,
            removed_edges=removed,
            graph=graph.to_dict(),
            recommendations=recommendations,
        )


def resolve_hint(target: str, tasks: list[Task], exclude_id: str) -> tuple[Task, float] | None:
    """Resolve a hint target to the task it refers to.

    Tries whole-word containment first (confidence 1.0), then word overlap:
    a candidate qualifies when at least half of the target's words match one
    of its words, and the overlap ratio becomes the confidence.

    Args:
        target: Hint text without its trigger, e.g. "database schema"
        tasks: Candidate tasks
        exclude_id: Id of the task carrying the hint

    Returns:
        (task, confidence) or None when nothing qualifies
    """
    candidates = [t for t in tasks if t.id != exclude_id]

    for task in candidates:
        if contains_phrase(task.description, target) or contains_phrase(
            target, task.description
        ):
            return task, 1.0

    target_words = [w for w in words(target) if w not in _STOPWORDS] or words(target)
    if not target_words:
        return None

    best: tuple[Task, float] | None = None
    for task in candidates:
        ratio = _overlap_ratio(target_words, words(task.description))
        if ratio >= MIN_HINT_OVERLAP and (best is None or ratio > best[1]):
            best = (task, ratio)
    return best


def explicit_edges(tasks: list[Task]) -> list[DependencyEdge]:
    """Edges from resolved dependency hints."""
    edges = []
    for task in tasks:
        for hint in task.dependency_hints:
            relation, target = split_hint(hint)
            resolved = resolve_hint(target, tasks, task.id)
            if resolved is None:
                continue
            other, confidence = resolved
            if relation in _FORWARD_RELATIONS:
                edges.append(DependencyEdge(task.id, other.id, "explicit", confidence))
            else:
                edges.append(DependencyEdge(other.id, task.id, "explicit", confidence))
    return edges


def type_edges(tasks: list[Task]) -> list[DependencyEdge]:
    """Edges from the category precedence table."""
    edges = []
    for task in tasks:
        for before_category in TYPE_PRECEDENCE.get(task.category or "", ()):
            for other in tasks:
                if other.id != task.id and other.category == before_category:
                    edges.append(
                        DependencyEdge(other.id, task.id, "type", TYPE_EDGE_CONFIDENCE)
                    )
    return edges


def implicit_edges(tasks: list[Task]) -> list[DependencyEdge]:
    """Low-confidence edges between tasks in the same similarity cluster.

    Edges point from the earlier task to the later one so that similarity
    alone never introduces a cycle.
    """
    clusters = [set(matching_keys(task.description, SIMILARITY_CLUSTERS)) for task in tasks]
    edges = []
    for i, earlier in enumerate(tasks):
        for j in range(i + 1, len(tasks)):
            if clusters[i] & clusters[j]:
                later = tasks[j]
                confidence = IMPLICIT_BASE_CONFIDENCE + IMPLICIT_OVERLAP_WEIGHT * jaccard(
                    earlier.description, later.description
                )
                edges.append(DependencyEdge(earlier.id, later.id, "implicit", confidence))
    return edges


def find_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Find cycles with an iterative depth-first search.

    Returns:
        Each cycle as a list of task ids [a, b, ..., z] with edges
        a->b, ..., z->a. Not necessarily every elementary cycle, but
        non-empty whenever the graph is cyclic.
    """
    white, gray, black = 0, 1, 2
    color = dict.fromkeys(graph.order, white)
    cycles: list[list[str]] = []

    for root in graph.order:
        if color[root] != white:
            continue
        path = [root]
        color[root] = gray
        stack = [iter(graph.successors(root))]
        while stack:
            next_id = next(stack[-1], None)
            if next_id is None:
                color[path.pop()] = black
                stack.pop()
            elif color[next_id] == gray:
                cycles.append(path[path.index(next_id) :])
            elif color[next_id] == white:
                color[next_id] = gray
                path.append(next_id)
                stack.append(iter(graph.successors(next_id)))
    return cycles


def topological_order(graph: DependencyGraph) -> list[str]:
    """Kahn's algorithm with ties broken by original position.

    Raises:
        SequencingDegradation: If the graph still contains a cycle
    """
    position = {task_id: i for i, task_id in enumerate(graph.order)}
    in_degree = dict.fromkeys(graph.order, 0)
    for _, to_id in graph.edges:
        in_degree[to_id] += 1

    ready = [position[tid] for tid, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    result = []
    while ready:
        task_id = graph.order[heapq.heappop(ready)]
        result.append(task_id)
        for successor in graph.successors(task_id):
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, position[successor])

    if len(result) != len(graph.order):
        raise SequencingDegradation("Dependency graph is still cyclic")
    return result


def _cycle_pairs(cycle: list[str]) -> list[tuple[str, str]]:
    return [(cycle[i], cycle[(i + 1) % len(cycle)]) for i in range(len(cycle))]


def _overlap_ratio(target_words: list[str], candidate_words: list[str]) -> float:
    """Share of target words matching a candidate word (equal or prefix)."""
    matched = 0
    for word in target_words:
        for other in candidate_words:
            if word == other or (
                min(len(word), len(other)) >= 3
                and (word.startswith(other) or other.startswith(word))
            ):
                matched += 1
                break
    return min(matched / len(target_words), 1.0)
