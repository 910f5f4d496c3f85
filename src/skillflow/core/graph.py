"""
Dependency resolution over a workflow's step graph.

Every function here is pure: it reads a Workflow (and, for readiness,
the sets of finished step ids) and never mutates anything. Steps are
always visited in declaration order so results are deterministic for
a given definition.

Example:
    ```python
    order = resolve_execution_order(workflow)   # ["research", "summarize", "report"]
    wave = get_next_steps(workflow, completed={"research"}, failed=set())
    print(level_graph(workflow))
    ```
"""

from __future__ import annotations

from collections import deque
from collections.abc import Collection

from skillflow.models.result import DagSummary, ExecutionPlan
from skillflow.models.workflow import Workflow


def _dependents_map(workflow: Workflow) -> dict[str, list[str]]:
    """step id -> ids of steps that list it in depends_on."""
    dependents: dict[str, list[str]] = {step.id: [] for step in workflow.steps}
    for step in workflow.steps:
        for dep in step.depends_on:
            dependents.setdefault(dep, []).append(step.id)
    return dependents


def resolve_execution_order(workflow: Workflow) -> list[str]:
    """
    Topological order of the workflow's steps (Kahn's algorithm).

    Algorithm:
    1. In-degree of each step is the length of its depends_on
    2. Seed the queue with zero in-degree steps, in declaration order
    3. Pop a step, emit it, decrement the in-degree of its dependents
    4. Enqueue any dependent whose in-degree reaches zero

    Steps caught in a cycle (or waiting on an unknown step) never reach
    zero and are simply not emitted. Validate first to rule that out.
    """
    in_degree = {step.id: len(step.depends_on) for step in workflow.steps}
    dependents = _dependents_map(workflow)

    queue = deque(step.id for step in workflow.steps if in_degree[step.id] == 0)
    order: list[str] = []

    while queue:
        step_id = queue.popleft()
        order.append(step_id)

        for dependent in dependents.get(step_id, []):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    return order


def get_next_steps(
    workflow: Workflow,
    completed: Collection[str],
    failed: Collection[str] = (),
) -> list[str]:
    """
    Steps that are ready to run, in declaration order.

    A step is ready when it is neither completed nor failed and every id
    in its depends_on is in `completed`. Dependents of a failed step are
    not filtered out here; they are simply never ready, and the
    scheduler decides what to do with them.
    """
    ready: list[str] = []
    for step in workflow.steps:
        if step.id in completed or step.id in failed:
            continue
        if all(dep in completed for dep in step.depends_on):
            ready.append(step.id)
    return ready


def parallel_groups(workflow: Workflow) -> list[list[str]]:
    """
    Partition steps into groups that share an identical dependency set.

    Groups are listed in topological order of their first member. This
    is a heuristic: two steps with different but independent dependency
    sets land in different groups even though they could run together.
    """
    deps_of = {step.id: frozenset(step.depends_on) for step in workflow.steps}
    groups: list[list[str]] = []
    grouped: set[str] = set()

    for step_id in resolve_execution_order(workflow):
        if step_id in grouped:
            continue
        group = [step_id] + [
            other.id
            for other in workflow.steps
            if other.id != step_id
            and other.id not in grouped
            and deps_of[other.id] == deps_of[step_id]
        ]
        grouped.update(group)
        groups.append(group)

    return groups


def build_execution_plan(workflow: Workflow) -> ExecutionPlan:
    """Dry-run view: topological order, dependency map and parallel groups."""
    order = resolve_execution_order(workflow)
    dependencies = {}
    for step_id in order:
        step = workflow.get_step(step_id)
        dependencies[step_id] = list(step.depends_on) if step else []

    return ExecutionPlan(
        steps=order,
        dependencies=dependencies,
        parallel_groups=parallel_groups(workflow),
    )


def transitive_dependents(workflow: Workflow, step_id: str) -> list[str]:
    """Every step that depends on `step_id`, directly or not, in declaration order."""
    dependents = _dependents_map(workflow)
    reached: set[str] = set()
    queue = deque(dependents.get(step_id, []))

    while queue:
        current = queue.popleft()
        if current in reached or current == step_id:
            continue
        reached.add(current)
        queue.extend(dependents.get(current, []))

    return [step.id for step in workflow.steps if step.id in reached]


def _calculate_depths(workflow: Workflow) -> dict[str, int]:
    """
    Depth of each orderable step: roots are 0, every other step sits one
    below its deepest dependency. Unknown dependencies are ignored.
    """
    depths: dict[str, int] = {}
    for step_id in resolve_execution_order(workflow):
        step = workflow.get_step(step_id)
        dep_depths = [depths[dep] for dep in step.depends_on if dep in depths]
        depths[step_id] = max(dep_depths) + 1 if dep_depths else 0
    return depths


def summarize(workflow: Workflow) -> DagSummary:
    """
    Summary statistics of the dependency graph.

    Roots have no dependencies, leaves have no dependents, and max_depth
    is the longest dependency chain with roots at depth 0.
    """
    roots = [step.id for step in workflow.steps if not step.depends_on]

    depended_on: set[str] = set()
    for step in workflow.steps:
        depended_on.update(step.depends_on)
    leaves = [step.id for step in workflow.steps if step.id not in depended_on]

    depths = _calculate_depths(workflow)

    return DagSummary(
        total_steps=len(workflow.steps),
        root_count=len(roots),
        leaf_count=len(leaves),
        max_depth=max(depths.values()) if depths else 0,
        roots=roots,
        leaves=leaves,
    )


def level_graph(workflow: Workflow) -> str:
    """
    Render the steps grouped by depth.

    Example output:
    ```
    Workflow research (3 steps):

    Level 0: [search]
             ↓
    Level 1: [summarize] [extract] (2 parallel steps)
             ↓
    Level 2: [report]
    ```
    """
    depths = _calculate_depths(workflow)
    max_level = max(depths.values()) if depths else 0
    levels: list[list[str]] = [[] for _ in range(max_level + 1)]

    for step in workflow.steps:
        if step.id in depths:
            levels[depths[step.id]].append(step.id)

    output = f"Workflow {workflow.name} ({len(workflow.steps)} steps):\n\n"
    for level, step_ids in enumerate(levels):
        if not step_ids:
            continue

        parallel_note = f" ({len(step_ids)} parallel steps)" if len(step_ids) > 1 else ""
        output += f"Level {level}: [{'] ['.join(step_ids)}]{parallel_note}\n"

        if level < max_level:
            output += "         ↓\n"

    return output


__all__ = [
    "resolve_execution_order",
    "get_next_steps",
    "parallel_groups",
    "build_execution_plan",
    "transitive_dependents",
    "summarize",
    "level_graph",
]
