"""Deployment plan: ordered execution steps derived from the dependency graph."""

import logging
from dataclasses import dataclass, field

from flotilla.definitions.loader import DefinitionSet
from flotilla.definitions.types import Check, Entity, Group, Service, Task
from flotilla.planner.graph import GATE_READY, DependencyGraph

logger = logging.getLogger(__name__)


@dataclass
class PlanStep:
    """One entity to action, with the steps that must finish before it."""

    index: int
    entity: Entity
    requires: list[int] = field(default_factory=list)
    await_readiness: bool = False
    # services whose (re)deploy forces this task to run again
    triggers: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def kind(self) -> str:
        return self.entity.kind


@dataclass
class DeploymentPlan:
    """Topologically ordered steps plus the checks to run before them."""

    roots: list[str]
    steps: list[PlanStep] = field(default_factory=list)
    checks: list[Check] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [step.name for step in self.steps]

    def step(self, name: str) -> PlanStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)


def build_plan(definitions: DefinitionSet, roots: list[str], only_selected: bool = False) -> DeploymentPlan:
    """Resolve roots into an execution plan.

    Check roots are not graph nodes; they only contribute to the checks list.

    Raises:
        UnknownEntity: a root or reference names nothing.
        CycleDetected: the reachable graph is not acyclic.
        DefinitionError: a reference points at the wrong kind of entity.
    """
    check_roots = [name for name in roots if isinstance(definitions.get(name), Check)]
    graph = DependencyGraph(definitions)
    graph.expand([name for name in roots if name not in check_roots], only_selected=only_selected)
    order = graph.topological_order()

    position = {node: pos for pos, node in enumerate(order)}
    plan = DeploymentPlan(roots=list(roots))
    for pos, node in enumerate(order):
        entity = graph.nodes[node]
        plan.steps.append(
            PlanStep(
                index=pos,
                entity=entity,
                requires=sorted(position[p] for p in graph.prerequisites[node]),
                await_readiness=graph.gates[node] >= GATE_READY,
            )
        )

    for step in plan.steps:
        for pos in step.requires:
            prerequisite = plan.steps[pos]
            if isinstance(prerequisite.entity, Task) and isinstance(step.entity, Service):
                prerequisite.triggers.append(step.name)
            elif isinstance(step.entity, Task) and step.name in _posts_of(prerequisite.entity):
                step.triggers.append(prerequisite.name)

    seen = set()
    for check_name, referenced_by in _check_names(plan.steps, check_roots):
        if check_name in seen:
            continue
        seen.add(check_name)
        plan.checks.append(definitions.check(check_name, referenced_by))

    logger.debug(f"Plan: {' -> '.join(plan.names) or '(empty)'}; checks: {[c.name for c in plan.checks]}")
    return plan


def _posts_of(entity: Entity) -> list[str]:
    return entity.post if isinstance(entity, (Service, Task)) else []


def _check_names(steps: list[PlanStep], check_roots: list[str]):
    """(check name, referenced by) pairs in plan order."""
    for name in check_roots:
        yield name, None
    for step in steps:
        if isinstance(step.entity, (Service, Task, Group)):
            for check in step.entity.checks:
                yield check, step.name
