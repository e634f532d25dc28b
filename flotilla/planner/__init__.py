"""Planner: resolve requested entities into an ordered deployment plan."""

from flotilla.planner.graph import GATE_COMPLETION, GATE_READY, DependencyGraph, Relation, relations_of
from flotilla.planner.plan import DeploymentPlan, PlanStep, build_plan

__all__ = [
    "GATE_COMPLETION",
    "GATE_READY",
    "DependencyGraph",
    "DeploymentPlan",
    "PlanStep",
    "Relation",
    "build_plan",
    "relations_of",
]
