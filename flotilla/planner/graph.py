"""Dependency graph: entity arena with index-based edges, cycle detection and topological sort."""

import logging
from dataclasses import dataclass

from flotilla.definitions.loader import DefinitionSet
from flotilla.definitions.types import Check, Entity, Group, Service, Shell, Task
from flotilla.errors import CycleDetected, DefinitionError

logger = logging.getLogger(__name__)

# Edge gates, ordered so the stronger one wins when a node is reached twice
GATE_COMPLETION = 1  # prerequisite spawned (service) or finished (task)
GATE_READY = 2  # prerequisite passed its readiness probe

_TEMPORARY = "temporary"
_PERMANENT = "permanent"


@dataclass(frozen=True)
class Relation:
    """``dependent`` may only start once ``prerequisite`` has passed ``gate``."""

    dependent: str
    prerequisite: str
    gate: int
    post: bool = False


def relations_of(entity: Entity) -> list[Relation]:
    """Edges contributed by one entity's declaration, in declaration order."""
    if isinstance(entity, Group):
        return [Relation(entity.name, member, GATE_READY) for member in entity.dependencies]
    if not isinstance(entity, (Service, Task)):
        return []

    rels = [Relation(entity.name, dep, GATE_READY) for dep in entity.dependencies]
    ordered = entity.ordered_dependencies
    for i, dep in enumerate(ordered):
        rels.append(Relation(entity.name, dep, GATE_READY))
        if i > 0:
            rels.append(Relation(dep, ordered[i - 1], GATE_READY))
    rels.extend(Relation(entity.name, prev, GATE_COMPLETION) for prev in entity.after)
    rels.extend(Relation(task, entity.name, GATE_READY, post=True) for task in entity.post)
    return rels


class DependencyGraph:
    """Execution nodes stored in an arena; edges are lists of arena indices.

    ``prerequisites[i]`` maps each prerequisite index of node ``i`` to the
    gate it must pass. ``gates[i]`` is the strongest gate any dependent
    requires from node ``i``.
    """

    def __init__(self, definitions: DefinitionSet):
        self.definitions = definitions
        self.nodes: list[Entity] = []
        self.index: dict[str, int] = {}
        self.prerequisites: list[dict[int, int]] = []
        self.gates: list[int] = []
        self.roots: list[int] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def name(self, idx: int) -> str:
        return self.nodes[idx].name

    def _node(self, name: str, referenced_by: str | None = None) -> int:
        idx = self.index.get(name)
        if idx is not None:
            return idx
        entity = self.definitions.get(name, referenced_by)
        if isinstance(entity, Check):
            raise DefinitionError(f"'{referenced_by}' depends on check '{name}'; list it under 'checks' instead")
        if isinstance(entity, Shell):
            if referenced_by is None:
                raise DefinitionError(f"'{name}' is a shell; open it with the shell command instead")
            raise DefinitionError(f"'{referenced_by}' depends on shell '{name}', which cannot be a dependency")
        idx = len(self.nodes)
        self.nodes.append(entity)
        self.index[name] = idx
        self.prerequisites.append({})
        self.gates.append(0)
        return idx

    def _add_edge(self, dependent: int, prerequisite: int, gate: int) -> None:
        current = self.prerequisites[dependent].get(prerequisite, 0)
        self.prerequisites[dependent][prerequisite] = max(current, gate)
        self.gates[prerequisite] = max(self.gates[prerequisite], gate)

    def expand(self, root_names: list[str], only_selected: bool = False) -> None:
        """Add the roots and everything they pull in.

        With ``only_selected`` only the roots and their post tasks become
        nodes; other references are still validated, and kept as ordering
        edges when both ends are in the graph anyway.
        """
        queue = []
        for name in root_names:
            idx = self._node(name)
            if idx not in self.roots:
                self.roots.append(idx)
                queue.append(idx)

        deferred: list[Relation] = []
        expanded = set()
        while queue:
            idx = queue.pop(0)
            if idx in expanded:
                continue
            expanded.add(idx)
            owner = self.name(idx)

            for rel in relations_of(self.nodes[idx]):
                if rel.post:
                    task_idx = self._node(rel.dependent, owner)
                    if not isinstance(self.nodes[task_idx], Task):
                        raise DefinitionError(f"'{owner}' lists '{rel.dependent}' under post, but it is not a Task")
                    self._add_edge(task_idx, idx, rel.gate)
                    if task_idx not in self.roots:
                        self.roots.append(task_idx)
                    queue.append(task_idx)
                    continue

                other = rel.prerequisite if rel.dependent == owner else rel.dependent
                if only_selected:
                    if isinstance(self.definitions.get(other, owner), Shell):
                        raise DefinitionError(f"'{owner}' depends on shell '{other}', which cannot be a dependency")
                    deferred.append(rel)
                    continue

                dependent = self._node(rel.dependent, owner)
                prerequisite = self._node(rel.prerequisite, owner)
                self._add_edge(dependent, prerequisite, rel.gate)
                queue.extend((dependent, prerequisite))

        for rel in deferred:
            if rel.dependent in self.index and rel.prerequisite in self.index:
                self._add_edge(self.index[rel.dependent], self.index[rel.prerequisite], rel.gate)

        logger.debug(f"Expanded {len(root_names)} root(s) into {len(self.nodes)} node(s)")

    def topological_order(self) -> list[int]:
        """Depth-first post-order from the roots: prerequisites come first.

        Raises CycleDetected with the offending path.
        """
        order: list[int] = []
        marks: dict[int, str] = {}
        path: list[int] = []

        def visit(idx: int) -> None:
            mark = marks.get(idx)
            if mark == _PERMANENT:
                return
            if mark == _TEMPORARY:
                cycle = path[path.index(idx) :] + [idx]
                raise CycleDetected([self.name(i) for i in cycle])
            marks[idx] = _TEMPORARY
            path.append(idx)
            for prerequisite in self.prerequisites[idx]:
                visit(prerequisite)
            path.pop()
            marks[idx] = _PERMANENT
            order.append(idx)

        for root in self.roots:
            visit(root)
        return order
