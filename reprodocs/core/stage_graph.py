"""Stage DAG derived from declared artifact inputs and outputs.

The graph enforces:
- Every artifact reference is produced by exactly one stage.
- Every input reference has a producer.
- The producer -> consumer edges form a DAG (no cycles).
- When a stage fails, every stage that depends on it through hard inputs,
  transitively, is skipped without running.
"""

from __future__ import annotations

from collections import deque

from reprodocs.errors import CyclicDependencyError, PipelineDefinitionError
from reprodocs.models.stages import StageDefinition, StageState

_SATISFIED = frozenset({StageState.SUCCEEDED})
_UNSATISFIABLE = frozenset(
    {StageState.FAILED, StageState.SKIPPED_UPSTREAM_FAILURE, StageState.CANCELLED}
)


class StageGraph:
    """Directed acyclic graph of stages linked by the artifacts they exchange.

    Built once from the stage definitions at pipeline start.
    """

    def __init__(self, stage_definitions: list[StageDefinition]) -> None:
        self._stages: dict[str, StageDefinition] = {}
        for sd in stage_definitions:
            if sd.stage_id in self._stages:
                raise PipelineDefinitionError(f"Duplicate stage_id {sd.stage_id!r}")
            self._stages[sd.stage_id] = sd

        # artifact reference -> producing stage_id
        self._producers: dict[str, str] = {}
        for sd in stage_definitions:
            for ref in sd.outputs:
                if ref in self._producers:
                    raise PipelineDefinitionError(
                        f"Artifact {ref!r} is produced by both "
                        f"{self._producers[ref]!r} and {sd.stage_id!r}"
                    )
                self._producers[ref] = sd.stage_id

        # Forward edges: stage_id -> upstream stage_ids (hard, optional)
        self._hard_upstream: dict[str, list[str]] = {}
        self._optional_upstream: dict[str, list[str]] = {}
        # Reverse edges: stage_id -> downstream stage_ids
        self._dependents: dict[str, list[str]] = {sid: [] for sid in self._stages}
        self._hard_dependents: dict[str, list[str]] = {sid: [] for sid in self._stages}

        for sd in stage_definitions:
            hard = self._resolve_producers(sd, sd.inputs)
            optional = self._resolve_producers(sd, sd.optional_inputs)
            self._hard_upstream[sd.stage_id] = hard
            self._optional_upstream[sd.stage_id] = [p for p in optional if p not in hard]
            for producer in hard:
                self._dependents[producer].append(sd.stage_id)
                self._hard_dependents[producer].append(sd.stage_id)
            for producer in self._optional_upstream[sd.stage_id]:
                self._dependents[producer].append(sd.stage_id)

        self._order = self._topological_order()

    def _resolve_producers(self, sd: StageDefinition, refs: list[str]) -> list[str]:
        producers: list[str] = []
        for ref in refs:
            producer = self._producers.get(ref)
            if producer is None:
                raise PipelineDefinitionError(
                    f"Stage {sd.stage_id!r} consumes {ref!r}, which no stage produces"
                )
            if producer == sd.stage_id:
                raise CyclicDependencyError(
                    f"Stage {sd.stage_id!r} consumes its own output {ref!r}"
                )
            if producer not in producers:
                producers.append(producer)
        return producers

    def _topological_order(self) -> list[str]:
        """Kahn's algorithm; ties broken by declaration order."""
        in_degree = {
            sid: len(self._hard_upstream[sid]) + len(self._optional_upstream[sid])
            for sid in self._stages
        }
        queue = deque(sid for sid in self._stages if in_degree[sid] == 0)
        order: list[str] = []

        while queue:
            node = queue.popleft()
            order.append(node)
            for dep in self._dependents[node]:
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if len(order) != len(self._stages):
            stuck = sorted(sid for sid, deg in in_degree.items() if deg > 0)
            raise CyclicDependencyError(
                f"Stage graph has a cycle. "
                f"Visited {len(order)}/{len(self._stages)} stages; stuck: {stuck}"
            )
        return order

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def stage_ids(self) -> list[str]:
        """Return all stage_ids in topological order."""
        return list(self._order)

    def get_stage_definition(self, stage_id: str) -> StageDefinition:
        """Return the StageDefinition for a stage_id."""
        return self._stages[stage_id]

    def producer_of(self, ref: str) -> str:
        """Return the stage_id that publishes an artifact reference."""
        return self._producers[ref]

    def get_upstream(self, stage_id: str, *, include_optional: bool = True) -> list[str]:
        """Return direct upstream stage_ids for a stage."""
        upstream = list(self._hard_upstream.get(stage_id, []))
        if include_optional:
            upstream.extend(self._optional_upstream.get(stage_id, []))
        return upstream

    def get_dependents(self, stage_id: str, *, hard_only: bool = False) -> list[str]:
        """Return all transitive dependent stage_ids (BFS)."""
        edges = self._hard_dependents if hard_only else self._dependents
        result: list[str] = []
        queue = deque(edges.get(stage_id, []))
        visited: set[str] = set()
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            queue.extend(edges.get(node, []))
        return result

    # ------------------------------------------------------------------
    # Readiness checking
    # ------------------------------------------------------------------

    def is_ready(self, stage_id: str, states: dict[str, StageState]) -> bool:
        """True when every hard input succeeded and every optional input settled.

        An optional input is settled once its producer reached any terminal
        state; the consumer then sees it present or absent.
        """
        for upstream in self._hard_upstream.get(stage_id, []):
            if states.get(upstream) not in _SATISFIED:
                return False
        for upstream in self._optional_upstream.get(stage_id, []):
            if states.get(upstream) not in _SATISFIED | _UNSATISFIABLE:
                return False
        return True

    def get_blocking_reasons(
        self, stage_id: str, states: dict[str, StageState]
    ) -> list[str]:
        """Return human-readable reasons why a stage cannot start."""
        reasons = []
        for upstream in self._hard_upstream.get(stage_id, []):
            state = states.get(upstream, StageState.PENDING)
            if state not in _SATISFIED:
                name = self._stages[upstream].display_name
                reasons.append(f"{name} ({upstream}) is {state.value}")
        return reasons

    # ------------------------------------------------------------------
    # Cascade skipping
    # ------------------------------------------------------------------

    def cascade_skip(
        self, failed_stage_id: str, states: dict[str, StageState]
    ) -> list[str]:
        """Stages that must be skipped because *failed_stage_id* did not succeed.

        Walks hard-dependency edges only.  Stages already past PENDING/READY
        are left alone.  Does not mutate *states*; the caller transitions the
        returned stage_ids (in topological order).
        """
        skipped: list[str] = []
        for stage_id in self.get_dependents(failed_stage_id, hard_only=True):
            current = states.get(stage_id, StageState.PENDING)
            if current in (StageState.PENDING, StageState.READY):
                skipped.append(stage_id)
        position = {sid: i for i, sid in enumerate(self._order)}
        return sorted(skipped, key=position.__getitem__)
