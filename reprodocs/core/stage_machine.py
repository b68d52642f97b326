"""Deterministic stage state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Readiness checked before READY
- Cascade skipping of hard dependents on failure
- Every transition recorded in the run history

The scheduler drives one StageMachine per run from several threads; all
mutation happens under a single lock.
"""

from __future__ import annotations

import logging
import threading

from reprodocs.core.stage_graph import StageGraph
from reprodocs.errors import InvalidTransitionError
from reprodocs.models.stages import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    StageState,
    StageTransition,
)

logger = logging.getLogger(__name__)


class StageMachine:
    """Per-run stage states with transition validation.

    Parameters
    ----------
    graph:
        The stage graph for dependency checking.
    """

    def __init__(self, graph: StageGraph) -> None:
        self._graph = graph
        self._lock = threading.RLock()
        self._states: dict[str, StageState] = {
            sid: StageState.PENDING for sid in graph.stage_ids
        }
        self._history: list[StageTransition] = []

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def get_current_state(self, stage_id: str) -> StageState:
        """Return the current state of a stage."""
        with self._lock:
            return self._states[stage_id]

    def get_all_states(self) -> dict[str, StageState]:
        """Return a snapshot of all stage states."""
        with self._lock:
            return dict(self._states)

    @property
    def history(self) -> list[StageTransition]:
        """Every transition so far, in the order it happened."""
        with self._lock:
            return list(self._history)

    def is_finished(self) -> bool:
        """True when every stage reached a terminal state."""
        with self._lock:
            return all(s in TERMINAL_STATES for s in self._states.values())

    def stages_in(self, *states: StageState) -> list[str]:
        """Stage ids currently in any of *states*, in topological order."""
        with self._lock:
            return [sid for sid in self._graph.stage_ids if self._states[sid] in states]

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self,
        stage_id: str,
        target_state: StageState,
        *,
        reason: str | None = None,
        upstream_ref: str | None = None,
    ) -> StageTransition:
        """Transition a stage to a new state, recording it in the history.

        Validates:
        1. The transition is allowed by VALID_TRANSITIONS.
        2. If target is READY, the stage's inputs are satisfied.
        3. If the transition is to FAILED, hard dependents are skipped.

        Returns the recorded StageTransition.
        """
        with self._lock:
            current = self._states[stage_id]

            allowed = VALID_TRANSITIONS.get(current, set())
            if target_state not in allowed:
                raise InvalidTransitionError(
                    f"Cannot transition {stage_id} from {current.value} to {target_state.value}. "
                    f"Allowed: {sorted(s.value for s in allowed)}"
                )

            if target_state == StageState.READY and not self._graph.is_ready(
                stage_id, self._states
            ):
                reasons = self._graph.get_blocking_reasons(stage_id, self._states)
                raise InvalidTransitionError(
                    f"Cannot mark {stage_id} ready: inputs not satisfied. "
                    f"Blocked by: {'; '.join(reasons)}"
                )

            record = self._record(stage_id, current, target_state, reason, upstream_ref)

            if target_state == StageState.FAILED:
                self._skip_dependents(stage_id)

            return record

    def _record(
        self,
        stage_id: str,
        current: StageState,
        target_state: StageState,
        reason: str | None,
        upstream_ref: str | None,
    ) -> StageTransition:
        record = StageTransition(
            stage_id=stage_id,
            from_state=current,
            to_state=target_state,
            reason=reason,
            upstream_ref=upstream_ref,
        )
        self._states[stage_id] = target_state
        self._history.append(record)
        logger.debug(
            "%s: %s -> %s%s",
            stage_id,
            current.value,
            target_state.value,
            f" ({reason})" if reason else "",
        )
        return record

    def _skip_dependents(self, failed_stage_id: str) -> None:
        for dependent in self._graph.cascade_skip(failed_stage_id, self._states):
            reason = f"upstream stage {failed_stage_id} failed"
            self._record(
                dependent,
                self._states[dependent],
                StageState.SKIPPED_UPSTREAM_FAILURE,
                reason,
                failed_stage_id,
            )
            logger.warning("%s skipped: %s", dependent, reason)

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    def promote_ready(self) -> list[str]:
        """Move every PENDING stage whose inputs are satisfied to READY.

        Returns the promoted stage_ids in topological order.
        """
        promoted: list[str] = []
        with self._lock:
            for sid in self._graph.stage_ids:
                if self._states[sid] == StageState.PENDING and self._graph.is_ready(
                    sid, self._states
                ):
                    self.transition(sid, StageState.READY)
                    promoted.append(sid)
        return promoted

    def cancel_outstanding(self, reason: str, *, include_running: bool = False) -> list[str]:
        """Cancel every PENDING/READY stage (and RUNNING ones if asked)."""
        targets = [StageState.PENDING, StageState.READY]
        if include_running:
            targets.append(StageState.RUNNING)
        cancelled: list[str] = []
        with self._lock:
            for sid in self.stages_in(*targets):
                self.transition(sid, StageState.CANCELLED, reason=reason)
                cancelled.append(sid)
        return cancelled
