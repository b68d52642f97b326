"""Stage graph scheduler — executes a pipeline DAG under its failure policies.

The Scheduler wires the StageGraph and a per-run StageMachine to a thread
pool.  Stages whose inputs are all published run concurrently; a stage
starts only after every hard input exists.

Failure handling per policy:

- FAIL_TO_START_DOWNSTREAM: hard dependents go to SKIPPED_UPSTREAM_FAILURE.
- CONTINUE_WITH_FALLBACK: the stage absorbs its own failures; whatever it
  returns is success.  If it raises anyway it is treated like the above.
- FATAL: PENDING/READY stages are cancelled, RUNNING ones are awaited, the
  run ends with a fatal exit code.

A PackagingDeterminismViolation aborts the run whatever the stage's policy.
A run deadline cancels everything outstanding, running stages included.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from reprodocs.core.stage_graph import StageGraph
from reprodocs.core.stage_machine import StageMachine
from reprodocs.errors import (
    ExitCode,
    PackagingDeterminismViolation,
    PipelineDefinitionError,
    PipelineError,
    RunTimeout,
    StageTimeout,
)
from reprodocs.models.artifacts import Artifact
from reprodocs.models.config import RunConfig, new_run_id
from reprodocs.models.reports import RunReport, StageOutcome
from reprodocs.models.stages import FailurePolicy, StageState
from reprodocs.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)


class _RunState:
    """Mutable bookkeeping for one run; owned by the scheduling thread."""

    def __init__(self, machine: StageMachine) -> None:
        self.machine = machine
        self.published: dict[str, list[Artifact]] = {}
        self.errors: dict[str, str] = {}
        self.notes: dict[str, str] = {}
        self.hashes: dict[str, tuple[str | None, str | None]] = {}
        self.started: dict[str, float] = {}
        self.durations: dict[str, float] = {}
        self.cancel_events: dict[str, threading.Event] = {}
        self.running: dict[Future[StageResult], str] = {}
        self.exit_code = ExitCode.SUCCESS
        self.failed_stage: str | None = None
        self.failure_reason: str | None = None
        self.aborted = False
        self.timed_out = False

    def record_failure(self, exit_code: ExitCode, stage_id: str | None, reason: str) -> None:
        # A fatal outcome replaces a non-fatal one; otherwise first failure wins.
        if self.exit_code == ExitCode.SUCCESS or (
            self.exit_code == ExitCode.STAGE_FAILED and exit_code != ExitCode.STAGE_FAILED
        ):
            self.exit_code = exit_code
            self.failed_stage = stage_id
            self.failure_reason = reason


class Scheduler:
    """Runs a set of stages as a DAG.

    Parameters
    ----------
    stages:
        Stage instances; their definitions must form a valid graph.
    max_workers:
        Upper bound on stages running at once.
    run_timeout_seconds:
        Deadline for the whole run; ``None`` disables it.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        stages: list[BaseStage],
        *,
        max_workers: int = 4,
        run_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stages: dict[str, BaseStage] = {}
        for stage in stages:
            if stage.stage_id in self._stages:
                raise PipelineDefinitionError(f"Duplicate stage_id {stage.stage_id!r}")
            self._stages[stage.stage_id] = stage
        self.graph = StageGraph([s.definition for s in stages])
        self._max_workers = max_workers
        self._run_timeout = run_timeout_seconds
        self._clock = clock

    @property
    def execution_order(self) -> list[str]:
        """A valid topological order of the stages."""
        return self.graph.stage_ids

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, revision: str, *, run_id: str | None = None) -> RunReport:
        """Execute every stage for *revision* and report the outcome."""
        run_config = RunConfig(
            revision=revision,
            run_id=run_id or new_run_id(),
            max_workers=self._max_workers,
            run_timeout_seconds=self._run_timeout,
        )
        state = _RunState(StageMachine(self.graph))
        deadline = (
            self._clock() + self._run_timeout if self._run_timeout is not None else None
        )
        logger.info(
            "Run %s for revision %s: %d stages, order %s",
            run_config.run_id,
            revision,
            len(self._stages),
            " -> ".join(self.graph.stage_ids),
        )

        executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="reprodocs-stage"
        )
        try:
            while True:
                if not state.aborted:
                    self._start_ready(state, executor, run_config)
                if not state.running:
                    break

                done, _ = wait(
                    list(state.running),
                    timeout=self._wait_timeout(state, deadline),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    self._complete(state, future)

                self._expire_stages(state)
                if (
                    deadline is not None
                    and self._clock() >= deadline
                    and not state.machine.is_finished()
                ):
                    self._time_out(state)
                    break
        finally:
            executor.shutdown(wait=not state.timed_out, cancel_futures=True)

        if not state.machine.is_finished():
            # Only reachable after an abort: nothing may start any more.
            state.machine.cancel_outstanding("run aborted")

        return self._report(state, run_config)

    # ------------------------------------------------------------------
    # Scheduling steps
    # ------------------------------------------------------------------

    def _start_ready(
        self, state: _RunState, executor: ThreadPoolExecutor, run_config: RunConfig
    ) -> None:
        state.machine.promote_ready()
        free_slots = self._max_workers - len(state.running)
        for stage_id in state.machine.stages_in(StageState.READY)[:max(free_slots, 0)]:
            stage = self._stages[stage_id]
            definition = stage.definition
            cancel_event = threading.Event()
            context = StageContext(
                run_id=run_config.run_id,
                revision=run_config.revision,
                inputs={
                    ref: state.published[ref]
                    for ref in definition.all_inputs
                    if ref in state.published
                },
                cancel_event=cancel_event,
            )
            state.machine.transition(stage_id, StageState.RUNNING)
            state.cancel_events[stage_id] = cancel_event
            state.started[stage_id] = self._clock()
            logger.info("Starting %s [%s]", definition.display_name, stage_id)
            future = executor.submit(stage.run_stage, context)
            state.running[future] = stage_id

    def _wait_timeout(self, state: _RunState, deadline: float | None) -> float | None:
        now = self._clock()
        limits: list[float] = []
        if deadline is not None:
            limits.append(deadline - now)
        for stage_id in state.running.values():
            budget = self._stages[stage_id].definition.timeout_seconds
            if budget is not None:
                limits.append(state.started[stage_id] + budget - now)
        if not limits:
            return None
        return max(0.0, min(limits))

    def _complete(self, state: _RunState, future: Future[StageResult]) -> None:
        stage_id = state.running.pop(future, None)
        if stage_id is None:
            return  # already expired or cancelled; late result discarded
        state.durations[stage_id] = self._clock() - state.started[stage_id]
        definition = self._stages[stage_id].definition

        try:
            result = future.result()
        except PackagingDeterminismViolation as exc:
            self._fail(state, stage_id, exc)
            self._abort(state, exc.exit_code, stage_id, str(exc))
            return
        except Exception as exc:
            self._fail(state, stage_id, exc)
            if definition.failure_policy == FailurePolicy.FATAL:
                self._abort(state, ExitCode.FATAL_STAGE_FAILURE, stage_id, str(exc))
            else:
                state.record_failure(ExitCode.STAGE_FAILED, stage_id, str(exc))
            return

        state.published.update(result.outputs)
        state.hashes[stage_id] = (result.input_hash, result.output_hash)
        if result.note:
            state.notes[stage_id] = result.note
            logger.warning("%s [%s] degraded: %s", definition.display_name, stage_id, result.note)
        state.machine.transition(stage_id, StageState.SUCCEEDED)
        logger.info(
            "%s [%s] succeeded in %.2fs",
            definition.display_name,
            stage_id,
            state.durations[stage_id],
        )

    def _fail(self, state: _RunState, stage_id: str, exc: BaseException) -> None:
        reason = str(exc) or type(exc).__name__
        if not isinstance(exc, PipelineError):
            reason = f"{type(exc).__name__}: {reason}"
        state.errors[stage_id] = reason
        logger.error("Stage %s failed: %s", stage_id, reason)
        state.machine.transition(stage_id, StageState.FAILED, reason=reason)

    def _expire_stages(self, state: _RunState) -> None:
        now = self._clock()
        for future, stage_id in list(state.running.items()):
            definition = self._stages[stage_id].definition
            budget = definition.timeout_seconds
            if budget is None or now - state.started[stage_id] < budget:
                continue
            del state.running[future]
            future.cancel()
            state.cancel_events[stage_id].set()
            state.durations[stage_id] = now - state.started[stage_id]
            exc = StageTimeout(f"{stage_id} exceeded its {budget}s timeout")
            self._fail(state, stage_id, exc)
            if definition.failure_policy == FailurePolicy.FATAL:
                self._abort(state, ExitCode.FATAL_STAGE_FAILURE, stage_id, str(exc))
            else:
                state.record_failure(ExitCode.STAGE_FAILED, stage_id, str(exc))

    def _abort(self, state: _RunState, exit_code: ExitCode, stage_id: str, reason: str) -> None:
        state.record_failure(exit_code, stage_id, reason)
        if state.aborted:
            return
        state.aborted = True
        for event in state.cancel_events.values():
            event.set()
        cancelled = state.machine.cancel_outstanding(f"run aborted by {stage_id}")
        logger.error(
            "Run aborted by %s: %s; cancelled %s; waiting for %d running stage(s)",
            stage_id,
            reason,
            cancelled or "nothing",
            len(state.running),
        )

    def _time_out(self, state: _RunState) -> None:
        exc = RunTimeout(f"run exceeded its {self._run_timeout}s deadline")
        reason = str(exc)
        state.timed_out = True
        state.aborted = True
        if state.exit_code in (ExitCode.SUCCESS, ExitCode.STAGE_FAILED):
            # A timeout outranks stage failures but not an earlier fatal abort.
            state.exit_code = exc.exit_code
            state.failed_stage = None
            state.failure_reason = reason
        for event in state.cancel_events.values():
            event.set()
        now = self._clock()
        for future, stage_id in state.running.items():
            future.cancel()
            state.durations[stage_id] = now - state.started[stage_id]
        state.running.clear()
        cancelled = state.machine.cancel_outstanding(reason, include_running=True)
        logger.error("Run timed out: %s; cancelled %s", reason, cancelled)

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def _report(self, state: _RunState, run_config: RunConfig) -> RunReport:
        states = state.machine.get_all_states()
        outcomes: list[StageOutcome] = []
        transitions = state.machine.history
        for stage_id in self.graph.stage_ids:
            definition = self._stages[stage_id].definition
            error = state.errors.get(stage_id)
            if error is None and states[stage_id] in (
                StageState.SKIPPED_UPSTREAM_FAILURE,
                StageState.CANCELLED,
            ):
                error = next(
                    (t.reason for t in reversed(transitions) if t.stage_id == stage_id),
                    None,
                )
            artifacts = [
                artifact.ref()
                for ref in definition.outputs
                for artifact in state.published.get(ref, [])
            ]
            input_hash, output_hash = state.hashes.get(stage_id, (None, None))
            outcomes.append(
                StageOutcome(
                    stage_id=stage_id,
                    display_name=definition.display_name,
                    state=states[stage_id],
                    error=error,
                    note=state.notes.get(stage_id),
                    duration_seconds=round(state.durations.get(stage_id, 0.0), 3),
                    artifacts=artifacts,
                    input_hash=input_hash,
                    output_hash=output_hash,
                )
            )

        report = RunReport(
            run_id=run_config.run_id,
            revision=run_config.revision,
            outcomes=outcomes,
            transitions=transitions,
            artifacts=dict(state.published),
            exit_code=state.exit_code,
            failed_stage=state.failed_stage,
            failure_reason=state.failure_reason,
            timed_out=state.timed_out,
        )
        if report.succeeded:
            logger.info("Run %s succeeded", run_config.run_id)
        else:
            logger.error(
                "Run %s failed (exit %d): %s%s",
                run_config.run_id,
                int(report.exit_code),
                f"stage {report.failed_stage}: " if report.failed_stage else "",
                report.failure_reason,
            )
        return report
