"""
Scheduler - wave-based execution of a workflow DAG.

Design Pattern: Façade Pattern
Simplifies the process of:
1. Validating the workflow
2. Picking the next wave of ready steps
3. Substituting each step's input against the run's context
4. Invoking skills with their timeout and retry configuration
5. Applying each step's failure policy
6. Emitting lifecycle events in causal order

Into a single execute() call (or stream() for a pull-based view).

Waves are strictly sequential: no step of wave N+1 starts before every
step of wave N has finished. Within a wave, steps are dispatched
concurrently when `parallel` is set and one at a time otherwise.

State machine per run:
    NOT_STARTED → RUNNING → COMPLETED / FAILED / TIMED_OUT

Usage:
    registry = SkillRegistry()
    scheduler = Scheduler(SkillInvoker(registry))

    result = await scheduler.execute(workflow)
    print(result.status, result.results)

    # Or follow progress live
    async for event in scheduler.stream(workflow):
        print(event.type)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from uuid_extensions import uuid7

from skillflow.config import EngineConfig
from skillflow.core.errors import (
    ConfigurationError,
    DeadlockError,
    SkillflowError,
    StepTimeoutError,
    WorkflowTimeoutError,
)
from skillflow.core.graph import build_execution_plan, get_next_steps, transitive_dependents
from skillflow.core.template import substitute
from skillflow.core.validator import ensure_valid
from skillflow.executor.backend import SkillBackend
from skillflow.executor.invoker import SkillInvoker
from skillflow.models.context import WorkflowContext
from skillflow.models.events import (
    CallbackObserver,
    ExecutionFinished,
    ExecutionObserver,
    StepCompleted,
    StepFailed,
    StepSkipped,
    StepStarted,
    WorkflowCompleted,
    WorkflowEvent,
    WorkflowFailed,
    WorkflowStarted,
)
from skillflow.models.json_value import JsonObject, JsonValue
from skillflow.models.result import ExecutionPlan, ExecutionResult
from skillflow.models.retry import RetryPolicy
from skillflow.models.status import StepStatus, WorkflowStatus
from skillflow.models.workflow import OnFailure, Workflow, WorkflowStep

logger = logging.getLogger(__name__)

# Marks the end of a run on the stream() queue
_STREAM_DONE = object()


@dataclass(frozen=True)
class ExecutionOptions:
    """
    Per-run overrides. Fields left as None fall back to the EngineConfig.

    **Attributes**:
        timeout_ms: Budget for the whole run
        step_timeout_ms: Per-attempt timeout for steps that declare none
        parallel: Dispatch the steps of a wave concurrently
        continue_on_error: Treat every step as on_failure=continue
        use_cache: Serve step results from the invoker's cache
        variables: Values addressable as {{ variables.<name> }}
    """

    timeout_ms: float | None = None
    step_timeout_ms: float | None = None
    parallel: bool | None = None
    continue_on_error: bool = False
    use_cache: bool | None = None
    variables: JsonObject = field(default_factory=dict)

    def __post_init__(self):
        for name in ("timeout_ms", "step_timeout_ms"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class _ResolvedOptions:
    timeout_ms: float
    step_timeout_ms: float
    parallel: bool
    continue_on_error: bool
    use_cache: bool
    retry_policy: RetryPolicy


class _RunState:
    """Mutable bookkeeping of one run. Private to that run."""

    def __init__(
        self, workflow: Workflow, observer: ExecutionObserver | None, variables: JsonObject
    ):
        self.run_id = str(uuid7())
        self.workflow = workflow
        self.observer = observer
        self.context = WorkflowContext(variables=dict(variables))
        self.statuses: dict[str, StepStatus] = {
            step.id: StepStatus.PENDING for step in workflow.steps
        }
        self.completed: list[str] = []
        self.failed: list[str] = []
        self.skipped: list[str] = []
        self.errors: dict[str, str] = {}
        self.status = WorkflowStatus.NOT_STARTED
        self.started_at = time.perf_counter()

    def emit(self, event: WorkflowEvent) -> None:
        if self.observer is None:
            return
        # Observer errors are logged, never propagated into the run
        try:
            self.observer.notify(event)
        except Exception as e:
            logger.error(f"Run {self.run_id}: observer failed on {event.type} event: {e}")

    def pending(self) -> list[str]:
        return [step_id for step_id, status in self.statuses.items() if not status.is_terminal]

    def start(self, step: WorkflowStep) -> None:
        self.statuses[step.id] = StepStatus.RUNNING
        self.emit(StepStarted(step_id=step.id, step=step))

    def complete(self, step_id: str, output: JsonValue) -> None:
        self.context.record(step_id, output)
        self.completed.append(step_id)
        self.statuses[step_id] = StepStatus.COMPLETED
        self.emit(StepCompleted(step_id=step_id, output=output))

    def fail(self, step_id: str, error: SkillflowError) -> None:
        self.failed.append(step_id)
        self.errors[step_id] = str(error)
        timed_out = isinstance(error, StepTimeoutError)
        self.statuses[step_id] = StepStatus.TIMED_OUT if timed_out else StepStatus.FAILED
        self.emit(StepFailed(step_id=step_id, error=str(error), exception=error))

    def skip(self, step_id: str, reason: str) -> None:
        self.skipped.append(step_id)
        self.statuses[step_id] = StepStatus.SKIPPED
        logger.warning(f"Skipping step {step_id}: {reason}")
        self.emit(StepSkipped(step_id=step_id, reason=reason))

    def skip_pending(self, reason: str) -> None:
        # Steps still RUNNING were abandoned mid-flight; they are reported as skipped too
        for step_id in self.pending():
            self.skip(step_id, reason)

    def result(self, status: WorkflowStatus, error: str | None = None) -> ExecutionResult:
        self.status = status
        return ExecutionResult(
            run_id=self.run_id,
            workflow_name=self.workflow.name,
            status=status,
            success=status is WorkflowStatus.COMPLETED and not self.failed,
            results=dict(self.context.steps),
            errors=dict(self.errors),
            executed_steps=list(self.completed),
            failed_steps=list(self.failed),
            skipped_steps=list(self.skipped),
            duration_ms=(time.perf_counter() - self.started_at) * 1000,
            context=self.context.snapshot(),
            error=error,
            step_statuses=dict(self.statuses),
        )


class Scheduler:
    """
    Executes workflows through a SkillInvoker.

    Args:
        invoker: Invoker shared by every run of this scheduler
        config: Defaults for options a run leaves unset
    """

    def __init__(self, invoker: SkillInvoker, config: EngineConfig | None = None):
        self.invoker = invoker
        self.config = config or EngineConfig()
        # Runs currently inside execute(), by run id
        self._runs: dict[str, _RunState] = {}

    @classmethod
    def from_env(cls, backend: SkillBackend) -> Scheduler:
        """
        Build a scheduler (and its invoker) from SKILLFLOW_* variables.

        Raises:
            ConfigurationError: If a variable is malformed
        """
        config = EngineConfig.from_env()
        return cls(SkillInvoker.from_config(backend, config), config)

    # =========================================================================
    # Inspection
    # =========================================================================

    def plan(self, workflow: Workflow) -> ExecutionPlan:
        """Topological order, dependencies and parallel groups, without running."""
        return build_execution_plan(workflow)

    def missing_skills(self, workflow: Workflow) -> list[str]:
        """Skills referenced by the workflow that the backend does not know."""
        missing: list[str] = []
        for step in workflow.steps:
            if not self.invoker.has_skill(step.skill) and step.skill not in missing:
                missing.append(step.skill)
        return missing

    def can_execute(self, workflow: Workflow) -> bool:
        return not self.missing_skills(workflow)

    def active_runs(self) -> dict[str, WorkflowStatus]:
        """Live status of every run that has not reached a terminal status yet."""
        return {
            run_id: run.status for run_id, run in self._runs.items() if not run.status.is_terminal
        }

    # =========================================================================
    # Execution
    # =========================================================================

    def _resolve(self, options: ExecutionOptions) -> _ResolvedOptions:
        config = self.config
        return _ResolvedOptions(
            timeout_ms=(
                config.workflow_timeout_ms if options.timeout_ms is None else options.timeout_ms
            ),
            step_timeout_ms=(
                config.step_timeout_ms
                if options.step_timeout_ms is None
                else options.step_timeout_ms
            ),
            parallel=config.parallel if options.parallel is None else options.parallel,
            continue_on_error=options.continue_on_error,
            use_cache=config.use_cache if options.use_cache is None else options.use_cache,
            retry_policy=config.retry_policy,
        )

    async def execute(
        self,
        workflow: Workflow,
        options: ExecutionOptions | None = None,
        observer: ExecutionObserver | None = None,
    ) -> ExecutionResult:
        """
        Run a workflow to completion.

        Args:
            workflow: Parsed workflow
            options: Per-run overrides
            observer: Receives lifecycle events synchronously, in causal order

        Returns:
            ExecutionResult. Step failures are reported here, not raised.

        Raises:
            ValidationError: Before any event, if the workflow is invalid
            WorkflowTimeoutError: If the run exceeds its budget (carries
                the partial result)
            DeadlockError: If no step is ready while work remains (carries
                the partial result)
        """
        options = options or ExecutionOptions()
        ensure_valid(workflow)
        resolved = self._resolve(options)

        run = _RunState(workflow, observer, options.variables)
        self._runs[run.run_id] = run
        try:
            return await self._execute_run(run, resolved)
        finally:
            del self._runs[run.run_id]

    async def _execute_run(self, run: _RunState, resolved: _ResolvedOptions) -> ExecutionResult:
        workflow = run.workflow
        logger.info(f"Starting workflow {workflow.name} (run {run.run_id})")
        run.status = WorkflowStatus.RUNNING
        run.emit(WorkflowStarted(run_id=run.run_id, workflow_name=workflow.name))

        try:
            stopped_by = await asyncio.wait_for(
                self._run_waves(run, resolved), resolved.timeout_ms / 1000.0
            )
        except TimeoutError:
            error = WorkflowTimeoutError(resolved.timeout_ms)
            logger.warning(f"Workflow {workflow.name} (run {run.run_id}): {error}")
            run.skip_pending("Workflow execution timed out")
            error.result = run.result(WorkflowStatus.TIMED_OUT, error=str(error))
            run.emit(WorkflowFailed(error=str(error), exception=error))
            raise error from None
        except DeadlockError as e:
            e.result = run.result(WorkflowStatus.FAILED, error=str(e))
            run.emit(WorkflowFailed(error=str(e), exception=e))
            raise

        if stopped_by is not None:
            message = f"Step {stopped_by} failed: {run.errors[stopped_by]}"
            result = run.result(WorkflowStatus.FAILED, error=message)
            logger.info(f"Workflow {workflow.name} (run {run.run_id}) failed: {message}")
            run.emit(WorkflowFailed(error=message))
            return result

        result = run.result(WorkflowStatus.COMPLETED)
        logger.info(
            f"Workflow {workflow.name} (run {run.run_id}) completed in "
            f"{result.duration_ms:.0f}ms: {len(run.completed)} completed, "
            f"{len(run.failed)} failed, {len(run.skipped)} skipped"
        )
        run.emit(WorkflowCompleted(context=result.context))
        return result

    async def stream(
        self, workflow: Workflow, options: ExecutionOptions | None = None
    ) -> AsyncIterator[WorkflowEvent]:
        """
        Run a workflow and yield its events as they happen.

        The final item is ExecutionFinished carrying the result. An
        exception from the run is raised after the events emitted before
        it have been yielded. Closing the iterator early cancels the run.
        """
        queue: asyncio.Queue = asyncio.Queue()
        observer = CallbackObserver(queue.put_nowait)

        task = asyncio.create_task(self.execute(workflow, options, observer))
        task.add_done_callback(lambda _: queue.put_nowait(_STREAM_DONE))

        try:
            while True:
                event = await queue.get()
                if event is _STREAM_DONE:
                    break
                yield event

            yield ExecutionFinished(result=task.result())
        finally:
            if not task.done():
                task.cancel()

    async def _run_waves(self, run: _RunState, options: _ResolvedOptions) -> str | None:
        """
        The scheduling loop.

        Returns:
            Id of the step whose failure stopped the run, or None if the
            run went through every step
        """
        workflow = run.workflow
        wave_number = 0

        while True:
            pending = run.pending()
            if not pending:
                return None

            wave = get_next_steps(workflow, run.completed, set(run.failed) | set(run.skipped))
            if not wave:
                raise DeadlockError(pending)

            wave_number += 1
            logger.debug(f"Run {run.run_id} wave {wave_number}: {', '.join(wave)}")

            steps = [workflow.get_step(step_id) for step_id in wave]
            inputs = {step.id: substitute(step.input, run.context) for step in steps}

            if options.parallel:
                for step in steps:
                    run.start(step)
                await asyncio.gather(
                    *(self._run_step(run, step, inputs[step.id], options) for step in steps)
                )
            else:
                for step in steps:
                    run.start(step)
                    ok = await self._run_step(run, step, inputs[step.id], options)
                    if not ok and not self._continues(step, options):
                        break

            for step in steps:
                if step.id not in run.failed:
                    continue
                if not self._continues(step, options):
                    run.skip_pending(f"Workflow stopped after step {step.id} failed")
                    return step.id
                for dependent in transitive_dependents(workflow, step.id):
                    if run.statuses[dependent] is StepStatus.PENDING:
                        run.skip(dependent, f"Dependency {step.id} failed")

    async def _run_step(
        self, run: _RunState, step: WorkflowStep, input: JsonObject, options: _ResolvedOptions
    ) -> bool:
        try:
            output = await self.invoker.invoke_step(
                step,
                input,
                default_timeout_ms=options.step_timeout_ms,
                use_cache=options.use_cache,
                base_policy=options.retry_policy,
            )
        except SkillflowError as e:
            logger.warning(f"Step {step.id} ({step.skill}) failed: {e}")
            run.fail(step.id, e)
            return False

        run.complete(step.id, output)
        return True

    @staticmethod
    def _continues(step: WorkflowStep, options: _ResolvedOptions) -> bool:
        return options.continue_on_error or step.on_failure is OnFailure.CONTINUE


__all__ = ["Scheduler", "ExecutionOptions"]
