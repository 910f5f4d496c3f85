"""
Tests for the wave scheduler.

Verifies that:
- Outputs flow into dependent steps' inputs through templates
- Waves are sequential and siblings run concurrently (or serially)
- stop / continue failure policies behave as documented
- Whole-run timeouts and deadlocks raise with the partial result
- Events arrive in causal order, and a failing observer never aborts a run
- Step retry delays and timeouts come from the engine configuration
"""

import asyncio
import logging

import pytest

from conftest import Flaky
from skillflow import (
    CallbackObserver,
    ConfigurationError,
    DeadlockError,
    EngineConfig,
    ExecutionOptions,
    RetryPolicy,
    Scheduler,
    SkillInvoker,
    StepStatus,
    ValidationError,
    WorkflowStatus,
    WorkflowTimeoutError,
)

# ==============================================================================
# Happy path
# ==============================================================================


@pytest.fixture
def research_workflow(build_workflow):
    return build_workflow(
        {"id": "research", "skill": "web_research", "input": {"query": "{{ variables.topic }}"}},
        {
            "id": "summarize",
            "skill": "summarizer",
            "depends_on": ["research"],
            "input": {"text": "{{ steps.research.summary }}"},
        },
        {
            "id": "report",
            "skill": "report_writer",
            "depends_on": ["summarize"],
            "input": {
                "title": "{{ variables.topic }}",
                "body": "{{ steps.summarize.summary }} ({{ steps.research.sources.0 }})",
            },
        },
        name="research-report",
    )


@pytest.mark.asyncio
async def test_linear_pipeline_propagates_outputs(scheduler, research_workflow, observer):
    result = await scheduler.execute(
        research_workflow, ExecutionOptions(variables={"topic": "solar"}), observer
    )

    assert result.success
    assert result.status is WorkflowStatus.COMPLETED
    assert result.workflow_name == "research-report"
    assert result.executed_steps == ["research", "summarize", "report"]
    assert result.failed_steps == [] and result.skipped_steps == []
    assert result.results["summarize"] == {"summary": "Findings about solar", "length": 20}
    assert result.results["report"] == {
        "report": "# solar\n\nFindings about solar (https://example.org/solar/1)"
    }
    assert result.context.variables == {"topic": "solar"}
    assert result.step_statuses == {
        "research": StepStatus.COMPLETED,
        "summarize": StepStatus.COMPLETED,
        "report": StepStatus.COMPLETED,
    }
    assert result.error is None
    assert result.duration_ms > 0

    assert observer.types == [
        "workflow-start",
        "step-start",
        "step-complete",
        "step-start",
        "step-complete",
        "step-start",
        "step-complete",
        "workflow-complete",
    ]
    assert observer.events[0].run_id == result.run_id
    assert observer.events[-1].context.steps == result.results


@pytest.mark.asyncio
async def test_each_run_has_its_own_id(scheduler, research_workflow):
    options = ExecutionOptions(variables={"topic": "x"})
    first = await scheduler.execute(research_workflow, options)
    second = await scheduler.execute(research_workflow, options)

    assert first.run_id != second.run_id


@pytest.mark.concurrency
@pytest.mark.asyncio
async def test_wave_siblings_run_concurrently(scheduler, build_workflow, observer):
    workflow = build_workflow(
        {"id": "a", "skill": "slow", "input": {"delay_ms": 100}},
        {"id": "b", "skill": "slow", "input": {"delay_ms": 150}},
        {
            "id": "c",
            "skill": "echo",
            "depends_on": ["a", "b"],
            "input": {"a": "{{ steps.a.slept_ms }}"},
        },
    )

    loop = asyncio.get_running_loop()
    start = loop.time()
    result = await scheduler.execute(workflow, observer=observer)
    elapsed_ms = (loop.time() - start) * 1000

    assert result.success
    assert result.results["c"] == {"a": "100"}
    assert 150 * 0.95 <= elapsed_ms < 240
    # Both starts of the first wave come before any completion
    assert observer.types[:3] == ["workflow-start", "step-start", "step-start"]
    assert [e.step_id for e in observer.of_type("step-complete")] == ["a", "b", "c"]


@pytest.mark.concurrency
@pytest.mark.asyncio
async def test_serial_mode_runs_siblings_one_at_a_time(scheduler, build_workflow, observer):
    workflow = build_workflow(
        {"id": "a", "skill": "slow", "input": {"delay_ms": 60}},
        {"id": "b", "skill": "slow", "input": {"delay_ms": 60}},
    )

    loop = asyncio.get_running_loop()
    start = loop.time()
    result = await scheduler.execute(workflow, ExecutionOptions(parallel=False), observer)
    elapsed_ms = (loop.time() - start) * 1000

    assert result.success
    assert elapsed_ms >= 120 * 0.95
    assert observer.types[1:5] == ["step-start", "step-complete", "step-start", "step-complete"]


@pytest.mark.asyncio
async def test_next_wave_never_starts_before_previous_finishes(scheduler, build_workflow, observer):
    workflow = build_workflow(
        {"id": "fast", "skill": "slow", "input": {"delay_ms": 5}},
        {"id": "slower", "skill": "slow", "input": {"delay_ms": 60}},
        {"id": "after_fast", "skill": "echo", "depends_on": ["fast"]},
    )

    await scheduler.execute(workflow, observer=observer)

    sequence = [(e.type, getattr(e, "step_id", None)) for e in observer.events]
    assert sequence.index(("step-complete", "slower")) < sequence.index(
        ("step-start", "after_fast")
    )


# ==============================================================================
# Failure policies
# ==============================================================================


@pytest.mark.asyncio
async def test_stop_policy_aborts_and_skips_remaining(scheduler, build_workflow, observer):
    workflow = build_workflow(
        {"id": "bad", "skill": "fail", "input": {"message": "exploded"}},
        {"id": "sibling", "skill": "slow", "input": {"delay_ms": 30}},
        {"id": "after", "skill": "echo", "depends_on": ["bad"]},
        {"id": "later", "skill": "echo", "depends_on": ["sibling"]},
    )

    result = await scheduler.execute(workflow, observer=observer)

    assert not result.success
    assert result.status is WorkflowStatus.FAILED
    assert result.failed_steps == ["bad"]
    assert "exploded" in result.errors["bad"]
    # Siblings already dispatched in the same wave finish and are recorded
    assert result.executed_steps == ["sibling"]
    assert sorted(result.skipped_steps) == ["after", "later"]
    assert result.step_statuses["after"] is StepStatus.SKIPPED
    assert result.error.startswith("Step bad failed")

    assert observer.types[-1] == "workflow-error"
    assert {e.step_id for e in observer.of_type("step-skip")} == {"after", "later"}
    failed_event = observer.of_type("step-error")[0]
    assert failed_event.step_id == "bad"
    assert "exploded" in failed_event.error


@pytest.mark.asyncio
async def test_stop_policy_in_serial_mode_never_starts_later_siblings(
    scheduler, build_workflow, observer
):
    workflow = build_workflow(
        {"id": "bad", "skill": "fail"},
        {"id": "sibling", "skill": "echo"},
    )

    result = await scheduler.execute(workflow, ExecutionOptions(parallel=False), observer)

    assert result.status is WorkflowStatus.FAILED
    assert result.executed_steps == []
    assert result.skipped_steps == ["sibling"]
    assert [e.step_id for e in observer.of_type("step-start")] == ["bad"]


@pytest.mark.asyncio
async def test_continue_policy_skips_only_dependents(scheduler, build_workflow, observer):
    workflow = build_workflow(
        {"id": "flaky", "skill": "fail", "on_failure": "continue"},
        {"id": "child", "skill": "echo", "depends_on": ["flaky"]},
        {"id": "grandchild", "skill": "echo", "depends_on": ["child"]},
        {"id": "independent", "skill": "echo", "input": {"ok": True}},
        {"id": "after_independent", "skill": "echo", "depends_on": ["independent"]},
    )

    result = await scheduler.execute(workflow, observer=observer)

    assert result.status is WorkflowStatus.COMPLETED
    assert not result.success
    assert result.failed_steps == ["flaky"]
    assert result.skipped_steps == ["child", "grandchild"]
    assert result.executed_steps == ["independent", "after_independent"]

    skips = observer.of_type("step-skip")
    assert [e.reason for e in skips] == ["Dependency flaky failed", "Dependency flaky failed"]
    assert observer.types[-1] == "workflow-complete"


@pytest.mark.asyncio
async def test_continue_on_error_option_applies_to_every_step(scheduler, build_workflow):
    workflow = build_workflow(
        {"id": "bad", "skill": "fail"},
        {"id": "good", "skill": "echo"},
        {"id": "after_good", "skill": "echo", "depends_on": ["good"]},
    )

    result = await scheduler.execute(
        workflow, ExecutionOptions(continue_on_error=True, parallel=False)
    )

    assert result.status is WorkflowStatus.COMPLETED
    assert result.executed_steps == ["good", "after_good"]
    assert result.failed_steps == ["bad"]


@pytest.mark.asyncio
async def test_unknown_skill_fails_the_step(scheduler, build_workflow):
    result = await scheduler.execute(build_workflow({"id": "a", "skill": "nope"}))

    assert result.failed_steps == ["a"]
    assert result.errors["a"] == "Skill not found: nope"


@pytest.mark.asyncio
async def test_step_timeout_is_a_timed_out_step(scheduler, build_workflow, invoker):
    workflow = build_workflow(
        {"id": "a", "skill": "slow", "timeout": 20, "input": {"delay_ms": 300}}
    )

    result = await scheduler.execute(workflow)

    assert result.status is WorkflowStatus.FAILED
    assert result.step_statuses["a"] is StepStatus.TIMED_OUT
    assert "timeout after 20ms" in result.errors["a"]
    await invoker.drain()


@pytest.mark.asyncio
async def test_step_retry_block_recovers(scheduler, build_workflow, registry):
    registry.register("flaky", Flaky(failures=2))
    workflow = build_workflow({"id": "a", "skill": "flaky", "retry": {"max_attempts": 3}})

    result = await scheduler.execute(workflow)

    assert result.success
    assert result.results["a"] == {"attempts": 3}


# ==============================================================================
# Terminal errors
# ==============================================================================


@pytest.mark.asyncio
async def test_invalid_workflow_raises_before_any_event(scheduler, build_workflow, observer):
    workflow = build_workflow({"id": "a", "skill": "echo", "depends_on": ["ghost"]})

    with pytest.raises(ValidationError) as exc_info:
        await scheduler.execute(workflow, observer=observer)

    assert exc_info.value.errors == ["Step a depends on non-existent step ghost"]
    assert observer.events == []


@pytest.mark.asyncio
async def test_workflow_timeout_returns_partial_result(
    scheduler, build_workflow, observer, invoker
):
    workflow = build_workflow(
        {"id": "quick", "skill": "echo", "input": {"v": 1}},
        {"id": "long", "skill": "slow", "depends_on": ["quick"], "input": {"delay_ms": 1000}},
        {"id": "never", "skill": "echo", "depends_on": ["long"]},
    )

    with pytest.raises(WorkflowTimeoutError) as exc_info:
        await scheduler.execute(workflow, ExecutionOptions(timeout_ms=100), observer)

    partial = exc_info.value.result
    assert exc_info.value.timeout_ms == 100
    assert partial.status is WorkflowStatus.TIMED_OUT
    assert not partial.success
    assert partial.results == {"quick": {"v": 1}}
    assert partial.skipped_steps == ["long", "never"]
    assert observer.types[-1] == "workflow-error"
    assert "timeout after 100ms" in observer.events[-1].error
    await invoker.drain()


@pytest.mark.asyncio
async def test_deadlock_raises_with_partial_result(
    scheduler, build_workflow, monkeypatch, observer
):
    # Bypass validation to reach the scheduler loop with a cycle
    monkeypatch.setattr("skillflow.executor.scheduler.ensure_valid", lambda workflow: None)
    workflow = build_workflow(
        {"id": "root", "skill": "echo"},
        {"id": "a", "skill": "echo", "depends_on": ["b"]},
        {"id": "b", "skill": "echo", "depends_on": ["a"]},
    )

    with pytest.raises(DeadlockError) as exc_info:
        await scheduler.execute(workflow, observer=observer)

    assert exc_info.value.pending == ["a", "b"]
    assert exc_info.value.result.executed_steps == ["root"]
    assert exc_info.value.result.status is WorkflowStatus.FAILED
    assert observer.types[-1] == "workflow-error"


# ==============================================================================
# Caching, inspection and configuration
# ==============================================================================


@pytest.mark.asyncio
async def test_use_cache_option_serves_repeated_steps(scheduler, build_workflow, invoker):
    workflow = build_workflow({"id": "a", "skill": "echo", "input": {"q": 1}})
    options = ExecutionOptions(use_cache=True)

    await scheduler.execute(workflow, options)
    await scheduler.execute(workflow, options)

    metrics = invoker.get_execution_metrics("echo")
    assert metrics.total_executions == 1
    assert metrics.cache_hits == 1


@pytest.mark.asyncio
async def test_cache_is_off_by_default(scheduler, build_workflow, invoker):
    workflow = build_workflow({"id": "a", "skill": "echo", "input": {"q": 1}})

    await scheduler.execute(workflow)
    await scheduler.execute(workflow)

    assert invoker.get_execution_metrics("echo").total_executions == 2


def test_plan_and_skill_checks(scheduler, research_workflow, build_workflow):
    plan = scheduler.plan(research_workflow)
    assert plan.steps == ["research", "summarize", "report"]
    assert plan.parallel_groups == [["research"], ["summarize"], ["report"]]

    assert scheduler.can_execute(research_workflow)

    unknown = build_workflow(
        {"id": "a", "skill": "ghost"}, {"id": "b", "skill": "ghost"}, {"id": "c", "skill": "echo"}
    )
    assert scheduler.missing_skills(unknown) == ["ghost"]
    assert not scheduler.can_execute(unknown)


def test_scheduler_from_env(monkeypatch, registry):
    monkeypatch.setenv("SKILLFLOW_STEP_TIMEOUT_MS", "1500")
    monkeypatch.setenv("SKILLFLOW_PARALLEL", "false")

    scheduler = Scheduler.from_env(registry)

    assert scheduler.config.step_timeout_ms == 1500
    assert scheduler.config.parallel is False
    assert scheduler.invoker.default_timeout_ms == 1500


@pytest.mark.concurrency
@pytest.mark.asyncio
async def test_concurrent_runs_share_an_invoker_without_interference(registry, build_workflow):
    scheduler = Scheduler(SkillInvoker(registry), EngineConfig())
    workflow = build_workflow(
        {"id": "a", "skill": "echo", "input": {"value": "{{ variables.n }}"}},
        {
            "id": "b",
            "skill": "upper",
            "depends_on": ["a"],
            "input": {"text": "run {{ steps.a.value }}"},
        },
    )

    results = await asyncio.gather(
        *(scheduler.execute(workflow, ExecutionOptions(variables={"n": n})) for n in range(10))
    )

    for n, result in enumerate(results):
        assert result.results["b"] == {"text": f"RUN {n}"}
    assert scheduler.invoker.get_execution_metrics("echo").total_executions == 10


@pytest.mark.asyncio
async def test_callback_observer(scheduler, build_workflow):
    seen = []
    await scheduler.execute(
        build_workflow({"id": "a", "skill": "echo"}),
        observer=CallbackObserver(lambda event: seen.append(event.type)),
    )

    assert seen == ["workflow-start", "step-start", "step-complete", "workflow-complete"]


@pytest.mark.asyncio
async def test_step_retry_delays_come_from_engine_config(registry, build_workflow):
    flaky = Flaky(failures=1)
    registry.register("flaky", flaky)
    invoker = SkillInvoker(
        registry, retry_policy=RetryPolicy(max_attempts=3, initial_delay_ms=5, max_delay_ms=10)
    )
    config = EngineConfig(
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_ms=150, max_delay_ms=1000)
    )
    workflow = build_workflow({"id": "a", "skill": "flaky", "retry": {"max_attempts": 2}})

    result = await Scheduler(invoker, config).execute(workflow)

    assert result.success
    gap_ms = (flaky.call_times[1] - flaky.call_times[0]) * 1000
    assert gap_ms >= 150 * 0.95


# ==============================================================================
# Run status, options and observers
# ==============================================================================


@pytest.mark.asyncio
async def test_active_runs_report_live_status(scheduler, build_workflow):
    seen = []
    observer = CallbackObserver(lambda event: seen.append((event.type, scheduler.active_runs())))

    workflow = build_workflow({"id": "a", "skill": "echo"})

    result = await scheduler.execute(workflow, observer=observer)

    assert seen[0] == ("workflow-start", {result.run_id: WorkflowStatus.RUNNING})
    assert seen[1] == ("step-start", {result.run_id: WorkflowStatus.RUNNING})
    # The terminal event is emitted once the run has its final status
    assert seen[-1] == ("workflow-complete", {})
    assert scheduler.active_runs() == {}


@pytest.mark.asyncio
async def test_active_runs_are_cleared_after_a_timeout(scheduler, build_workflow, invoker):
    workflow = build_workflow({"id": "a", "skill": "slow", "input": {"delay_ms": 300}})

    with pytest.raises(WorkflowTimeoutError):
        await scheduler.execute(workflow, ExecutionOptions(timeout_ms=20))

    assert scheduler.active_runs() == {}
    await invoker.drain()


@pytest.mark.parametrize(
    "overrides",
    [{"timeout_ms": 0}, {"timeout_ms": -5}, {"step_timeout_ms": 0}, {"step_timeout_ms": -1}],
)
def test_non_positive_timeouts_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        ExecutionOptions(**overrides)


@pytest.mark.asyncio
async def test_explicit_step_timeout_option_wins_over_config(scheduler, build_workflow, invoker):
    workflow = build_workflow({"id": "a", "skill": "slow", "input": {"delay_ms": 300}})

    result = await scheduler.execute(workflow, ExecutionOptions(step_timeout_ms=20))

    assert result.step_statuses["a"] is StepStatus.TIMED_OUT
    await invoker.drain()


@pytest.mark.asyncio
async def test_observer_errors_do_not_abort_the_run(scheduler, build_workflow, caplog):
    delivered = []

    def callback(event):
        delivered.append(event.type)
        if event.type == "step-start":
            raise RuntimeError("observer bug")

    workflow = build_workflow(
        {"id": "a", "skill": "echo"},
        {"id": "b", "skill": "echo"},
        {"id": "c", "skill": "echo", "depends_on": ["a", "b"]},
    )

    with caplog.at_level(logging.ERROR, logger="skillflow.executor.scheduler"):
        result = await scheduler.execute(workflow, observer=CallbackObserver(callback))

    assert result.success
    assert result.executed_steps == ["a", "b", "c"]
    assert delivered.count("step-start") == 3
    assert delivered[-1] == "workflow-complete"
    assert "observer failed on step-start event" in caplog.text
