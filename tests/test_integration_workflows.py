"""
End-to-end tests: workflow files on disk through the full engine.

These exercise parsing, validation, scheduling, substitution, retries
and failure policies together, the way a host application uses them.
"""

import asyncio
import json

import pytest

from conftest import Flaky, RecordingObserver
from skillflow import (
    EngineConfig,
    ExecutionOptions,
    Scheduler,
    SkillInvoker,
    StepStatus,
    WorkflowStatus,
    level_graph,
    load_workflow_file,
)

RESEARCH_PIPELINE = """
name: research-pipeline
version: "2.1"
description: Research a topic, digest it two ways, write a report
steps:
  - id: research
    name: Research the topic
    skill: web_research
    input:
      query: "{{ variables.topic }}"

  - id: summarize
    skill: summarizer
    depends_on: research
    input:
      text: "{{ steps.research.summary }}"

  - id: links
    skill: echo
    depends_on: [research]
    input:
      first: "{{ steps.research.sources.0 }}"
      all: "{{ steps.research.sources }}"

  - id: report
    skill: report_writer
    depends_on: [summarize, links]
    timeout: 5000
    input:
      title: "Report on {{ variables.topic }}"
      body: "{{ steps.summarize.summary }} See {{ steps.links.first }}."
"""


@pytest.fixture
def pipeline_file(tmp_path):
    path = tmp_path / "research.yaml"
    path.write_text(RESEARCH_PIPELINE, encoding="utf-8")
    return path


@pytest.mark.asyncio
async def test_yaml_pipeline_end_to_end(scheduler, pipeline_file):
    workflow = load_workflow_file(pipeline_file)
    observer = RecordingObserver()

    result = await scheduler.execute(
        workflow, ExecutionOptions(variables={"topic": "tides"}), observer
    )

    assert result.status is WorkflowStatus.COMPLETED
    assert result.executed_steps[0] == "research"
    assert result.executed_steps[-1] == "report"
    assert set(result.executed_steps[1:3]) == {"summarize", "links"}
    assert result.results["links"] == {
        "first": "https://example.org/tides/1",
        "all": '["https://example.org/tides/1","https://example.org/tides/2"]',
    }
    assert result.results["report"]["report"] == (
        "# Report on tides\n\nFindings about tides See https://example.org/tides/1."
    )

    # summarize and links form one wave: both start before either completes
    sequence = [(e.type, getattr(e, "step_id", None)) for e in observer.events]
    starts = [sequence.index(("step-start", s)) for s in ("summarize", "links")]
    completes = [sequence.index(("step-complete", s)) for s in ("summarize", "links")]
    assert max(starts) < min(completes)


def test_pipeline_plan_and_graph(scheduler, pipeline_file):
    workflow = load_workflow_file(pipeline_file)

    plan = scheduler.plan(workflow)
    assert plan.steps == ["research", "summarize", "links", "report"]
    assert plan.parallel_groups == [["research"], ["summarize", "links"], ["report"]]
    assert plan.dependencies["report"] == ["summarize", "links"]

    graph = level_graph(workflow)
    assert graph.startswith("Workflow research-pipeline (4 steps):")
    assert "Level 1: [summarize] [links] (2 parallel steps)" in graph


@pytest.mark.asyncio
async def test_json_workflow_with_retry_and_continue(tmp_path, registry, fast_retry):
    registry.register("flaky_fetch", Flaky(failures=1))
    definition = {
        "name": "resilient",
        "version": "1",
        "steps": [
            {"id": "fetch", "skill": "flaky_fetch", "retry": {"max_attempts": 2}},
            {
                "id": "optional",
                "skill": "fail",
                "on_failure": "continue",
                "input": {"message": "x"},
            },
            {"id": "uses_optional", "skill": "echo", "depends_on": ["optional"]},
            {
                "id": "done",
                "skill": "echo",
                "depends_on": ["fetch"],
                "input": {"attempts": "{{ steps.fetch.attempts }}"},
            },
        ],
    }
    path = tmp_path / "resilient.json"
    path.write_text(json.dumps(definition), encoding="utf-8")

    scheduler = Scheduler(SkillInvoker(registry), EngineConfig(retry_policy=fast_retry))
    result = await scheduler.execute(load_workflow_file(path))

    assert result.status is WorkflowStatus.COMPLETED
    assert not result.success
    assert result.results["done"] == {"attempts": "2"}
    assert result.step_statuses == {
        "fetch": StepStatus.COMPLETED,
        "optional": StepStatus.FAILED,
        "uses_optional": StepStatus.SKIPPED,
        "done": StepStatus.COMPLETED,
    }


@pytest.mark.concurrency
@pytest.mark.asyncio
async def test_concurrent_pipelines_keep_separate_contexts(scheduler, pipeline_file):
    workflow = load_workflow_file(pipeline_file)
    topics = [f"topic{n}" for n in range(8)]

    results = await asyncio.gather(
        *(
            scheduler.execute(workflow, ExecutionOptions(variables={"topic": topic}))
            for topic in topics
        )
    )

    for topic, result in zip(topics, results):
        assert result.context.variables == {"topic": topic}
        assert result.results["report"]["report"].startswith(f"# Report on {topic}")
    assert len({result.run_id for result in results}) == len(topics)

    metrics = scheduler.invoker.get_execution_metrics("web_research")
    assert metrics.total_executions == len(topics)
    assert metrics.successful_executions == len(topics)
