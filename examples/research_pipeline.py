"""
Research Pipeline: Fan-out, Retry and Continue

Loads `workflows/research.yaml` and runs it against in-process skills.

```text
                      ┌── summarize ──── report
research (retried) ───┤
                      └── keywords   (on_failure: continue)
```

This example demonstrates:
- Step outputs flowing into later inputs through {{ steps.<id>.<path> }}
- summarize and keywords running in the same wave
- A flaky search succeeding on its third attempt
- keywords failing without stopping the run (report still gets written)
- Live progress through Scheduler.stream()

Run with:
```bash
PYTHONPATH=src python examples/research_pipeline.py
```
"""

import asyncio
import logging
from pathlib import Path

from skillflow import (
    EngineConfig,
    ExecutionFinished,
    ExecutionOptions,
    RetryPolicy,
    Scheduler,
    SkillInvoker,
    SkillRegistry,
    StepCompleted,
    StepFailed,
    StepSkipped,
    StepStarted,
    level_graph,
    load_workflow_file,
)

logging.basicConfig(level=logging.CRITICAL)

registry = SkillRegistry()
SEARCH_ATTEMPTS = 0


@registry.skill()
async def web_research(input: dict) -> dict:
    global SEARCH_ATTEMPTS
    SEARCH_ATTEMPTS += 1
    await asyncio.sleep(0.05)
    if SEARCH_ATTEMPTS < 3:
        raise ConnectionError(f"search backend unavailable (attempt {SEARCH_ATTEMPTS})")

    topic = input["query"]
    return {
        "findings": f"{topic} is generated by the moon's gravity acting on the oceans.",
        "sources": [f"https://example.org/{topic}/overview", f"https://example.org/{topic}/data"],
    }


@registry.skill()
async def summarizer(input: dict) -> dict:
    await asyncio.sleep(0.1)
    return {"summary": input["text"].split(" is ")[1].rstrip(".")}


@registry.skill()
async def keyword_extractor(input: dict) -> dict:
    await asyncio.sleep(0.02)
    raise RuntimeError("keyword model not loaded")


@registry.skill()
def report_writer(input: dict) -> dict:
    # Plain functions run in a worker thread
    title = input["title"].title()
    return {"report": f"# {title}\n\nIt is {input['summary']}.\n\nSources: {input['sources']}"}


async def main():
    workflow = load_workflow_file(Path(__file__).parent / "workflows" / "research.yaml")
    print(level_graph(workflow))

    invoker = SkillInvoker(registry)
    # Delays for steps that declare a retry block
    config = EngineConfig(retry_policy=RetryPolicy(initial_delay_ms=50))
    scheduler = Scheduler(invoker, config)

    options = ExecutionOptions(variables={"topic": "tides"})
    async for event in scheduler.stream(workflow, options):
        match event:
            case StepStarted(step_id=step_id):
                print(f"  → {step_id}")
            case StepCompleted(step_id=step_id):
                print(f"  ✓ {step_id}")
            case StepFailed(step_id=step_id, error=error):
                print(f"  ✗ {step_id}: {error}")
            case StepSkipped(step_id=step_id, reason=reason):
                print(f"  - {step_id}: {reason}")
            case ExecutionFinished(result=result):
                print(f"\nStatus: {result.status.value} ({result.duration_ms:.0f}ms)")
                print(f"Search attempts: {SEARCH_ATTEMPTS}")
                print(f"\n{result.results['report']['report']}")

    for metrics in invoker.get_execution_metrics():
        print(
            f"{metrics.skill_name}: {metrics.successful_executions}/{metrics.total_executions} ok, "
            f"avg {metrics.average_duration_ms:.0f}ms"
        )


if __name__ == "__main__":
    asyncio.run(main())
