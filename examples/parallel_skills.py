"""
Parallel Skill Batches and Result Caching

Runs skills directly through a SkillInvoker, without a workflow.

This example demonstrates:
- execute_skills_parallel: a batch finishes in ~max(durations), not the sum
- Per-entry results and errors keyed as <skill>_<index>
- A RetryableError that opts out of retry fails after one attempt
- The result cache serving a repeated call without running the skill

Run with:
```bash
PYTHONPATH=src python examples/parallel_skills.py
```
"""

import asyncio
import logging

from skillflow import RetryableError, SkillExecutionError, SkillInvoker, SkillRegistry

logging.basicConfig(level=logging.CRITICAL)

registry = SkillRegistry()
TRANSLATIONS = 0


class QuotaExceeded(RetryableError):
    def is_retryable(self) -> bool:
        return False


@registry.skill()
async def translate(input: dict) -> dict:
    global TRANSLATIONS
    TRANSLATIONS += 1
    await asyncio.sleep(input.get("cost_ms", 100) / 1000)
    return {"text": input["text"][::-1], "lang": input["lang"]}


@registry.skill()
async def premium_translate(input: dict) -> dict:
    raise QuotaExceeded("monthly quota exhausted")


async def main():
    invoker = SkillInvoker(registry)

    batch = await invoker.execute_skills_parallel(
        [
            ("translate", {"text": "hello", "lang": "fr", "cost_ms": 100}),
            ("translate", {"text": "world", "lang": "de", "cost_ms": 150}),
            ("premium_translate", {"text": "!", "lang": "ja"}),
        ]
    )
    print(f"Batch took {batch.duration_ms:.0f}ms (sequential would be ~250ms)")
    for key, output in batch.results.items():
        print(f"  {key}: {output}")
    for key, error in batch.errors.items():
        print(f"  {key} failed: {error}")

    try:
        await invoker.invoke("premium_translate", {"text": "!", "lang": "ja"})
    except SkillExecutionError as e:
        metrics = invoker.get_execution_metrics("premium_translate")
        print(f"\n{e} (retryable={e.retryable}, attempts so far={metrics.total_executions})")

    request = {"text": "cached", "lang": "es", "cost_ms": 50}
    before = TRANSLATIONS
    await invoker.invoke("translate", request, use_cache=True)
    await invoker.invoke("translate", request, use_cache=True)
    print(f"\nTwo cached calls ran the skill {TRANSLATIONS - before} time(s)")
    print(f"Cache: {invoker.cache_stats()}")
    print(f"Hits: {invoker.get_execution_metrics('translate').cache_hits}")


if __name__ == "__main__":
    asyncio.run(main())
