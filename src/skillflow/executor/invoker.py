"""
SkillInvoker - metrics, retry, caching and timeouts around a SkillBackend.

Design Pattern: Decorator Pattern
Each behavior wraps the one below it without the backend knowing:

    cache lookup
      └── retry loop (attempts are sequential, never concurrent)
            └── per-attempt timeout (races a detached task)
                  └── metrics (recorded by the underlying call itself)
                        └── backend.invoke(name, input)

Metrics are recorded where the call actually runs, so a call that is
abandoned by a timeout still counts once it finally finishes. The
detached task is never cancelled; only its late result is discarded.

All bookkeeping (metrics, cache) is mutated without awaiting in
between, so runs sharing one invoker on one event loop need no lock.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from skillflow.config import EngineConfig
from skillflow.core.errors import (
    SkillExecutionError,
    SkillflowError,
    SkillNotFoundError,
    StepTimeoutError,
)
from skillflow.executor.backend import SkillBackend
from skillflow.executor.cache import _CACHE_MISS, ResultCache
from skillflow.models.json_value import JsonObject, JsonValue
from skillflow.models.metrics import ExecutionMetrics
from skillflow.models.result import CacheStats, ParallelEntry, ParallelExecutionResult
from skillflow.models.retry import RetryPolicy
from skillflow.models.workflow import WorkflowStep

logger = logging.getLogger(__name__)


class SkillInvoker:
    """
    Invokes skills through a backend with metrics, retry, cache and timeout.

    Args:
        backend: Where skills actually run
        retry_policy: Policy for invoke() calls that pass none; also the
            source of delays for steps that declare a retry block
        default_timeout_ms: Per-attempt timeout when the caller passes none
        cache: Result cache; a fresh one with a 60s TTL by default

    Example:
        ```python
        invoker = SkillInvoker(registry)
        output = await invoker.invoke("summarizer", {"text": "..."}, use_cache=True)
        print(invoker.get_execution_metrics("summarizer").successful_executions)
        ```
    """

    def __init__(
        self,
        backend: SkillBackend,
        retry_policy: RetryPolicy | None = None,
        default_timeout_ms: float = 30_000,
        cache: ResultCache | None = None,
    ):
        self.backend = backend
        self.retry_policy = retry_policy or RetryPolicy.STANDARD
        self.default_timeout_ms = default_timeout_ms
        self.cache = cache if cache is not None else ResultCache()
        self._metrics: dict[str, ExecutionMetrics] = {}
        # Strong references to calls still running, including abandoned ones
        self._inflight: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, backend: SkillBackend, config: EngineConfig) -> SkillInvoker:
        """Build an invoker using an EngineConfig's retry, timeout and TTL."""
        return cls(
            backend,
            retry_policy=config.retry_policy,
            default_timeout_ms=config.step_timeout_ms,
            cache=ResultCache(ttl_ms=config.cache_ttl_ms),
        )

    def has_skill(self, name: str) -> bool:
        return self.backend.has_skill(name)

    # =========================================================================
    # Invocation
    # =========================================================================

    async def invoke(
        self,
        skill: str,
        input: JsonObject,
        *,
        timeout_ms: float | None = None,
        retry_policy: RetryPolicy | None = None,
        use_cache: bool = False,
        step_id: str | None = None,
    ) -> JsonValue:
        """
        Invoke a skill with every wrapper applied.

        Args:
            skill: Skill name
            input: Input object (already substituted)
            timeout_ms: Per-attempt timeout; defaults to default_timeout_ms
            retry_policy: Attempts and backoff; defaults to self.retry_policy
            use_cache: Serve and store results through the cache
            step_id: Owning step, used in error messages and logs

        Returns:
            The skill's output

        Raises:
            SkillNotFoundError: Immediately, never retried
            SkillExecutionError: The last failure once attempts run out
            StepTimeoutError: If the last attempt timed out
        """
        # Snapshot of the request as made; skills may mutate what they receive
        request = copy.deepcopy(input)

        if use_cache:
            cached = self.cache.get(skill, request)
            if cached is not _CACHE_MISS:
                logger.debug(f"Cache hit for skill {skill}")
                self._metrics_for(skill).record_cache_hit()
                return cached

        policy = retry_policy or self.retry_policy
        timeout = self.default_timeout_ms if timeout_ms is None else timeout_ms

        output = await self._invoke_with_retry(skill, request, policy, timeout, step_id)

        if use_cache:
            self.cache.put(skill, request, output)
        return output

    async def invoke_step(
        self,
        step: WorkflowStep,
        input: JsonObject,
        default_timeout_ms: float | None = None,
        use_cache: bool = False,
        base_policy: RetryPolicy | None = None,
    ) -> JsonValue:
        """
        Invoke the skill of a workflow step.

        The step's own timeout wins over `default_timeout_ms`. A step
        without a retry block gets exactly one attempt; with one, its
        attempts and backoff kind apply on top of the delays of
        `base_policy` (self.retry_policy when None).
        """
        default = self.default_timeout_ms if default_timeout_ms is None else default_timeout_ms
        return await self.invoke(
            step.skill,
            input,
            timeout_ms=step.effective_timeout_ms(default),
            retry_policy=step.retry_policy(base_policy or self.retry_policy),
            use_cache=use_cache,
            step_id=step.id,
        )

    async def execute_skills_parallel(
        self,
        calls: Iterable[tuple[str, JsonObject]],
        *,
        timeout_ms: float | None = None,
    ) -> ParallelExecutionResult:
        """
        Run a batch of (skill, input) pairs concurrently, one attempt each.

        Every entry is awaited regardless of the others; a failure is
        reported in its own entry and never prevents the rest from
        completing.

        Returns:
            ParallelExecutionResult with one entry per call, in order
        """
        start = time.perf_counter()

        async def run_entry(index: int, skill: str, input: JsonObject) -> ParallelEntry:
            entry_start = time.perf_counter()
            try:
                output = await self.invoke(
                    skill, input, timeout_ms=timeout_ms, retry_policy=RetryPolicy.NONE
                )
            except Exception as e:
                return ParallelEntry(
                    index=index,
                    skill=skill,
                    error=e,
                    duration_ms=(time.perf_counter() - entry_start) * 1000,
                )
            return ParallelEntry(
                index=index,
                skill=skill,
                output=output,
                duration_ms=(time.perf_counter() - entry_start) * 1000,
            )

        entries = await asyncio.gather(
            *(run_entry(index, skill, input) for index, (skill, input) in enumerate(calls))
        )

        return ParallelExecutionResult(
            entries=list(entries),
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    async def _invoke_with_retry(
        self,
        skill: str,
        input: JsonObject,
        policy: RetryPolicy,
        timeout_ms: float,
        step_id: str | None,
    ) -> JsonValue:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._attempt(skill, input, timeout_ms, step_id)
            except SkillNotFoundError:
                raise
            except (SkillExecutionError, StepTimeoutError) as e:
                if isinstance(e, SkillExecutionError) and not e.retryable:
                    logger.debug(f"Skill {skill} raised a non-retryable error, not retrying")
                    raise

                delay_ms = policy.delay_for_attempt(attempt)
                if delay_ms is None:
                    raise

                logger.warning(
                    f"Skill {skill} attempt {attempt}/{policy.max_attempts} failed: {e}. "
                    f"Retrying in {delay_ms}ms"
                )
                await asyncio.sleep(delay_ms / 1000.0)

    async def _attempt(
        self, skill: str, input: JsonObject, timeout_ms: float, step_id: str | None
    ) -> JsonValue:
        # Every attempt starts from the original request
        task = asyncio.create_task(self._call(skill, copy.deepcopy(input)))
        self._inflight.add(task)
        task.add_done_callback(self._forget)

        try:
            # shield: a timeout abandons the call, it does not cancel it
            return await asyncio.wait_for(asyncio.shield(task), timeout_ms / 1000.0)
        except TimeoutError:
            logger.warning(f"Skill {skill} timed out after {timeout_ms:g}ms")
            raise StepTimeoutError(skill, timeout_ms, step_id) from None

    async def _call(self, skill: str, input: JsonObject) -> JsonValue:
        start = time.perf_counter()
        try:
            output = await self.backend.invoke(skill, input)
        except SkillNotFoundError:
            raise
        except SkillflowError:
            self._metrics_for(skill).record_failure()
            raise
        except Exception as e:
            self._metrics_for(skill).record_failure()
            raise SkillExecutionError(skill, str(e) or type(e).__name__) from e

        self._metrics_for(skill).record_success((time.perf_counter() - start) * 1000)
        return output

    def _forget(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        # Retrieve the outcome of abandoned calls so asyncio does not log it
        if not task.cancelled():
            task.exception()

    async def drain(self) -> None:
        """Wait for every in-flight call, including ones abandoned by a timeout."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # =========================================================================
    # Metrics, cache and policy management
    # =========================================================================

    def _metrics_for(self, skill: str) -> ExecutionMetrics:
        metrics = self._metrics.get(skill)
        if metrics is None:
            metrics = self._metrics[skill] = ExecutionMetrics(skill_name=skill)
        return metrics

    def get_execution_metrics(
        self, skill: str | None = None
    ) -> ExecutionMetrics | list[ExecutionMetrics]:
        """
        Metrics for one skill, or for every skill invoked so far.

        A skill that never ran reports zeroed metrics.
        """
        if skill is not None:
            return self._metrics.get(skill) or ExecutionMetrics(skill_name=skill)
        return list(self._metrics.values())

    def reset_metrics(self, skill: str | None = None) -> None:
        if skill is not None:
            if skill in self._metrics:
                self._metrics[skill].reset()
            return
        for metrics in self._metrics.values():
            metrics.reset()

    def clear_cache(self, skill: str | None = None) -> int:
        """Drop cached results for one skill, or all. Returns the count removed."""
        removed = self.cache.clear(skill)
        logger.debug(f"Cleared {removed} cache entries" + (f" for {skill}" if skill else ""))
        return removed

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def set_retry_policy(self, policy: RetryPolicy | None = None, **changes: Any) -> RetryPolicy:
        """
        Replace the default retry policy, or change some of its fields.

        Example:
            invoker.set_retry_policy(max_attempts=5, initial_delay_ms=50)
        """
        base = policy or self.retry_policy
        self.retry_policy = replace(base, **changes) if changes else base
        return self.retry_policy


__all__ = ["SkillInvoker"]
