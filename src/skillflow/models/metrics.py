"""Per-skill execution counters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass
class ExecutionMetrics:
    """Counters for one skill, mutated only by the SkillInvoker.

    Every attempt increments total_executions. Duration statistics are
    computed over successful attempts only:

        average = (average * (n - 1) + duration) / n,  n = successful_executions

    min_duration_ms stays None until the first success.
    """

    skill_name: str
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_duration_ms: float = 0.0
    min_duration_ms: float | None = None
    max_duration_ms: float = 0.0
    cache_hits: int = 0
    last_executed_at: datetime | None = None

    def record_success(self, duration_ms: float) -> None:
        self.total_executions += 1
        self.successful_executions += 1
        n = self.successful_executions
        self.average_duration_ms = (self.average_duration_ms * (n - 1) + duration_ms) / n
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        self.last_executed_at = datetime.now(UTC)

    def record_failure(self) -> None:
        self.total_executions += 1
        self.failed_executions += 1

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def reset(self) -> None:
        """Zero every counter, keeping the skill name."""
        self.total_executions = 0
        self.successful_executions = 0
        self.failed_executions = 0
        self.average_duration_ms = 0.0
        self.min_duration_ms = None
        self.max_duration_ms = 0.0
        self.cache_hits = 0
        self.last_executed_at = None

    @property
    def success_rate(self) -> float:
        """Fraction of attempts that succeeded (0.0 when nothing ran)."""
        if self.total_executions == 0:
            return 0.0
        return self.successful_executions / self.total_executions
