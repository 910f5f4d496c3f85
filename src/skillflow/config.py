"""
Engine configuration.

EngineConfig holds the defaults every run falls back to when its
ExecutionOptions leave a field unset. Values can be overridden from the
environment, which is how a deployment tunes timeouts without code
changes:

    $ export SKILLFLOW_STEP_TIMEOUT_MS=10000
    $ export SKILLFLOW_RETRY_MAX_ATTEMPTS=5

    config = EngineConfig.from_env()
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from skillflow.core.errors import ConfigurationError
from skillflow.models.retry import RetryPolicy

T = TypeVar("T")

ENV_PREFIX = "SKILLFLOW_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class EngineConfig:
    """
    Defaults for the invoker and scheduler.

    **Attributes**:
        workflow_timeout_ms: Budget for a whole run
        step_timeout_ms: Per-attempt timeout for steps that declare none
        cache_ttl_ms: Lifetime of a cached skill result
        retry_policy: Delays used when a step declares a retry block
        parallel: Dispatch the steps of a wave concurrently
        use_cache: Consult the result cache for scheduled steps
    """

    workflow_timeout_ms: float = 300_000
    step_timeout_ms: float = 30_000
    cache_ttl_ms: float = 60_000
    retry_policy: RetryPolicy = field(default_factory=lambda: RetryPolicy.STANDARD)
    parallel: bool = True
    use_cache: bool = False

    def __post_init__(self):
        for name in ("workflow_timeout_ms", "step_timeout_ms", "cache_ttl_ms"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.retry_policy.max_attempts < 1:
            raise ConfigurationError(
                f"retry max_attempts must be at least 1, got {self.retry_policy.max_attempts}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineConfig:
        """
        Build a config from SKILLFLOW_* environment variables.

        Unset variables keep their defaults.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ConfigurationError: If a variable is set but malformed
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        base_retry = defaults.retry_policy

        retry_policy = RetryPolicy(
            max_attempts=_read(env, "RETRY_MAX_ATTEMPTS", int, base_retry.max_attempts),
            initial_delay_ms=_read(env, "RETRY_INITIAL_DELAY_MS", int, base_retry.initial_delay_ms),
            max_delay_ms=_read(env, "RETRY_MAX_DELAY_MS", int, base_retry.max_delay_ms),
            backoff_multiplier=_read(
                env, "RETRY_BACKOFF_MULTIPLIER", float, base_retry.backoff_multiplier
            ),
        )

        return cls(
            workflow_timeout_ms=_read(
                env, "WORKFLOW_TIMEOUT_MS", float, defaults.workflow_timeout_ms
            ),
            step_timeout_ms=_read(env, "STEP_TIMEOUT_MS", float, defaults.step_timeout_ms),
            cache_ttl_ms=_read(env, "CACHE_TTL_MS", float, defaults.cache_ttl_ms),
            retry_policy=retry_policy,
            parallel=_read(env, "PARALLEL", _parse_bool, defaults.parallel),
            use_cache=_read(env, "USE_CACHE", _parse_bool, defaults.use_cache),
        )

    def with_overrides(self, **changes: Any) -> EngineConfig:
        """Return a copy with the given fields replaced."""
        try:
            return replace(self, **changes)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _read(env: Mapping[str, str], name: str, parse: Callable[[str], T], default: T) -> T:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from e


__all__ = ["EngineConfig", "ENV_PREFIX"]
