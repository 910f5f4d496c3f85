"""
Executor module - async runtime for workflows.

This module contains the execution components:
- backend: SkillBackend interface and the in-memory SkillRegistry
- cache: Time-bounded result cache
- invoker: SkillInvoker (metrics, retry, cache, timeout)
- scheduler: Wave-based Scheduler and its ExecutionOptions
"""

from skillflow.executor.backend import SkillBackend, SkillFunc, SkillRegistry
from skillflow.executor.cache import CacheEntry, ResultCache
from skillflow.executor.invoker import SkillInvoker
from skillflow.executor.scheduler import ExecutionOptions, Scheduler

__all__ = [
    # Backends
    "SkillBackend",
    "SkillRegistry",
    "SkillFunc",
    # Cache
    "CacheEntry",
    "ResultCache",
    # Invocation
    "SkillInvoker",
    # Scheduling
    "Scheduler",
    "ExecutionOptions",
]
