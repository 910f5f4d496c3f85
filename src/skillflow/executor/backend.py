"""
SkillBackend - the single call the engine needs from the outside world.

Design Pattern: Adapter Pattern
SkillBackend is the target interface. Whatever actually resolves and
runs a skill (an in-process registry, an HTTP client, a subprocess
runner) adapts to `invoke(name, input)`. The invoker and scheduler
depend on this abstraction only.

SkillRegistry is the in-memory adapter: a name -> callable table that
accepts plain functions as well as coroutine functions.

Example:
    ```python
    registry = SkillRegistry()

    @registry.skill()
    async def web_research(input: dict) -> dict:
        return {"summary": f"results for {input['query']}"}

    @registry.skill("word_count")
    def count(input: dict) -> int:
        return len(input["text"].split())
    ```
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, Union

from skillflow.core.errors import SkillNotFoundError
from skillflow.models.json_value import JsonObject, JsonValue

logger = logging.getLogger(__name__)

SkillFunc = Callable[[JsonObject], Union[JsonValue, Awaitable[JsonValue]]]
F = TypeVar("F", bound=Callable[..., Any])


class SkillBackend(ABC):
    """
    Abstract skill invocation interface.

    The engine knows nothing about how a skill is found, validated or
    implemented; it only needs `invoke` to return a JSON value or raise.
    """

    @abstractmethod
    async def invoke(self, name: str, input: JsonObject) -> JsonValue:
        """
        Run a skill once.

        Args:
            name: Skill name as written in the workflow definition
            input: Fully substituted input object

        Returns:
            The skill's output

        Raises:
            SkillNotFoundError: If no skill with that name exists
            Exception: Whatever the skill itself raises
        """
        pass

    @abstractmethod
    def has_skill(self, name: str) -> bool:
        """True if `invoke(name, ...)` would find an implementation."""
        pass

    def skill_names(self) -> list[str]:
        """Names of the skills this backend knows, if it can enumerate them."""
        return []


class SkillRegistry(SkillBackend):
    """In-memory backend mapping skill names to Python callables."""

    def __init__(self):
        self._skills: dict[str, SkillFunc] = {}

    def register(self, name: str, func: SkillFunc) -> None:
        """
        Register `func` under `name`, replacing any previous registration.

        The callable receives the input object and returns the output,
        either directly or as an awaitable.
        """
        if not name:
            raise ValueError("Skill name must not be empty")
        if name in self._skills:
            logger.debug(f"Replacing registration of skill {name}")
        self._skills[name] = func

    def unregister(self, name: str) -> bool:
        """Remove a skill. Returns False if it was not registered."""
        return self._skills.pop(name, None) is not None

    def skill(self, name: str | None = None) -> Callable[[F], F]:
        """
        Decorator registering a function as a skill.

        Args:
            name: Skill name; defaults to the function's __name__

        Returns:
            Decorator that registers and returns the function unchanged
        """

        def decorator(func: F) -> F:
            self.register(name or func.__name__, func)
            return func

        return decorator

    def has_skill(self, name: str) -> bool:
        return name in self._skills

    def skill_names(self) -> list[str]:
        return sorted(self._skills)

    async def invoke(self, name: str, input: JsonObject) -> JsonValue:
        func = self._skills.get(name)
        if func is None:
            raise SkillNotFoundError(name)

        if inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
            getattr(func, "__call__", None)
        ):
            return await func(input)

        # Plain callables run in a worker thread, off the event loop
        result = await asyncio.to_thread(func, input)
        if inspect.isawaitable(result):
            return await result
        return result

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, name: object) -> bool:
        return name in self._skills


__all__ = ["SkillBackend", "SkillRegistry", "SkillFunc"]
