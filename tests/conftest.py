"""
Pytest configuration and fixtures for skillflow tests.

Provides a registry of test skills, invokers and schedulers built on it,
an event-recording observer, and Hypothesis strategies for random DAGs.
"""

import asyncio

import pytest
from hypothesis import strategies as st

from skillflow import (
    EngineConfig,
    ExecutionObserver,
    ResultCache,
    RetryPolicy,
    Scheduler,
    SkillInvoker,
    SkillRegistry,
    parse_workflow,
)


class FakeClock:
    """Manually advanced clock for cache TTL tests (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class Flaky:
    """Skill that fails its first `failures` calls, then succeeds."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0
        self.call_times: list[float] = []

    async def __call__(self, input: dict) -> dict:
        self.calls += 1
        self.call_times.append(asyncio.get_running_loop().time())
        if self.calls <= self.failures:
            raise ConnectionError(f"transient failure {self.calls}")
        return {"attempts": self.calls}


class RecordingObserver(ExecutionObserver):
    """Collects every event in delivery order."""

    def __init__(self):
        self.events = []

    def notify(self, event) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]

    def of_type(self, event_type: str) -> list:
        return [event for event in self.events if event.type == event_type]


def build_registry() -> SkillRegistry:
    registry = SkillRegistry()

    @registry.skill()
    async def echo(input: dict) -> dict:
        return dict(input)

    @registry.skill()
    async def upper(input: dict) -> dict:
        return {"text": str(input.get("text", "")).upper()}

    @registry.skill()
    async def fail(input: dict) -> dict:
        raise ValueError(input.get("message", "boom"))

    @registry.skill()
    async def slow(input: dict) -> dict:
        delay_ms = input.get("delay_ms", 50)
        await asyncio.sleep(delay_ms / 1000)
        return {"slept_ms": delay_ms}

    @registry.skill("add")
    def add_numbers(input: dict) -> int:
        return input["a"] + input["b"]

    @registry.skill()
    async def web_research(input: dict) -> dict:
        query = input["query"]
        return {
            "query": query,
            "sources": [f"https://example.org/{query}/1", f"https://example.org/{query}/2"],
            "summary": f"Findings about {query}",
        }

    @registry.skill()
    async def summarizer(input: dict) -> dict:
        text = input["text"]
        return {"summary": text[:40], "length": len(text)}

    @registry.skill()
    async def report_writer(input: dict) -> dict:
        return {"report": f"# {input['title']}\n\n{input['body']}"}

    return registry


@pytest.fixture
def registry() -> SkillRegistry:
    """Registry with the standard test skills."""
    return build_registry()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry delays short enough for tests."""
    return RetryPolicy(max_attempts=3, initial_delay_ms=10, max_delay_ms=100)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def invoker(
    registry: SkillRegistry, fast_retry: RetryPolicy, fake_clock: FakeClock
) -> SkillInvoker:
    """Invoker over the test registry with a fake-clock cache."""
    return SkillInvoker(
        registry,
        retry_policy=fast_retry,
        default_timeout_ms=2_000,
        cache=ResultCache(ttl_ms=60_000, clock=fake_clock),
    )


@pytest.fixture
def scheduler(invoker: SkillInvoker, fast_retry: RetryPolicy) -> Scheduler:
    """Scheduler with short default timeouts."""
    config = EngineConfig(
        workflow_timeout_ms=10_000,
        step_timeout_ms=2_000,
        retry_policy=fast_retry,
    )
    return Scheduler(invoker, config)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def build_workflow():
    """Factory building a Workflow from step dicts."""

    def build(*steps: dict, name: str = "test-workflow", version: str = "1.0"):
        return parse_workflow({"name": name, "version": version, "steps": list(steps)})

    return build


# Hypothesis strategies for property-based testing


@st.composite
def dag_workflow_strategy(draw, max_steps: int = 12):
    """
    Random acyclic workflow.

    Step i may only depend on steps created before it, so the graph is a
    DAG; declaration order is then shuffled so it no longer matches a
    topological order.
    """
    count = draw(st.integers(min_value=1, max_value=max_steps))
    ids = [f"s{i}" for i in range(count)]

    steps = []
    for index, step_id in enumerate(ids):
        deps = draw(st.lists(st.sampled_from(ids[:index]), unique=True)) if index else []
        steps.append({"id": step_id, "skill": "echo", "depends_on": deps})

    shuffled = draw(st.permutations(steps))
    return parse_workflow({"name": "random", "version": "1", "steps": list(shuffled)})


json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(10**6), max_value=10**6),
    st.text(max_size=20),
)

json_values = st.recursive(
    json_scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(max_size=8), children, max_size=4),
    ),
    max_leaves=12,
)
