"""Shared pytest fixtures for LessonForge tests.

Provides a scripted generation capability, an in-memory repository and
sample component sources.
"""

import pytest

from lessonforge.config import BudgetConfig, ForgeConfig
from lessonforge.errors import GenerationCapabilityError
from lessonforge.generation.protocols import Prompt
from lessonforge.orchestrator import GenerationOrchestrator
from lessonforge.persistence import InMemoryLessonRepository

VALID_SOURCE = """\
import React, { useState } from 'react';

type Props = { start?: number };

export default function Counter({ start = 0 }: Props) {
  const [count, setCount] = useState<number>(start);
  return (
    <div className="counter">
      <p>Count: {count}</p>
      <button onClick={() => setCount(count + 1)}>Add one</button>
    </div>
  );
}
"""

UNBOUND_HOOK_SOURCE = """\
export default function Tally() {
  const [total, add] = useReducer((n: number) => n + 1, 0);
  return <button onClick={() => add()}>{total}</button>;
}
"""

UNSAFE_SOURCE = """\
export default function Weather() {
  fetch("/api/weather");
  return <p>Sunny</p>;
}
"""


class ScriptedGenerator:
    """Generation capability that replays scripted responses.

    Each entry is returned as-is, or raised when it is an exception.
    Every prompt received is recorded in `prompts`.
    """

    def __init__(self, responses: list, model_name: str = "scripted-model") -> None:
        self.model_name = model_name
        self.responses = list(responses)
        self.prompts: list[Prompt] = []

    async def generate(self, prompt: Prompt) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise GenerationCapabilityError("No scripted responses left")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def valid_source() -> str:
    return VALID_SOURCE


@pytest.fixture
def unbound_hook_source() -> str:
    return UNBOUND_HOOK_SOURCE


@pytest.fixture
def unsafe_source() -> str:
    return UNSAFE_SOURCE


@pytest.fixture
def repository() -> InMemoryLessonRepository:
    return InMemoryLessonRepository()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def forge_config() -> ForgeConfig:
    """Pipeline config with small, deterministic budgets."""
    return ForgeConfig(
        budgets=BudgetConfig(
            max_attempts=3,
            max_minutes=10,
            attempt_timeout_seconds=30,
            backoff_base_seconds=2,
            backoff_max_seconds=10,
        )
    )


@pytest.fixture
def make_generator():
    """Factory for scripted generators: make_generator([response, ...])."""
    return ScriptedGenerator


@pytest.fixture
def make_orchestrator(repository, forge_config, recording_sleep):
    """Factory building an orchestrator around a scripted generator.

    Returns:
        Callable taking the scripted responses (plus orchestrator kwargs)
        and returning (orchestrator, generator)
    """

    def factory(responses: list, **kwargs):
        generator = ScriptedGenerator(responses)
        kwargs.setdefault("config", forge_config)
        kwargs.setdefault("sleep", recording_sleep)
        orchestrator = GenerationOrchestrator(repository, generator, **kwargs)
        return orchestrator, generator

    return factory
