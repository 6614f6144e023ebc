"""Shared fixtures.

Providers are replaced by deterministic fakes:
- HashingEmbedder: bag-of-words vectors (md5 buckets), so statements sharing
  words are similar and the same text always embeds the same way
- ScriptedLLM: answers structured prompts through per-model handlers

Storage is a real SQLite repository in a temporary directory.
"""

import hashlib
import re
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from pydantic import BaseModel

from engram.config import Config, ConsistencyConfig, LoggingConfig, RetryConfig
from engram.core.embeddings.base import Embedder
from engram.core.llm.base import LLMProvider
from engram.core.storage.sqlite_store import SQLiteRepository
from engram.models.extraction import ExtractedMemories, ExtractedMemory
from engram.services.memory_engine import MemoryEngine
from engram.utils.exceptions import ProviderPermanentError, ValidationError
from engram.utils.retry import RetryPolicy

_WORD = re.compile(r"[a-z0-9]+")


class HashingEmbedder(Embedder):
    """Deterministic bag-of-words embedder."""

    def __init__(self, dimension: int = 256, fail_on: tuple[str, ...] = ()):
        self.dimension = dimension
        self.fail_on = fail_on
        self.calls = 0
        self.closed = False

    async def embed(self, text: str, **kwargs) -> list[float]:
        self.calls += 1
        if any(marker in text for marker in self.fail_on):
            raise ProviderPermanentError("Embedding rejected", {"provider": "fake"})

        vector = [0.0] * self.dimension
        for word in _WORD.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    async def close(self):
        self.closed = True


class ScriptedLLM(LLMProvider):
    """
    LLM whose structured answers come from handlers keyed by response model.

    A handler is either a ready response or a callable taking the prompt.
    Handlers may return (or be) an exception to raise it. Unscripted models
    raise ValidationError, like unparseable output would. Plain-text calls
    answer "ok" unless a handler is registered under None.
    """

    def __init__(self, handlers: dict[type[BaseModel] | None, Any] | None = None):
        self.handlers: dict[type[BaseModel] | None, Any] = dict(handlers or {})
        self.prompts: list[tuple[str, type[BaseModel] | None]] = []
        self.closed = False

    def on(self, response_format: type[BaseModel] | None, handler: Any) -> "ScriptedLLM":
        self.handlers[response_format] = handler
        return self

    def calls_for(self, response_format: type[BaseModel]) -> list[str]:
        return [prompt for prompt, fmt in self.prompts if fmt is response_format]

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        self.prompts.append((prompt, response_format))
        if response_format is None and None not in self.handlers:
            return "ok"

        handler = self.handlers.get(response_format)
        if handler is None:
            raise ValidationError(f"No scripted response for {response_format.__name__}")

        result = handler(prompt) if callable(handler) else handler
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self):
        self.closed = True


def prompt_body(prompt: str) -> str:
    """The source text an extraction prompt was built around."""
    for marker in ("Content:\n", "Conversation:\n"):
        if marker in prompt:
            return prompt.split(marker, 1)[1]
    return ""


def echo_statements(prompt: str) -> ExtractedMemories:
    """Extraction handler: every sentence of the source becomes a memory."""
    statements = []
    for line in prompt_body(prompt).splitlines():
        line = re.sub(r"^\[\w+\]:\s*", "", line.strip())
        for sentence in re.split(r"(?<=[.!?])\s+", line):
            sentence = sentence.strip().rstrip(".!?")
            if sentence:
                statements.append(ExtractedMemory(content=sentence))
    return ExtractedMemories(memories=statements)


# Fixtures


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def failing_embedder() -> HashingEmbedder:
    """Rejects any text containing "FAIL"."""
    return HashingEmbedder(fail_on=("FAIL",))


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM({ExtractedMemories: echo_statements})


@pytest.fixture
def retry() -> RetryPolicy:
    """Retry policy that never actually sleeps."""

    async def no_sleep(_: float) -> None:
        return None

    return RetryPolicy(RetryConfig(max_attempts=3, base_delay=0.0, jitter=0.0), sleep=no_sleep)


@pytest.fixture
async def repository(tmp_path) -> AsyncGenerator[SQLiteRepository, None]:
    repo = SQLiteRepository(str(tmp_path / "engram.db"))
    await repo.initialize()
    yield repo
    await repo.close()


@pytest.fixture
def config() -> Config:
    """Engine config tuned for the hashing embedder."""
    return Config(
        consistency=ConsistencyConfig(contradiction_threshold=0.6),
        retry=RetryConfig(max_attempts=2, base_delay=0.0, jitter=0.0),
        logging=LoggingConfig(log_to_file=False),
    )


@pytest.fixture
async def engine(repository, llm, embedder, config) -> AsyncGenerator[MemoryEngine, None]:
    memory_engine = MemoryEngine(repository, llm, embedder, config=config)
    await memory_engine.initialize()
    yield memory_engine
    await memory_engine.close()
