"""
Tests for Ollama LLM provider.
"""

from unittest.mock import AsyncMock, patch

import ollama
import pytest
from pydantic import BaseModel

from engram.core.llm.ollama import OllamaLLM
from engram.models.extraction import ExtractedMemories
from engram.utils.exceptions import ProviderPermanentError, ProviderTransientError, ValidationError


class SimpleResponse(BaseModel):
    """Test response model."""

    answer: str
    confidence: float
    reasoning: str


@pytest.fixture
def ollama_llm():
    """Create Ollama LLM for testing."""
    return OllamaLLM(host="http://localhost:11434", model="llama3.1:8b", timeout=120.0)


@pytest.mark.unit
@pytest.mark.asyncio
class TestOllamaLLM:
    """Test Ollama LLM provider."""

    async def test_initialization(self, ollama_llm):
        """Test provider initialization."""
        assert ollama_llm.host == "http://localhost:11434"
        assert ollama_llm.model == "llama3.1:8b"
        assert ollama_llm.timeout == 120.0
        assert ollama_llm.client is not None

    async def test_complete_simple(self, ollama_llm):
        """Test simple text completion."""
        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.return_value = {"message": {"content": "Paris is the capital"}}

            result = await ollama_llm.complete("What is the capital of France?", max_tokens=50)

            assert result == "Paris is the capital"
            assert mock_chat.call_args.kwargs["format"] is None

    async def test_complete_with_temperature(self, ollama_llm):
        """Test completion with custom temperature."""
        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.return_value = {"message": {"content": "test"}}

            await ollama_llm.complete("test", temperature=0.7, max_tokens=100)

            options = mock_chat.call_args.kwargs["options"]
            assert options["temperature"] == 0.7
            assert options["num_predict"] == 100

    async def test_complete_with_extra_options(self, ollama_llm):
        """Test completion with extra options."""
        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.return_value = {"message": {"content": "test"}}

            await ollama_llm.complete("test", options={"top_p": 0.9, "top_k": 40})

            options = mock_chat.call_args.kwargs["options"]
            assert options["top_p"] == 0.9
            assert options["top_k"] == 40

    async def test_complete_structured(self, ollama_llm):
        """Test structured output completion."""
        json_response = '{"answer": "yes", "confidence": 0.95, "reasoning": "because"}'

        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.return_value = {"message": {"content": json_response}}

            result = await ollama_llm.complete("Is Python good?", response_format=SimpleResponse)

            assert result == SimpleResponse(answer="yes", confidence=0.95, reasoning="because")
            call_kwargs = mock_chat.call_args.kwargs
            assert call_kwargs["format"] == "json"
            assert "You MUST respond with valid JSON" in call_kwargs["messages"][0]["content"]

    async def test_complete_structured_markdown_fence(self, ollama_llm):
        """Test JSON wrapped in a markdown fence is unwrapped."""
        content = '```json\n{"answer": "no", "confidence": 0.2, "reasoning": "x"}\n```'

        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.return_value = {"message": {"content": content}}

            result = await ollama_llm.complete("test", response_format=SimpleResponse)

            assert result.answer == "no"

    async def test_complete_structured_invalid(self, ollama_llm):
        """Test unparseable output raises ValidationError."""
        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.return_value = {"message": {"content": "I think the answer is yes"}}

            with pytest.raises(ValidationError) as exc_info:
                await ollama_llm.complete("test", response_format=SimpleResponse)

            assert "raw_response" in exc_info.value.context

    async def test_empty_prompt(self, ollama_llm):
        with pytest.raises(ValidationError):
            await ollama_llm.complete("  ")

    async def test_timeout_is_transient(self, ollama_llm):
        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.side_effect = TimeoutError("read timed out")

            with pytest.raises(ProviderTransientError):
                await ollama_llm.complete("test")

    async def test_server_error_is_transient(self, ollama_llm):
        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.side_effect = ollama.ResponseError("overloaded", 503)

            with pytest.raises(ProviderTransientError):
                await ollama_llm.complete("test")

    async def test_unknown_model_is_permanent(self, ollama_llm):
        with patch.object(ollama_llm.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.side_effect = ollama.ResponseError("model not found", 404)

            with pytest.raises(ProviderPermanentError):
                await ollama_llm.complete("test")


@pytest.mark.unit
class TestBuildExample:
    """Test example payload generation from schemas."""

    def test_flat_model(self, ollama_llm):
        example = ollama_llm._build_example(SimpleResponse)

        assert example == {"answer": "<answer>", "confidence": 0.5, "reasoning": "<reasoning>"}

    def test_nested_list(self, ollama_llm):
        example = ollama_llm._build_example(ExtractedMemories)

        assert isinstance(example["memories"], list)
        assert len(example["memories"]) == 1
        assert "content" in example["memories"][0]

    def test_extract_json(self, ollama_llm):
        assert ollama_llm._extract_json('  {"a": 1}  ') == '{"a": 1}'
        assert ollama_llm._extract_json('```\n{"a": 1}\n```') == '{"a": 1}'
