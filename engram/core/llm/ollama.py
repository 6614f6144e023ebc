"""
Ollama LLM provider using native ollama-python SDK.
"""

import json
from typing import Any

import ollama
from pydantic import BaseModel

from engram.core.llm.base import LLMProvider
from engram.utils.exceptions import ValidationError, provider_error
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaLLM(LLMProvider):
    """
    Ollama LLM provider for text generation.

    Uses native ollama-python SDK for chat completions
    with JSON mode for structured outputs.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 120.0,
    ):
        """
        Initialize Ollama LLM provider.

        Args:
            host: Ollama server URL
            model: Model name for text generation (e.g., "llama3.1", "mistral")
            timeout: Request timeout in seconds
        """
        self.host = host
        self.model = model
        self.timeout = timeout

        # Create async client
        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion using Ollama.

        Supports structured output via JSON mode and an example payload
        derived from the response model's schema.

        Args:
            prompt: Input prompt
            response_format: Optional Pydantic model for structured JSON output
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            **kwargs: Additional options (passed to Ollama)

        Returns:
            Pydantic model if response_format provided, else string

        Raises:
            ValidationError: If the prompt is empty or structured output parsing fails
            ProviderTransientError: Connection failures, timeouts, 5xx
            ProviderPermanentError: Other Ollama errors (unknown model, bad request)
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        options = {
            "temperature": temperature,
            "num_predict": max_tokens,
            **kwargs.get("options", {}),
        }

        format_type = None
        messages = [{"role": "user", "content": prompt}]

        if response_format:
            format_type = "json"
            example_str = json.dumps(self._build_example(response_format), indent=2)

            enhanced_prompt = f"""{prompt}

You MUST respond with valid JSON matching this structure:
{example_str}

IMPORTANT:
- Replace placeholder values like "<field_name>" with actual content
- Return ONLY valid JSON, no markdown formatting or extra text
- Do not return the schema itself, return actual data"""

            messages = [{"role": "user", "content": enhanced_prompt}]

        try:
            response = await self.client.chat(
                model=self.model,
                messages=messages,
                format=format_type,
                options=options,
                **{k: v for k, v in kwargs.items() if k != "options"},
            )
        except Exception as e:
            logger.error(
                "Ollama chat error: {}",
                e,
                extra={"model": self.model, "error_type": type(e).__name__},
            )
            raise provider_error(e, "ollama", "complete", {"model": self.model}) from e

        content = response["message"]["content"]

        if response_format:
            cleaned = self._extract_json(content)
            try:
                return response_format.model_validate_json(cleaned)
            except ValueError as e:
                raise ValidationError(
                    f"Failed to parse structured output as {response_format.__name__}",
                    {"raw_response": content[:500], "error": str(e)},
                ) from e

        return content

    def _build_example(self, response_format: type[BaseModel]) -> dict[str, Any]:
        """
        Build an example JSON payload from a Pydantic model schema.

        Nested models referenced through ``$defs`` are expanded one level so
        list-of-object fields show the expected item shape.
        """
        schema = response_format.model_json_schema()
        defs = schema.get("$defs", {})

        def example_for(field_name: str, field_info: dict, depth: int = 0) -> Any:
            if "$ref" in field_info:
                ref = field_info["$ref"].split("/")[-1]
                target = defs.get(ref, {})
                if target.get("enum"):
                    return target["enum"][0]
                if depth < 2:
                    return {
                        name: example_for(name, info, depth + 1)
                        for name, info in target.get("properties", {}).items()
                    }
                return {}
            if "anyOf" in field_info:
                options = [o for o in field_info["anyOf"] if o.get("type") != "null"]
                return example_for(field_name, options[0], depth) if options else None

            field_type = field_info.get("type", "string")
            if field_type == "string":
                return f"<{field_name}>"
            if field_type in ("number", "integer"):
                return 0.5 if field_type == "number" else 1
            if field_type == "boolean":
                return True
            if field_type == "array":
                items = field_info.get("items", {})
                if "$ref" in items and depth < 2:
                    return [example_for(field_name, items, depth + 1)]
                return []
            if field_type == "object":
                return {}
            return None

        return {
            name: example_for(name, info)
            for name, info in schema.get("properties", {}).items()
        }

    def _extract_json(self, content: str) -> str:
        """
        Extract JSON from content that might have markdown formatting.

        Args:
            content: Raw content that may contain JSON

        Returns:
            Cleaned JSON string
        """
        content = content.strip()

        # Remove markdown code blocks
        if "```json" in content:
            content = content.split("```json")[1].split("```")[0].strip()
        elif "```" in content:
            content = content.split("```")[1].split("```")[0].strip()

        return content

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
        pass
