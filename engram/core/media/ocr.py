"""
Vision-model OCR providers.
"""

import base64

import ollama
from openai import AsyncOpenAI

from engram.core.media.base import OCRProvider
from engram.utils.exceptions import provider_error
from engram.utils.logger import get_logger

logger = get_logger(__name__)

OCR_PROMPT = (
    "Transcribe all text visible in this image exactly as written. "
    "If there is no text, describe the image in one or two sentences. "
    "Return only the text."
)


class OpenAIOCR(OCRProvider):
    """OCR through an OpenAI vision-capable chat model."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 120.0,
    ):
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def recognize(self, image: bytes, mime_type: str = "image/png") -> str:
        encoded = base64.b64encode(image).decode("ascii")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": OCR_PROMPT},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                            },
                        ],
                    }
                ],
                temperature=0.0,
            )
        except Exception as e:
            logger.error("OpenAI OCR error: {}", e, extra={"model": self.model})
            raise provider_error(e, "openai", "ocr", {"model": self.model}) from e

        return (response.choices[0].message.content or "").strip()

    async def close(self):
        await self.client.close()


class OllamaOCR(OCRProvider):
    """OCR through an Ollama vision model (llava, llama3.2-vision, ...)."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.2-vision",
        timeout: float = 120.0,
    ):
        self.model = model
        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def recognize(self, image: bytes, mime_type: str = "image/png") -> str:
        try:
            response = await self.client.chat(
                model=self.model,
                messages=[{"role": "user", "content": OCR_PROMPT, "images": [image]}],
                options={"temperature": 0.0},
            )
        except Exception as e:
            logger.error("Ollama OCR error: {}", e, extra={"model": self.model})
            raise provider_error(e, "ollama", "ocr", {"model": self.model}) from e

        return (response["message"]["content"] or "").strip()
