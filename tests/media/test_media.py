"""
Tests for OCR and transcription providers.
"""

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from engram.core.media import OllamaOCR, OpenAIOCR, OpenAITranscriber
from engram.core.media.ocr import OCR_PROMPT
from engram.utils.exceptions import ProviderPermanentError, ProviderTransientError

PNG = b"\x89PNG\r\n\x1a\nfakeimage"


def chat_response(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


@pytest.mark.unit
@pytest.mark.asyncio
class TestOpenAIOCR:
    """Test OCR through OpenAI vision models."""

    @pytest.fixture
    def ocr(self):
        return OpenAIOCR(api_key="test-key", model="gpt-4o-mini")

    async def test_recognize(self, ocr):
        with patch.object(ocr.client.chat.completions, "create", new_callable=AsyncMock) as mock_create:
            mock_create.return_value = chat_response("  Invoice #42\nTotal: 10 EUR  ")

            text = await ocr.recognize(PNG, "image/png")

            assert text == "Invoice #42\nTotal: 10 EUR"
            content = mock_create.call_args.kwargs["messages"][0]["content"]
            assert content[0] == {"type": "text", "text": OCR_PROMPT}
            encoded = base64.b64encode(PNG).decode("ascii")
            assert content[1]["image_url"]["url"] == f"data:image/png;base64,{encoded}"

    async def test_empty_content(self, ocr):
        with patch.object(ocr.client.chat.completions, "create", new_callable=AsyncMock) as mock_create:
            mock_create.return_value = chat_response(None)

            assert await ocr.recognize(PNG) == ""

    async def test_connection_error(self, ocr):
        with patch.object(ocr.client.chat.completions, "create", new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = ConnectionError("refused")

            with pytest.raises(ProviderTransientError) as exc_info:
                await ocr.recognize(PNG)

            assert exc_info.value.context["operation"] == "ocr"


@pytest.mark.unit
@pytest.mark.asyncio
class TestOllamaOCR:
    """Test OCR through Ollama vision models."""

    @pytest.fixture
    def ocr(self):
        return OllamaOCR(model="llava")

    async def test_recognize(self, ocr):
        with patch.object(ocr.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.return_value = {"message": {"content": "STOP\n"}}

            text = await ocr.recognize(PNG)

            assert text == "STOP"
            kwargs = mock_chat.call_args.kwargs
            assert kwargs["model"] == "llava"
            assert kwargs["messages"][0]["images"] == [PNG]

    async def test_unknown_model(self, ocr):
        class ResponseError(Exception):
            status_code = 404

        with patch.object(ocr.client, "chat", new_callable=AsyncMock) as mock_chat:
            mock_chat.side_effect = ResponseError("model not found")

            with pytest.raises(ProviderPermanentError):
                await ocr.recognize(PNG)


@pytest.mark.unit
@pytest.mark.asyncio
class TestOpenAITranscriber:
    """Test transcription through the OpenAI audio API."""

    @pytest.fixture
    def transcriber(self):
        return OpenAITranscriber(api_key="test-key")

    async def test_transcribe(self, transcriber):
        with patch.object(
            transcriber.client.audio.transcriptions, "create", new_callable=AsyncMock
        ) as mock_create:
            mock_create.return_value = MagicMock(text=" Hello from the meeting. ")

            text = await transcriber.transcribe(b"ID3audio", "meeting.mp3")

            assert text == "Hello from the meeting."
            kwargs = mock_create.call_args.kwargs
            assert kwargs["model"] == "whisper-1"
            assert kwargs["file"] == ("meeting.mp3", b"ID3audio")

    async def test_rate_limited(self, transcriber):
        class RateLimitError(Exception):
            status_code = 429

        with patch.object(
            transcriber.client.audio.transcriptions, "create", new_callable=AsyncMock
        ) as mock_create:
            mock_create.side_effect = RateLimitError("slow down")

            with pytest.raises(ProviderTransientError):
                await transcriber.transcribe(b"audio")

    async def test_close(self, transcriber):
        with patch.object(transcriber.client, "close", new_callable=AsyncMock) as mock_close:
            await transcriber.close()

            mock_close.assert_awaited_once()
