"""LLM inference capability used when local parsing is not enough."""

import logging

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

TRANSCRIPTION_PROMPT = (
    "Transcribe this audio recording word for word. "
    "Reply with the transcription only."
)


class InferenceError(RuntimeError):
    """Raised when the inference service fails."""
    pass


class InferenceClient:
    """
    Text inference and transcription.

    Implementations take role-tagged messages ({"role": "system" | "user",
    "content": str}) and return the model's free-text reply.
    """

    def infer(self, messages: list[dict]) -> str:
        raise NotImplementedError

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        raise NotImplementedError


class GeminiInference(InferenceClient):
    """InferenceClient backed by Google Gemini."""

    def __init__(self, api_key: str, model: str, transcription_model: str | None = None):
        self.client = genai.Client(api_key=api_key)
        self.model = model
        self.transcription_model = transcription_model or model

    def infer(self, messages: list[dict]) -> str:
        system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
        contents = [m["content"] for m in messages if m.get("role") != "system"]
        if not contents:
            raise InferenceError("No user message to send")

        config = types.GenerateContentConfig(system_instruction=system) if system else None

        logger.info(f"Sending {len(contents)} message(s) to Gemini...")
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            raise InferenceError(f"Gemini request failed: {e}") from e

        return (response.text or "").strip()

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        logger.info(f"Sending {len(audio)} bytes of {mime_type} audio to Gemini...")
        try:
            response = self.client.models.generate_content(
                model=self.transcription_model,
                contents=[
                    types.Part.from_bytes(data=audio, mime_type=mime_type),
                    TRANSCRIPTION_PROMPT,
                ],
            )
        except Exception as e:
            raise InferenceError(f"Gemini transcription failed: {e}") from e

        return (response.text or "").strip()


def create_inference(api_key: str, model: str, transcription_model: str | None = None) -> InferenceClient | None:
    """Returns a Gemini client, or None when no API key is configured."""
    if not api_key:
        logger.warning("No Gemini API key configured - AI parsing disabled")
        return None
    return GeminiInference(api_key, model, transcription_model)
