"""
Completion clients.

The extractor depends only on the CompletionClient protocol; the Gemini client
is the production implementation.
"""

import os
import logging
from typing import List, Dict, Optional, Protocol

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

Message = Dict[str, str]  # {"role": "system" | "user" | "assistant", "content": "..."}


class CompletionClient(Protocol):
    async def complete(self, messages: List[Message]) -> str:
        ...


class GeminiCompletionClient:
    """Gemini on Vertex AI via google-genai."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        location: str = "global",
        model: str = "gemini-3-pro-preview",
        temperature: float = 0.1
    ):
        self.project_id = project_id
        self.location = location
        self.model = model
        self.temperature = temperature
        self._client = None

    @property
    def client(self) -> "genai.Client":
        # Created on first use so the app starts without GCP credentials
        if self._client is None:
            creds_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
            if creds_path:
                logger.info(f"Using GCP credentials from: {creds_path}")
            else:
                logger.warning("GOOGLE_APPLICATION_CREDENTIALS not set. Will try default credentials.")

            self._client = genai.Client(
                vertexai=True,
                project=self.project_id,
                location=self.location
            )
            logger.info("Gemini client initialized successfully")
        return self._client

    async def complete(self, messages: List[Message]) -> str:
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])]
            )
            for m in messages if m["role"] != "system"
        ]

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction="\n\n".join(system_parts) or None,
                temperature=self.temperature,
            )
        )
        return (response.text or "").strip()
