"""Summaries of transcripts via a hosted language model."""

from __future__ import annotations

from typing import Protocol

from openai import OpenAI

from .transcriber import call_service

SYSTEM_PROMPT = "Summarize the following transcript in at most five concise sentences."


class Summarizer(Protocol):
    def summarise(self, transcript: str) -> str:
        """Return a short summary, or an empty string when none was produced."""


class OpenAISummarizer:
    """Summarise transcripts with the OpenAI responses API."""

    def __init__(self, client: OpenAI, model: str) -> None:
        self._client = client
        self._model = model

    def build_input(self, transcript: str) -> list[dict]:
        return [
            {"role": "system", "content": [{"type": "input_text", "text": SYSTEM_PROMPT}]},
            {"role": "user", "content": [{"type": "input_text", "text": transcript}]},
        ]

    def summarise(self, transcript: str) -> str:
        response = call_service(
            "Summarization",
            self._client.responses.create,
            model=self._model,
            input=self.build_input(transcript),
        )
        return (getattr(response, "output_text", None) or "").strip()
