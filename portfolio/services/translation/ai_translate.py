from __future__ import annotations

import json
import re
from typing import Any, Iterable

from openai import OpenAI

from portfolio.config import settings

_THINK_RE = re.compile(r"<think>.*?</think>", flags=re.DOTALL)
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")

LOCALE_NAMES = {
    "fr": "French",
    "en": "English",
}


class AIResponseError(RuntimeError):
    pass


class AITranslator:
    def __init__(self, base_url: str, api_key: str, model: str, timeout: float = 30.0):
        self.client = OpenAI(base_url=base_url, api_key=api_key, timeout=timeout)
        self.model = model

    def _complete(self, system: str, prompt: str) -> str:
        resp = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
        )
        out = resp.choices[0].message.content or ""
        return _THINK_RE.sub("", out).strip()

    def prompt_json(self, system: str, prompt: str) -> dict[str, Any]:
        """Run a chat completion that must answer with a JSON object."""
        raw = _FENCE_RE.sub("", self._complete(system, prompt)).strip()
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise AIResponseError(f"AI provider returned invalid JSON: {raw[:200]}") from exc
        if not isinstance(data, dict):
            raise AIResponseError("AI provider returned a non-object JSON payload")
        return data

    def translate(
        self,
        text: str,
        source_locale: str,
        target_locale: str,
        placeholders: Iterable[str] = (),
    ) -> str:
        if not text:
            return text
        source = LOCALE_NAMES.get(source_locale, source_locale)
        target = LOCALE_NAMES.get(target_locale, target_locale)
        system = (
            f"You are a helpful assistant that translates {source.lower()} markdown text "
            f"in {target.lower()} and that outputs JSON in the format {{message:string}}. "
            "Markdown is supported. Keep placeholders like :name exactly unchanged."
        )
        pl = ", ".join(sorted(set(placeholders))) if placeholders else ""
        extra = f"Placeholders to preserve: {pl}. " if pl else ""
        response = self.prompt_json(
            system,
            f"{extra}Translate this {source} text to {target}: {text}",
        )
        message = response.get("message")
        if not isinstance(message, str):
            raise AIResponseError("Invalid response format from AI service")
        return message.strip()


def build_translator() -> AITranslator | None:
    if not (settings.ai_api_key and settings.ai_model):
        return None
    base_url = settings.ai_base_url or "https://api.openai.com/v1"
    return AITranslator(
        base_url=base_url,
        api_key=settings.ai_api_key,
        model=settings.ai_model,
        timeout=settings.ai_timeout_seconds,
    )
