"""Text and image generation backed by OpenAI-compatible providers.

openai, google (Gemini's OpenAI-compatible endpoint) and doubao (Volcengine Ark)
are all reached through the ``openai`` SDK with a different base URL and key.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from openai import OpenAI

from omcard.config import ProviderConfig, Settings
from omcard.errors import GenerationFailure, ValidationError
from omcard.models import ChatMessage

log = logging.getLogger("omcard.ai")

MAX_TOKENS = 600
TEMPERATURE = 0.8


class TextGenerator(ABC):
    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        vision_image: Optional[str] = None,
    ) -> Iterator[str]:
        """Start a generation and return its text chunks.

        The upstream call is made before this returns, so connection and auth
        errors raise ``GenerationFailure`` here rather than mid-stream.
        """

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        vision_image: Optional[str] = None,
    ) -> str:
        return "".join(self.stream(system_prompt, messages, vision_image)).strip()


class ImageGenerator(ABC):
    @abstractmethod
    def generate(self, prompt: str, negative_prompt: Optional[str] = None) -> str:
        """Return an image reference: an http(s) URL or a data URL."""


def to_openai_messages(
    system_prompt: str,
    messages: Sequence[ChatMessage],
    vision_image: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """System prompt first, then the history in its original order.

    With a vision image the last user message becomes a text + image part list.
    """
    out: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    out.extend({"role": m.role, "content": m.content} for m in messages)

    if vision_image:
        for msg in reversed(out):
            if msg["role"] == "user":
                msg["content"] = [
                    {"type": "text", "text": msg["content"]},
                    {"type": "image_url", "image_url": {"url": vision_image}},
                ]
                break
    return out


def resolve_vision_image(image_url: Optional[str], cards_dir: Path) -> Optional[str]:
    """Make a card image reachable by the provider.

    Remote and data URLs pass through. Local ``/cards/...`` paths are inlined as
    base64 data URLs; a missing file yields None and the question is asked
    without the picture.
    """
    if not image_url:
        return None
    if image_url.startswith(("http://", "https://", "data:")):
        return image_url

    rel = image_url.lstrip("/")
    if rel.startswith("cards/"):
        rel = rel[len("cards/"):]
    path = (cards_dir / rel).resolve()
    if cards_dir.resolve() not in path.parents or not path.is_file():
        log.warning("vision image not found locally: %s", image_url)
        return None

    mime = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    data = base64.b64encode(path.read_bytes()).decode("utf-8")
    return f"data:{mime};base64,{data}"


class _ProviderClient:
    def __init__(self, config: ProviderConfig, timeout_s: float):
        self.config = config
        self.timeout_s = timeout_s
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            api_key = self.config.api_key
            if not api_key:
                raise GenerationFailure(f"{self.config.api_key_env} is not configured")
            self._client = OpenAI(api_key=api_key, base_url=self.config.base_url, timeout=self.timeout_s)
        return self._client


class OpenAITextGenerator(_ProviderClient, TextGenerator):
    def stream(self, system_prompt, messages, vision_image=None):
        payload = to_openai_messages(system_prompt, messages, vision_image)
        try:
            response = self.client.chat.completions.create(
                model=self.config.text_model,
                messages=payload,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                stream=True,
            )
        except GenerationFailure:
            raise
        except Exception as e:
            log.exception("%s text generation failed", self.config.name)
            raise GenerationFailure("对话生成失败") from e
        return self._chunks(response)

    def _chunks(self, response) -> Iterator[str]:
        try:
            for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except Exception:
            # Headers are already sent; end the stream with what we have.
            log.exception("%s text stream interrupted", self.config.name)
        finally:
            close = getattr(response, "close", None)
            if close:
                close()

    def complete(self, system_prompt, messages, vision_image=None):
        payload = to_openai_messages(system_prompt, messages, vision_image)
        try:
            response = self.client.chat.completions.create(
                model=self.config.text_model,
                messages=payload,
                max_tokens=MAX_TOKENS * 2,
                temperature=TEMPERATURE,
            )
        except GenerationFailure:
            raise
        except Exception as e:
            log.exception("%s text completion failed", self.config.name)
            raise GenerationFailure("对话生成失败") from e
        return (response.choices[0].message.content or "").strip()


class OpenAIImageGenerator(_ProviderClient, ImageGenerator):
    def generate(self, prompt, negative_prompt=None):
        full_prompt = prompt
        if negative_prompt:
            full_prompt += f" DO NOT include: {negative_prompt}"

        try:
            response = self.client.images.generate(
                model=self.config.image_model,
                prompt=full_prompt,
                size=self.config.image_size,
                n=1,
                response_format="b64_json",
            )
        except GenerationFailure:
            raise
        except Exception as e:
            log.exception("%s image generation failed", self.config.name)
            raise GenerationFailure() from e

        item = response.data[0] if response.data else None
        if item is not None and item.b64_json:
            return f"data:image/png;base64,{item.b64_json}"
        if item is not None and item.url:
            return item.url
        log.error("%s returned no image", self.config.name)
        raise GenerationFailure()


class ProviderRegistry:
    """Builds one text and one image generator per configured provider, lazily."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._text: Dict[str, TextGenerator] = {}
        self._image: Dict[str, ImageGenerator] = {}

    def _config(self, name: Optional[str]) -> ProviderConfig:
        name = name or self.settings.default_provider
        config = self.settings.providers.get(name)
        if config is None:
            raise ValidationError(f"Unknown provider: {name}")
        return config

    def text(self, name: Optional[str] = None) -> TextGenerator:
        config = self._config(name)
        if config.name not in self._text:
            self._text[config.name] = OpenAITextGenerator(config, self.settings.timeout_s)
        return self._text[config.name]

    def image(self, name: Optional[str] = None) -> ImageGenerator:
        config = self._config(name)
        if config.name not in self._image:
            self._image[config.name] = OpenAIImageGenerator(config, self.settings.timeout_s)
        return self._image[config.name]
