from pathlib import Path
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from omcard.ai import ImageGenerator, TextGenerator
from omcard.config import Settings
from omcard.errors import GenerationFailure
from omcard.main import create_app
from omcard.modes.base import CardDealer, Facilitator
from omcard.rate_limit import RateLimiter
from omcard.utils.rng import seeded_random


class FakeTextGenerator(TextGenerator):
    """Scripted replies; records every call."""

    def __init__(self, default: str = "你在画面里看到了什么？"):
        self.default = default
        self.replies: List[str] = []
        self.calls: List[dict] = []
        self.fail = False

    def _record(self, system_prompt, messages, vision_image, kind):
        self.calls.append(
            {
                "kind": kind,
                "system_prompt": system_prompt,
                "messages": list(messages),
                "vision_image": vision_image,
            }
        )
        if self.fail:
            raise GenerationFailure("对话生成失败")
        return self.replies.pop(0) if self.replies else self.default

    def stream(self, system_prompt, messages, vision_image=None):
        text = self._record(system_prompt, messages, vision_image, "stream")
        return iter([text[: len(text) // 2], text[len(text) // 2:]])

    def complete(self, system_prompt, messages, vision_image=None):
        return self._record(system_prompt, messages, vision_image, "complete")

    @property
    def last_prompt(self) -> str:
        return self.calls[-1]["system_prompt"]


class FakeImageGenerator(ImageGenerator):
    def __init__(self):
        self.calls: List[tuple] = []
        self.fail = False

    def generate(self, prompt, negative_prompt=None):
        self.calls.append((prompt, negative_prompt))
        if self.fail:
            raise GenerationFailure()
        return "data:image/png;base64,ZmFrZQ=="


class FakeProviders:
    def __init__(self):
        self.text_generator = FakeTextGenerator()
        self.image_generator = FakeImageGenerator()
        self.requested: List[Optional[str]] = []

    def text(self, name=None):
        self.requested.append(name)
        return self.text_generator

    def image(self, name=None):
        self.requested.append(name)
        return self.image_generator


@pytest.fixture
def providers():
    return FakeProviders()


@pytest.fixture
def settings(tmp_path: Path):
    cards = tmp_path / "cards"
    (cards / "saga").mkdir(parents=True)
    (cards / "saga" / "1.jpg").write_bytes(b"\xff\xd8\xff\xe0fakejpeg")
    return Settings(cards_dir=cards, log_level="WARNING")


@pytest.fixture
def client(settings, providers):
    app = create_app(settings=settings, providers=providers, limiter=RateLimiter())
    return TestClient(app)


@pytest.fixture
def text_generator():
    return FakeTextGenerator()


@pytest.fixture
def image_generator():
    return FakeImageGenerator()


@pytest.fixture
def dealer(image_generator):
    return CardDealer(image_generator, rng=seeded_random("modes", "dealer"))


@pytest.fixture
def facilitator(text_generator):
    return Facilitator(text_generator)
