"""Collaborators shared by the mode machines.

A machine never talks to a provider directly: it deals cards through a
``CardDealer`` and gets facilitator turns from a ``Facilitator``. Both can be
swapped for fakes in tests or for an HTTP client on the browser side.
"""

from __future__ import annotations

import logging
import random
from functools import partial
from typing import Callable, Collection, Iterable, List, Optional, Sequence

from omcard.ai import ImageGenerator, TextGenerator, resolve_vision_image
from omcard.config import DEFAULT_CARDS_DIR, Settings
from omcard.drawing import draw_card
from omcard.errors import GenerationFailure, InvalidTransition
from omcard.facilitator import build_system_prompt, fallback_reply
from omcard.models import ChatMessage, DrawnCard, StoryLogItem, WordCard, Zones
from omcard.signals import SignalDetector

log = logging.getLogger("omcard.modes")


class CardDealer:
    def __init__(self, image_generator: ImageGenerator, rng: Optional[random.Random] = None):
        self.image_generator = image_generator
        self.rng = rng

    def draw(self, style: str, exclude_ids: Optional[Collection[int]] = None) -> DrawnCard:
        return draw_card(style, self.image_generator, exclude_ids=exclude_ids, rng=self.rng)


class Facilitator:
    """Builds the prompt, calls the text generator, falls back on failure.

    Card images are passed through ``image_resolver`` before they reach the
    generator; by default local ``/cards/...`` paths are inlined from the cards
    directory.
    """

    def __init__(
        self,
        text_generator: TextGenerator,
        detector: Optional[SignalDetector] = None,
        image_resolver: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.text_generator = text_generator
        self.detector = detector
        self.image_resolver = image_resolver or partial(resolve_vision_image, cards_dir=DEFAULT_CARDS_DIR)

    @classmethod
    def from_settings(
        cls,
        text_generator: TextGenerator,
        settings: Settings,
        detector: Optional[SignalDetector] = None,
    ) -> "Facilitator":
        return cls(
            text_generator,
            detector=detector,
            image_resolver=partial(resolve_vision_image, cards_dir=settings.cards_dir),
        )

    def reply(
        self,
        mode: str,
        messages: Sequence[ChatMessage],
        phase: Optional[str] = None,
        step: Optional[int] = None,
        turn_count: Optional[int] = None,
        story_log: Optional[Sequence[StoryLogItem]] = None,
        word: Optional[WordCard] = None,
        prompt_keywords: Optional[Sequence[str]] = None,
        zones: Optional[Zones] = None,
        vision_image: Optional[str] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
        one_shot: bool = False,
        fallback: Optional[str] = None,
    ) -> str:
        system_prompt = build_system_prompt(
            mode,
            phase=phase,
            step=step,
            turn_count=turn_count,
            story_log=story_log,
            messages=messages,
            word=word,
            prompt_keywords=prompt_keywords,
            zones=zones,
            detector=self.detector,
        )
        if vision_image:
            vision_image = self.image_resolver(vision_image)
        try:
            if one_shot:
                text = self.text_generator.complete(system_prompt, messages, vision_image)
            else:
                text = "".join(self._consume(self.text_generator.stream(system_prompt, messages, vision_image), on_chunk))
        except GenerationFailure:
            log.warning("facilitator fallback mode=%s phase=%s step=%s", mode, phase, step)
            return fallback or fallback_reply(mode, phase, step, turn_count=turn_count)

        text = text.strip()
        if not text:
            log.warning("facilitator returned empty text mode=%s phase=%s step=%s", mode, phase, step)
            return fallback or fallback_reply(mode, phase, step, turn_count=turn_count)
        return text

    @staticmethod
    def _consume(chunks: Iterable[str], on_chunk: Optional[Callable[[str], None]]) -> Iterable[str]:
        for chunk in chunks:
            if on_chunk:
                on_chunk(chunk)
            yield chunk


class ModeMachine:
    name = "mode"
    stage: str

    def _require(self, action: str, *stages: str) -> None:
        if self.stage not in stages:
            raise InvalidTransition(self.name, self.stage, action)


def user_message(content: str) -> ChatMessage:
    return ChatMessage(role="user", content=content)


def assistant_message(content: str) -> ChatMessage:
    return ChatMessage(role="assistant", content=content)


def story_items(entries: Iterable) -> List[StoryLogItem]:
    return [StoryLogItem(step=e.step, answer=e.user_answer, question=e.question) for e in entries]
