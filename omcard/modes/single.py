"""Single draw: one card, one open conversation.

    idle --draw--> drawing --(image ready)--> drawn
    drawing --(failure)--> error --retry--> drawing

Drawing again from ``drawn`` replaces the card and starts a fresh conversation.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from omcard.errors import GenerationFailure
from omcard.facilitator import count_user_turns
from omcard.models import ChatMessage, DrawnCard
from omcard.modes.base import CardDealer, Facilitator, ModeMachine, assistant_message, user_message

log = logging.getLogger("omcard.modes.single")

DRAW_FAILED_NOTICE = "图片生成失败，请稍后重试"


class SingleDraw(ModeMachine):
    name = "single"

    def __init__(self, dealer: CardDealer, facilitator: Facilitator, style: str = "figurative"):
        self.dealer = dealer
        self.facilitator = facilitator
        self.style = style
        self.stage = "idle"
        self.card: Optional[DrawnCard] = None
        self.messages: List[ChatMessage] = []
        self.notice: Optional[str] = None

    def set_style(self, style: str) -> None:
        self._require("change deck", "idle", "drawn", "error")
        self.style = style
        self.reset()

    def draw(self) -> Optional[DrawnCard]:
        self._require("draw", "idle", "drawn")
        return self._draw()

    def retry(self) -> Optional[DrawnCard]:
        self._require("retry", "error")
        return self._draw()

    def _draw(self) -> Optional[DrawnCard]:
        self.stage = "drawing"
        self.card = None
        self.messages = []
        self.notice = None
        try:
            card = self.dealer.draw(self.style)
        except GenerationFailure as e:
            log.warning("single draw failed: %s", e)
            self.notice = e.message or DRAW_FAILED_NOTICE
            self.stage = "error"
            return None
        self.card = card
        self.stage = "drawn"
        return card

    @property
    def turn_count(self) -> int:
        return count_user_turns(self.messages)

    def send(self, text: str) -> str:
        """Add the user's words and return the facilitator's reply."""
        self._require("send", "drawn")
        text = text.strip()
        if not text:
            raise ValueError("message is empty")

        self.messages.append(user_message(text))
        reply = self.facilitator.reply(
            "single",
            list(self.messages),
            turn_count=self.turn_count,
            word=self.card.word if self.card else None,
            prompt_keywords=self.card.prompt_keywords if self.card else None,
        )
        self.messages.append(assistant_message(reply))
        return reply

    def reset(self) -> None:
        self.stage = "idle"
        self.card = None
        self.messages = []
        self.notice = None
