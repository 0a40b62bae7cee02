"""Hero's journey: ten saga cards, ten chapters, one story.

    intro --start--> playing (steps 1-10) --> generating --> summary
    summary --talk--> reflection --end--> blessing
    summary --skip--> blessing

Each chapter deals a saga card that has not been used in this journey, asks
the facilitator for a question about it and records the answer (or the
silence) in the story log.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from omcard.errors import GenerationFailure
from omcard.facilitator import (
    BLESSING_STEP,
    HERO_REFLECTION_FALLBACK,
    HERO_REFLECTION_OPENER,
    HERO_STEP_COUNT,
    REFLECTION_STEP,
    SUMMARY_STEP,
    hero_step,
)
from omcard.models import ChatMessage, DrawnCard, StoryEntry
from omcard.modes.base import (
    CardDealer,
    Facilitator,
    ModeMachine,
    assistant_message,
    story_items,
    user_message,
)

log = logging.getLogger("omcard.modes.hero")

HERO_DECK = "saga"
SILENCE = "（英雄选择了沉默）"
DRAW_PROMPT = "（用户抽到了这张卡，请根据卡牌画面提问）"
REFLECTION_PROMPT = "（用户看完了英雄传记，请开始反思对话）"
BLESSING_PROMPT = "（请送上最后的祝福）"
DRAW_FAILED_NOTICE = "抽卡失败，请重试"


class HeroJourney(ModeMachine):
    name = "hero"

    def __init__(self, dealer: CardDealer, facilitator: Facilitator, deck: str = HERO_DECK):
        self.dealer = dealer
        self.facilitator = facilitator
        self.deck = deck
        self.restart()

    def restart(self) -> None:
        self.stage = "intro"
        self.step = 1
        self.story_log: List[StoryEntry] = []
        self.current_card: Optional[DrawnCard] = None
        self.current_question = ""
        self.summary = ""
        self.reflection_messages: List[ChatMessage] = []
        self.blessing = ""
        self.notice: Optional[str] = None
        self._used_ids: Set[int] = set()

    @property
    def used_ids(self) -> Set[int]:
        return set(self._used_ids)

    # -- chapters ----------------------------------------------------------

    def start(self) -> Optional[DrawnCard]:
        self._require("start", "intro")
        self.stage = "playing"
        self.step = 1
        self.story_log = []
        self._used_ids = set()
        return self._deal()

    def draw_again(self) -> Optional[DrawnCard]:
        """Retry a chapter whose card could not be dealt."""
        self._require("draw", "playing")
        if self.current_card is not None:
            return self.current_card
        return self._deal()

    def _deal(self) -> Optional[DrawnCard]:
        self.current_card = None
        self.current_question = ""
        self.notice = None
        try:
            card = self.dealer.draw(self.deck, exclude_ids=self._used_ids)
        except GenerationFailure as e:
            log.warning("hero step %d draw failed: %s", self.step, e)
            self.notice = DRAW_FAILED_NOTICE
            return None

        if card.deck_id is not None:
            self._used_ids.add(card.deck_id)
        self.current_card = card
        self.current_question = self.facilitator.reply(
            "hero",
            [user_message(DRAW_PROMPT)],
            step=self.step,
            story_log=story_items(self.story_log),
            vision_image=card.image_url,
        )
        return card

    def answer(self, text: str) -> None:
        self._require("answer", "playing")
        text = text.strip()
        if not text:
            raise ValueError("answer is empty")
        self._record(text)

    def skip(self) -> None:
        self._require("skip", "playing")
        self._record(SILENCE)

    def _record(self, answer: str) -> None:
        if self.current_card is None:
            raise ValueError("no card drawn for this step yet")

        self.story_log.append(
            StoryEntry(
                step=self.step,
                card=self.current_card,
                question=self.current_question or hero_step(self.step).question,
                user_answer=answer,
            )
        )
        if self.step >= HERO_STEP_COUNT:
            self.step += 1
            self.current_card = None
            self._generate_summary()
        else:
            self.step += 1
            self._deal()

    # -- after the journey -------------------------------------------------

    def _generate_summary(self) -> None:
        self.stage = "generating"
        context = "\n".join(f"【{hero_step(e.step).title}】{e.user_answer}" for e in self.story_log)
        self.summary = self.facilitator.reply(
            "hero",
            [user_message(context)],
            step=SUMMARY_STEP,
            story_log=story_items(self.story_log),
            one_shot=True,
        )
        self.stage = "summary"

    def talk(self) -> str:
        self._require("talk", "summary")
        self.stage = "reflection"
        opener = self.facilitator.reply(
            "hero",
            [user_message(REFLECTION_PROMPT)],
            step=REFLECTION_STEP,
            story_log=story_items(self.story_log),
            fallback=HERO_REFLECTION_OPENER,
        )
        self.reflection_messages = [assistant_message(opener)]
        return opener

    @property
    def reflection_turns(self) -> int:
        return sum(1 for m in self.reflection_messages if m.role == "user")

    def reflect(self, text: str) -> str:
        self._require("reflect", "reflection")
        text = text.strip()
        if not text:
            raise ValueError("message is empty")
        self.reflection_messages.append(user_message(text))
        reply = self.facilitator.reply(
            "hero",
            list(self.reflection_messages),
            step=REFLECTION_STEP,
            turn_count=self.reflection_turns,
            story_log=story_items(self.story_log),
            fallback=HERO_REFLECTION_FALLBACK,
        )
        self.reflection_messages.append(assistant_message(reply))
        return reply

    def skip_reflection(self) -> str:
        self._require("skip reflection", "summary")
        return self._bless()

    def end_reflection(self) -> str:
        self._require("end reflection", "reflection")
        return self._bless()

    def _bless(self) -> str:
        self.stage = "blessing"
        self.blessing = self.facilitator.reply(
            "hero",
            [user_message(BLESSING_PROMPT)],
            step=BLESSING_STEP,
            story_log=story_items(self.story_log),
        )
        return self.blessing
