"""Paradox flip: comfort vs. discomfort.

    init --choose(source)--> loading --> selecting --(2 picked)--> setup
    setup --confirm--> initial --swap--> swapping --> swapped --conclude--> conclusion

The left zone holds the uncomfortable card, the right zone the comfortable one.
A swap exchanges which card sits in which zone; the cards themselves do not
change, so two swaps give back the original layout.

Callers that animate the swap pass ``swap_delay_s=SWAP_DELAY_S``; by default
``swap()`` returns without waiting.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional

from omcard.composer import compose_cards
from omcard.errors import GenerationFailure, InvalidTransition
from omcard.models import ChatMessage, DrawnCard, Zones
from omcard.modes.base import CardDealer, Facilitator, ModeMachine, assistant_message, user_message
from omcard.signals import Signal, SignalDetector, any_assistant_signal

log = logging.getLogger("omcard.modes.flip")

SOURCES = ("classic", "ai", "legacy")
CANDIDATE_COUNTS: Dict[str, int] = {"classic": 5, "ai": 3, "legacy": 2}
PICK_COUNT = 2
SWAP_DELAY_S = 1.2
READY_PROMPT = "（用户已准备好）"

NO_CARDS_NOTICE = "卡牌生成失败，请重试"
ZONES_NOT_FILLED_NOTICE = "请将两张卡牌分别放入左右区域"


class ParadoxFlip(ModeMachine):
    name = "flip"

    def __init__(
        self,
        dealer: CardDealer,
        facilitator: Facilitator,
        ai_style: str = "figurative",
        detector: Optional[SignalDetector] = None,
        swap_delay_s: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.dealer = dealer
        self.facilitator = facilitator
        self.ai_style = ai_style
        self.detector = detector or facilitator.detector
        self.swap_delay_s = swap_delay_s
        self.sleep = sleep
        self.restart()

    def restart(self) -> None:
        self.stage = "init"
        self.source: Optional[str] = None
        self.candidates: List[DrawnCard] = []
        self.selected: List[DrawnCard] = []
        self.left: Optional[DrawnCard] = None
        self.right: Optional[DrawnCard] = None
        self.has_swapped = False
        self.messages: List[ChatMessage] = []
        self.notice: Optional[str] = None
        self._phase_start = 0

    # -- dealing ---------------------------------------------------------

    def choose(self, source: str) -> List[DrawnCard]:
        self._require("choose a deck", "init")
        if source not in SOURCES:
            raise ValueError(f"Unknown flip source: {source}")

        self.source = source
        self.stage = "loading"
        self.notice = None

        if source == "classic":
            cards = compose_cards(CANDIDATE_COUNTS[source], "classic", rng=self.dealer.rng)
        else:
            cards = self._draw_ai(CANDIDATE_COUNTS[source])

        if len(cards) < PICK_COUNT:
            log.warning("flip got %d cards from %s, back to init", len(cards), source)
            self.stage = "init"
            self.notice = NO_CARDS_NOTICE
            return []

        self.candidates = cards
        if source == "legacy":
            self.selected = list(cards[:PICK_COUNT])
            self.stage = "setup"
        else:
            self.stage = "selecting"
        return cards

    def _draw_ai(self, count: int) -> List[DrawnCard]:
        cards = []
        for _ in range(count):
            try:
                cards.append(self.dealer.draw(self.ai_style))
            except GenerationFailure as e:
                log.warning("flip card generation failed: %s", e)
        return cards

    def _candidate(self, card_id: str) -> DrawnCard:
        for card in self.candidates:
            if card.card_id == card_id:
                return card
        raise KeyError(card_id)

    def select(self, card_id: str) -> List[DrawnCard]:
        """Toggle a candidate; the second pick moves on to setup."""
        self._require("select", "selecting")
        card = self._candidate(card_id)
        if any(c.card_id == card_id for c in self.selected):
            self.selected = [c for c in self.selected if c.card_id != card_id]
        elif len(self.selected) < PICK_COUNT:
            self.selected.append(card)

        if len(self.selected) == PICK_COUNT:
            self.stage = "setup"
        return list(self.selected)

    # -- setup -----------------------------------------------------------

    def assign(self, card_id: str, zone: Optional[str]) -> None:
        """Put a picked card in ``comfort`` or ``discomfort``; ``None`` takes it out."""
        self._require("assign", "setup")
        card = next((c for c in self.selected if c.card_id == card_id), None)
        if card is None:
            raise KeyError(card_id)
        if zone not in ("comfort", "discomfort", None):
            raise ValueError(f"Unknown zone: {zone}")

        if self.left is not None and self.left.card_id == card_id:
            self.left = None
        if self.right is not None and self.right.card_id == card_id:
            self.right = None
        if zone == "discomfort":
            self.left = card
        elif zone == "comfort":
            self.right = card

    def swap_positions(self) -> None:
        self._require("swap positions", "setup")
        self.left, self.right = self.right, self.left

    def confirm(self) -> bool:
        """Start the first round. Rejected (state unchanged) unless both zones are filled."""
        self._require("confirm", "setup")
        if self.left is None or self.right is None or self.left.card_id == self.right.card_id:
            self.notice = ZONES_NOT_FILLED_NOTICE
            return False
        self.notice = None
        self._enter("initial")
        return True

    # -- conversation ----------------------------------------------------

    @property
    def zones(self) -> Zones:
        return Zones(
            comfort=self.right.word if self.right else None,
            discomfort=self.left.word if self.left else None,
        )

    @property
    def phase_turns(self) -> int:
        return sum(1 for m in self.messages[self._phase_start:] if m.role == "user")

    def _turn(self, extra: Optional[ChatMessage] = None) -> str:
        history = list(self.messages) + ([extra] if extra else [])
        reply = self.facilitator.reply(
            "flip",
            history,
            phase=self.stage,
            turn_count=self.phase_turns,
            zones=self.zones,
        )
        self.messages.append(assistant_message(reply))
        return reply

    def _enter(self, stage: str) -> str:
        self.stage = stage
        self._phase_start = len(self.messages)
        return self._turn(user_message(READY_PROMPT))

    def send(self, text: str) -> str:
        self._require("send", "initial", "swapped", "conclusion")
        text = text.strip()
        if not text:
            raise ValueError("message is empty")
        self.messages.append(user_message(text))
        return self._turn()

    @property
    def swap_available(self) -> bool:
        return self.stage == "initial" and any_assistant_signal(self.messages, Signal.SWAP, self.detector)

    @property
    def conclusion_available(self) -> bool:
        return self.stage == "swapped" and any_assistant_signal(
            self.messages[self._phase_start:], Signal.INTEGRATE, self.detector
        )

    def swap(self) -> str:
        self._require("swap", "initial")
        if not self.swap_available:
            raise InvalidTransition(self.name, self.stage, "swap before it is offered")
        self.stage = "swapping"
        if self.swap_delay_s > 0:
            self.sleep(self.swap_delay_s)
        self.left, self.right = self.right, self.left
        self.has_swapped = True
        return self._enter("swapped")

    def conclude(self) -> str:
        self._require("conclude", "swapped")
        if not self.conclusion_available:
            raise InvalidTransition(self.name, self.stage, "conclude before integration is offered")
        return self._enter("conclusion")

    def summary(self) -> dict:
        """Export payload for the saved consultation."""
        self._require("export", "conclusion")
        return {
            "discomfort": self.left.model_dump(by_alias=True) if self.left else None,
            "comfort": self.right.model_dump(by_alias=True) if self.right else None,
            "hasSwapped": self.has_swapped,
            "messages": [m.model_dump() for m in self.messages],
        }
