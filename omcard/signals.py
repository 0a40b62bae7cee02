"""Phase-transition signals read out of facilitator replies.

The facilitator is asked to use certain words when it is ready for a swap, an
integration or a closing. ``KeywordSignalDetector`` finds them by substring
match. It breaks when the model paraphrases, so detectors are passed in
wherever they are used and a structured signal can replace this one later.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Set

from omcard.models import ChatMessage


class Signal(str, Enum):
    SWAP = "swap"
    INTEGRATE = "integrate"
    CLOSURE_READY = "closure_ready"


DEFAULT_PHRASES: Dict[Signal, tuple] = {
    Signal.SWAP: ("交换", "互换", "换一下", "调换", "swap", "switch places", "trade places"),
    Signal.INTEGRATE: ("一体两面", "整合", "收尾", "重新看看", "integrate", "two sides of the same"),
    Signal.CLOSURE_READY: (
        "好像意识到", "似乎意识到", "好像发现", "似乎发现", "领悟", "洞见", "累了", "疲惫",
        "先到这里", "告一段落", "an insight", "seem to realize", "tired", "wrap up",
    ),
}


class SignalDetector(ABC):
    @abstractmethod
    def detect(self, text: str) -> Set[Signal]:
        """Signals present in one facilitator reply."""


class KeywordSignalDetector(SignalDetector):
    def __init__(self, phrases: Optional[Dict[Signal, Iterable[str]]] = None):
        source = phrases if phrases is not None else DEFAULT_PHRASES
        self.phrases: Dict[Signal, FrozenSet[str]] = {
            signal: frozenset(p.lower() for p in words) for signal, words in source.items()
        }

    def detect(self, text: str) -> Set[Signal]:
        lowered = (text or "").lower()
        return {signal for signal, words in self.phrases.items() if any(w in lowered for w in words)}


DEFAULT_DETECTOR = KeywordSignalDetector()


def latest_assistant_signals(
    messages: Sequence[ChatMessage],
    detector: Optional[SignalDetector] = None,
) -> Set[Signal]:
    """Signals in the most recent assistant message, empty if there is none."""
    detector = detector or DEFAULT_DETECTOR
    for m in reversed(messages):
        if m.role == "assistant":
            return detector.detect(m.content)
    return set()


def any_assistant_signal(
    messages: Sequence[ChatMessage],
    signal: Signal,
    detector: Optional[SignalDetector] = None,
) -> bool:
    detector = detector or DEFAULT_DETECTOR
    return any(m.role == "assistant" and signal in detector.detect(m.content) for m in messages)
