"""Pre-rendered decks.

- classic: 88 painted cards, id n is bound to word n of the word pool
- saga: 55 image-only cards used by the hero's journey

Id 0 of every deck is the card back and is never dealt.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from omcard.errors import InvalidStyle
from omcard.models import WordCard
from omcard.words import WORD_COUNT, get_word

CLASSIC_CARD_COUNT = WORD_COUNT
SAGA_CARD_COUNT = 55
CARD_BACK_ID = 0

_DECK_SIZES: Dict[str, int] = {
    "classic": CLASSIC_CARD_COUNT,
    "saga": SAGA_CARD_COUNT,
}


def deck_size(style: str) -> int:
    try:
        return _DECK_SIZES[style]
    except KeyError:
        raise InvalidStyle(style) from None


def deck_ids(style: str) -> List[int]:
    return list(range(1, deck_size(style) + 1))


def image_url_for(style: str, card_id: int) -> str:
    if card_id < CARD_BACK_ID or card_id > deck_size(style):
        raise ValueError(f"{style} card id out of range: {card_id}")
    return f"/cards/{style}/{card_id}.jpg"


def bound_word(style: str, card_id: int) -> Optional[WordCard]:
    """Word printed on a pre-rendered card. Saga cards carry none."""
    if style != "classic":
        return None
    w = get_word(card_id)
    return WordCard(en=w.en, cn=w.cn)
