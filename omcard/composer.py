"""Card composer.

Generative cards pair a word and an image prompt drawn from two unrelated
random draws. Nothing about the word may steer the picture or the other way
round; the reading relies on the user linking them.
"""

from __future__ import annotations

import logging
import random
from typing import Collection, List, Optional

from omcard import decks
from omcard.errors import ExhaustedPool, InvalidStyle, ValidationError
from omcard.models import DECK_STYLES, GENERATIVE_STYLES, DrawnCard, WordCard
from omcard.prompt_pool import (
    get_style,
    pick_random_archetype,
    pick_random_atmosphere,
    pick_random_palette,
)
from omcard.utils.rng import pick_excluding, sample_distinct
from omcard.words import pick_random_word

log = logging.getLogger("omcard.composer")


def prompt_keywords(archetype: str, atmosphere: str) -> List[str]:
    return [" ".join(archetype.split(" ")[-2:]), atmosphere]


def build_image_prompt(style: str, rng: Optional[random.Random] = None) -> dict:
    """Fill the style template from independent pool draws."""
    s = get_style(style)
    archetype = pick_random_archetype(style, rng)
    atmosphere = pick_random_atmosphere(style, rng)
    palette = pick_random_palette(style, rng)

    prompt = (
        s["template"]
        .replace("{archetype}", archetype)
        .replace("{atmosphere}", atmosphere)
        .replace("{palette}", palette)
        .replace("{modifier}", palette)
    )
    return {
        "prompt": prompt,
        "negative_prompt": ", ".join(s["negative_prompt"]),
        "archetype": archetype,
        "atmosphere": atmosphere,
        "keywords": prompt_keywords(archetype, atmosphere),
    }


def _prerendered_card(style: str, deck_id: int) -> DrawnCard:
    return DrawnCard(
        deck_id=deck_id,
        word=decks.bound_word(style, deck_id),
        deck_style=style,
        image_url=decks.image_url_for(style, deck_id),
    )


def _draw_prerendered_id(style: str, exclude_ids: Collection[int], rng: Optional[random.Random]) -> int:
    ids = decks.deck_ids(style)
    try:
        return pick_excluding(ids, exclude_ids, rng)
    except ExhaustedPool:
        log.info("%s deck exhausted (%d excluded), starting over", style, len(set(exclude_ids)))
        return pick_excluding(ids, (), rng)


def compose_card(
    style: str,
    exclude_ids: Optional[Collection[int]] = None,
    rng: Optional[random.Random] = None,
) -> DrawnCard:
    """Compose one card for ``style``.

    Args:
        style: abstract, figurative, classic or saga
        exclude_ids: pre-rendered ids already used (ignored for generative styles)
        rng: optional random source

    Returns:
        DrawnCard; generative cards still need their image generated

    Raises:
        InvalidStyle: unknown style
    """
    if style not in DECK_STYLES:
        raise InvalidStyle(style)

    if style not in GENERATIVE_STYLES:
        deck_id = _draw_prerendered_id(style, exclude_ids or (), rng)
        return _prerendered_card(style, deck_id)

    word = pick_random_word(rng)
    image = build_image_prompt(style, rng)
    return DrawnCard(
        word=WordCard(en=word.en, cn=word.cn),
        image_prompt=image["prompt"],
        negative_prompt=image["negative_prompt"],
        prompt_keywords=image["keywords"],
        deck_style=style,
    )


def compose_cards(count: int, style: str, rng: Optional[random.Random] = None) -> List[DrawnCard]:
    """Compose ``count`` cards; pre-rendered decks never repeat an id in one batch."""
    if style not in DECK_STYLES:
        raise InvalidStyle(style)
    if style in GENERATIVE_STYLES:
        if count < 1:
            raise ValidationError(f"count must be at least 1, got {count}")
        return [compose_card(style, rng=rng) for _ in range(count)]

    size = decks.deck_size(style)
    if count < 1 or count > size:
        raise ValidationError(f"count must be between 1 and {size} for {style}, got {count}")
    return [_prerendered_card(style, i) for i in sample_distinct(decks.deck_ids(style), count, rng)]
