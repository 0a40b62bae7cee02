"""Turn a composed card into a finished one by generating its picture."""

from __future__ import annotations

import logging
import random
from typing import Collection, Optional

from omcard.ai import ImageGenerator
from omcard.composer import compose_card
from omcard.errors import GenerationFailure
from omcard.models import GENERATIVE_STYLES, DrawnCard

log = logging.getLogger("omcard.drawing")


def draw_card(
    style: str,
    image_generator: ImageGenerator,
    exclude_ids: Optional[Collection[int]] = None,
    rng: Optional[random.Random] = None,
) -> DrawnCard:
    """Compose a card and, for generative styles, render its image.

    A failed render discards the card and raises GenerationFailure; there is
    no automatic retry.
    """
    card = compose_card(style, exclude_ids=exclude_ids, rng=rng)
    log.info(
        "drawing %s card word=%s keywords=%s deck_id=%s",
        style,
        card.word.en if card.word else None,
        card.prompt_keywords,
        card.deck_id,
    )

    if style not in GENERATIVE_STYLES:
        return card

    try:
        card.image_url = image_generator.generate(card.image_prompt, card.negative_prompt)
    except GenerationFailure:
        raise
    except Exception as e:
        log.exception("image generation error for card %s", card.card_id)
        raise GenerationFailure() from e
    return card
