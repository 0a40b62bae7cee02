"""Image-prompt pools for the generative deck styles.

Each style keeps three independent lists (archetypes, atmospheres and either
color palettes or style modifiers) plus a template and a negative-prompt list.
Figurative atmospheres are grouped by mood and drawn through a weighted bucket
choice so the bright/neutral/dark split stays auditable in the data file.
"""

from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Any, Dict, Optional

from omcard.errors import InvalidStyle, PoolDataError
from omcard.models import GENERATIVE_STYLES
from omcard.utils.rng import pick, weighted_choice


DATA_PATH = Path(__file__).resolve().parent / "data" / "prompt_pool.json"


def _load_json() -> Dict[str, Any]:
    try:
        raw = DATA_PATH.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise PoolDataError(f"Prompt pool file not found at: {DATA_PATH}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PoolDataError(f"Invalid JSON in {DATA_PATH}: {e}") from e

    styles = data.get("styles") or {}
    for style in GENERATIVE_STYLES:
        if style not in styles:
            raise PoolDataError(f"Prompt pool is missing style: {style}")
    return data


_POOL_CACHE: Optional[Dict[str, Any]] = None


def get_pool() -> Dict[str, Any]:
    global _POOL_CACHE
    if _POOL_CACHE is None:
        data = _load_json()
        validate_pool(data)
        _POOL_CACHE = data
    return _POOL_CACHE


def get_style(style: str) -> Dict[str, Any]:
    if style not in GENERATIVE_STYLES:
        raise InvalidStyle(style)
    return get_pool()["styles"][style]


def validate_pool(data: Optional[Dict[str, Any]] = None) -> None:
    styles = (data or get_pool())["styles"]
    for name in GENERATIVE_STYLES:
        s = styles[name]
        for key in ("template", "archetypes", "atmospheres", "negative_prompt"):
            if not s.get(key):
                raise PoolDataError(f"Style {name} has empty {key}")

    abstract = styles["abstract"]
    if not abstract.get("palettes"):
        raise PoolDataError("Style abstract has no palettes")

    figurative = styles["figurative"]
    if not figurative.get("modifiers"):
        raise PoolDataError("Style figurative has no modifiers")
    moods = figurative["atmospheres"]
    weights = figurative.get("mood_weights") or {}
    if set(moods) != set(weights):
        raise PoolDataError("Figurative mood_weights must cover every atmosphere mood")
    for mood, entries in moods.items():
        if not entries:
            raise PoolDataError(f"Figurative mood {mood} has no atmospheres")


def mood_weights() -> Dict[str, float]:
    return dict(get_style("figurative")["mood_weights"])


def pick_random_archetype(style: str, rng: Optional[random.Random] = None) -> str:
    return pick(get_style(style)["archetypes"], rng)


def pick_random_atmosphere(style: str, rng: Optional[random.Random] = None) -> str:
    atmospheres = get_style(style)["atmospheres"]
    if isinstance(atmospheres, dict):
        mood = weighted_choice(mood_weights(), rng)
        return pick(atmospheres[mood], rng)
    return pick(atmospheres, rng)


def pick_random_palette(style: str, rng: Optional[random.Random] = None) -> str:
    """Color palette for abstract cards, style modifier for figurative ones."""
    s = get_style(style)
    return pick(s.get("palettes") or s["modifiers"], rng)


def mood_of(atmosphere: str) -> Optional[str]:
    for mood, entries in get_style("figurative")["atmospheres"].items():
        if atmosphere in entries:
            return mood
    return None
