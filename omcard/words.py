"""Word pool loader + helpers.

- Loads the 88 bilingual words from omcard/data/words.json
- Provides: get_words(), get_word(word_id), pick_random_word()
"""

from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

from omcard.errors import PoolDataError
from omcard.models import WordEntry
from omcard.utils.rng import pick


DATA_PATH = Path(__file__).resolve().parent / "data" / "words.json"
WORD_COUNT = 88


def _load_json() -> Dict[str, Any]:
    try:
        raw = DATA_PATH.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise PoolDataError(f"Word data file not found at: {DATA_PATH}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PoolDataError(f"Invalid JSON in {DATA_PATH}: {e}") from e

    if "words" not in data or not isinstance(data["words"], list) or len(data["words"]) != WORD_COUNT:
        raise PoolDataError(f"Word data must contain exactly {WORD_COUNT} words.")
    return data


_WORDS_CACHE: Optional[List[WordEntry]] = None


def get_words() -> List[WordEntry]:
    global _WORDS_CACHE
    if _WORDS_CACHE is None:
        words = [WordEntry(**w) for w in _load_json()["words"]]
        ids = [w.id for w in words]
        if len(ids) != len(set(ids)):
            raise PoolDataError("Duplicate word ids detected.")
        _WORDS_CACHE = words
    return list(_WORDS_CACHE)


def get_word(word_id: int) -> WordEntry:
    for w in get_words():
        if w.id == word_id:
            return w
    raise PoolDataError(f"Unknown word id: {word_id}")


def pick_random_word(rng: Optional[random.Random] = None) -> WordEntry:
    """Uniform draw with replacement; the same word may come up twice in a session."""
    return pick(get_words(), rng)
