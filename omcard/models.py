import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DeckStyle = Literal["abstract", "figurative", "classic", "saga"]
Mode = Literal["single", "flip", "hero"]
Role = Literal["user", "assistant"]
Zone = Literal["comfort", "discomfort"]

GENERATIVE_STYLES = ("abstract", "figurative")
PRERENDERED_STYLES = ("classic", "saga")
DECK_STYLES = GENERATIVE_STYLES + PRERENDERED_STYLES


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WordEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    en: str
    cn: str


class WordCard(ApiModel):
    en: str
    cn: str


class DrawnCard(ApiModel):
    card_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    deck_id: Optional[int] = None
    word: Optional[WordCard] = None
    image_prompt: str = ""
    negative_prompt: str = ""
    prompt_keywords: List[str] = Field(default_factory=list)
    deck_style: str
    image_url: Optional[str] = None


class ChatMessage(BaseModel):
    role: Role
    content: str


class StoryEntry(ApiModel):
    step: int
    card: DrawnCard
    question: str
    user_answer: str


class StoryLogItem(ApiModel):
    step: int
    answer: str
    question: Optional[str] = None


class Zones(ApiModel):
    comfort: Optional[WordCard] = None
    discomfort: Optional[WordCard] = None


class DrawRequest(ApiModel):
    provider: Optional[str] = None
    deck_style: str = "abstract"
    exclude_ids: List[int] = Field(default_factory=list)


class DrawResponse(ApiModel):
    card_id: str
    word: Optional[WordCard] = None
    image_url: str
    prompt_keywords: List[str] = Field(default_factory=list)


class ChatRequest(ApiModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    provider: Optional[str] = None
    mode: Mode = "single"
    phase: Optional[str] = None
    step: Optional[int] = None
    word: Optional[WordCard] = None
    prompt_keywords: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    story_log: List[StoryLogItem] = Field(default_factory=list)
    turn_count: Optional[int] = None
    zones: Optional[Zones] = None
