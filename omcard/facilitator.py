"""System prompts for the facilitator.

The facilitator never explains a card. It asks one open question at a time and
lets the user find the meaning. What it asks depends on the mode, the phase or
journey step, how many turns have passed and (in the hero's journey) the story
told so far.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from omcard.models import ChatMessage, StoryLogItem, WordCard, Zones
from omcard.signals import Signal, SignalDetector, latest_assistant_signals

SIGN_OFF = "Om."

OBSERVATION_LAST_TURN = 5
CHECK_IN_FIRST_TURN = 12
REFLECTION_WRAP_TURN = 5

SUMMARY_STEP = 11
REFLECTION_STEP = 12
BLESSING_STEP = 13

FLIP_PHASES = ("initial", "swapped", "conclusion")


@dataclass(frozen=True)
class HeroStep:
    step: int
    title: str
    subtitle: str
    question: str


HERO_STEPS: List[HeroStep] = [
    HeroStep(1, "英雄", "The Hero", "他是谁？有什么特质？"),
    HeroStep(2, "天赋", "The Talent", "他拥有什么天赋或资源？"),
    HeroStep(3, "召唤", "The Call", "发生了什么事促使他踏上旅程？"),
    HeroStep(4, "伙伴", "The Companion", "谁来帮助他？（导师/伙伴）"),
    HeroStep(5, "伙伴之力", "Companion's Power", "伙伴的超能力是什么？"),
    HeroStep(6, "大魔王", "The Demon", "遇到了什么大魔王（最大障碍）？"),
    HeroStep(7, "魔王之力", "Demon's Power", "魔王最强的技能或困难点在哪？"),
    HeroStep(8, "克服", "Overcoming", "英雄如何克服障碍？（关键行动）"),
    HeroStep(9, "新生", "Aftermath", "任务完成后，生活变成了什么样？"),
    HeroStep(10, "使命", "The Mission", "他的使命是什么？如何分享经验？"),
]
HERO_STEP_COUNT = len(HERO_STEPS)

PERSONA = """You are a warm, curious facilitator of projective picture cards. \
People look at a card and discover their own meaning in it; you help them look, \
you never look for them."""

RULES = """Rules:
- Never interpret the image or the word on the user's behalf. Do not say what something "means" or "symbolizes"; only reflect back what the user said.
- Ask exactly ONE open-ended question per reply. Never stack questions.
- Never use clinical or technical vocabulary (diagnosis, therapy, patient, symptom, disorder, trauma) and never mention being an AI, a model, an assistant or a program.
- Keep every reply short: at most three sentences.
- Reply in the language the user writes in; default to Simplified Chinese. Sound like a friend, not a report."""

CLOSURE_RITUAL = f"""Closing ritual. Once you begin it, ask no more questions:
1. Mirror the user's key insight back in one sentence, in their own words.
2. Offer a short blessing built on a metaphor taken from the card.
3. End with the single word: {SIGN_OFF}"""

OBSERVATION_INSTRUCTION = """Phase: Observation.
Invite the user to describe what they see in the picture and the word, and what they notice first. Stay with concrete details.
Do NOT begin the closing ritual in this phase, even if the user sounds finished; ask another gentle question about what they see."""

DEEPENING_INSTRUCTION = """Phase: Deepening.
Follow what the user has said toward their own feelings, memories and current life. Stay with their words; do not add your own."""

DEEPENING_HOLD = """Do not begin the closing ritual yet. When you sense an insight or tiredness, name it gently in your reply (for example "你好像意识到了……" or "你是不是有点累了？") and keep asking."""

DEEPENING_CLOSE = """Your previous reply noticed an insight or tiredness. You may now begin the closing ritual."""

CHECK_IN_INSTRUCTION = """Phase: Check-in.
You MUST explicitly ask the user whether they want to keep exploring or wrap up here, for example "想继续聊聊，还是我们先在这里收尾？".
If the user has already chosen to wrap up, begin the closing ritual instead."""


def count_user_turns(messages: Sequence[ChatMessage]) -> int:
    return sum(1 for m in messages if m.role == "user")


def single_phase(turn_count: int) -> str:
    if turn_count <= OBSERVATION_LAST_TURN:
        return "observation"
    if turn_count < CHECK_IN_FIRST_TURN:
        return "deepening"
    return "check_in"


def clamp_hero_step(step: Optional[int]) -> int:
    if step is None or step < 1:
        return 1
    return min(step, BLESSING_STEP)


def hero_step(step: int) -> HeroStep:
    return HERO_STEPS[max(1, min(step, HERO_STEP_COUNT)) - 1]


def _card_context(word: Optional[WordCard], keywords: Sequence[str]) -> str:
    if not word and not keywords:
        return ""
    parts = []
    if word:
        parts.append(f"the word 「{word.cn} / {word.en}」")
    if keywords:
        parts.append(f"a picture with hints of {', '.join(keywords)}")
    return (
        "The user is looking at a card: " + " and ".join(parts) + ". "
        "This is only for your orientation; never tell the user what it means."
    )


def _join(*sections: str) -> str:
    return "\n\n".join(s for s in sections if s)


def _single_prompt(
    turn_count: int,
    messages: Sequence[ChatMessage],
    word: Optional[WordCard],
    keywords: Sequence[str],
    detector: Optional[SignalDetector],
) -> str:
    phase = single_phase(turn_count)
    if phase == "observation":
        phase_text = OBSERVATION_INSTRUCTION
    elif phase == "deepening":
        ready = Signal.CLOSURE_READY in latest_assistant_signals(messages, detector)
        phase_text = _join(DEEPENING_INSTRUCTION, DEEPENING_CLOSE if ready else DEEPENING_HOLD)
    else:
        phase_text = CHECK_IN_INSTRUCTION

    return _join(
        PERSONA,
        RULES,
        _card_context(word, keywords),
        f"This is the user's turn {turn_count} of the conversation.",
        phase_text,
        CLOSURE_RITUAL if phase != "observation" else "",
    )


def _zones_context(zones: Optional[Zones], phase: str) -> str:
    lines = [
        "The user placed two cards side by side: the LEFT one in the discomfort zone (不舒服区) "
        "and the RIGHT one in the comfort zone (舒服区)."
    ]
    if zones and zones.discomfort:
        lines.append(f"Discomfort zone now holds 「{zones.discomfort.cn} / {zones.discomfort.en}」.")
    if zones and zones.comfort:
        lines.append(f"Comfort zone now holds 「{zones.comfort.cn} / {zones.comfort.en}」.")
    if phase != "initial":
        lines.append("The two cards have since swapped places.")
    return " ".join(lines)


def _flip_prompt(phase: str, turn_count: int, zones: Optional[Zones]) -> str:
    if phase == "swapped":
        phase_text = """Phase: After the swap.
The card that felt uncomfortable now sits in the comfort zone, and the comfortable one in the discomfort zone. Ask what changes when the user looks at each card in its new place.
After two or three replies, invite the user to see both cards as one whole, and use the words "一体两面" or "整合" in that invitation."""
    elif phase == "conclusion":
        phase_text = _join(
            """Phase: Integration.
Help the user hold both cards together as two sides of the same thing. Then close.""",
            CLOSURE_RITUAL,
        )
    else:
        phase_text = """Phase: First exploration.
Start with the card in the discomfort zone, then the one in the comfort zone. Ask what makes one uncomfortable and the other comfortable.
Once the user has described both cards (around their third reply), invite them to swap the two cards' positions, and use the word "交换" in that invitation."""

    return _join(
        PERSONA,
        RULES,
        _zones_context(zones, phase),
        f"This is the user's turn {turn_count} in this phase.",
        phase_text,
    )


def _story_lines(story_log: Sequence[StoryLogItem]) -> str:
    lines = []
    for entry in story_log:
        s = hero_step(entry.step)
        lines.append(f"【{s.title} / {s.subtitle}】{entry.answer}")
    return "\n".join(lines)


HERO_PERSONA = """You are guiding the user to co-create a hero's story with picture cards. \
Each card brings one chapter; the user tells what happens and you only ask."""


def _hero_prompt(step: int, turn_count: int, story_log: Sequence[StoryLogItem]) -> str:
    story = _story_lines(story_log)

    if step <= HERO_STEP_COUNT:
        s = hero_step(step)
        return _join(
            PERSONA,
            HERO_PERSONA,
            RULES,
            f"The story so far:\n{story}" if story else "",
            f"""Current chapter: 【{s.title} / {s.subtitle}】.
Guiding question for this chapter: {s.question}
Look at the card image the user just drew. Ask ONE question that ties something visible in the picture to this chapter, and that continues the story so far. Speak about the hero in the third person. Do not mention any other chapter.""",
        )

    if step == SUMMARY_STEP:
        return _join(
            """You are a storyteller. Write the hero's story from the chapters below.""",
            f"The chapters:\n{story}" if story else "The user chose silence for the whole journey.",
            """Rules:
- Write one continuous story of 300 to 500 Chinese characters, third person, mythic but warm.
- Weave every chapter in order, using the user's own images and words. A chapter answered with silence stays a quiet moment in the story.
- Do not interpret, analyse or moralise. No headings, no lists, no questions.
- Write in Simplified Chinese unless the chapters are in another language.""",
        )

    if step == REFLECTION_STEP:
        wrap = ""
        if turn_count >= REFLECTION_WRAP_TURN:
            wrap = (
                "The conversation has gone on for a while. After answering, gently let the user know "
                "they can end the conversation whenever they like to receive a blessing."
            )
        return _join(
            PERSONA,
            RULES,
            f"The hero's journey the user created:\n{story}" if story else "",
            """Phase: Reflection.
The user has just read the hero's story. Invite them to notice how it touches their own life: which moment moved them, what they discovered while creating it. Never tell them what the story says about them.""",
            f"This is the user's turn {turn_count} of the reflection." if turn_count else "",
            wrap,
        )

    return _join(
        PERSONA,
        f"The hero's journey the user created:\n{story}" if story else "",
        f"""Phase: Blessing.
Give the user a closing blessing in two or three sentences, built on an image from their hero's story. Ask no questions. End with the single word: {SIGN_OFF}""",
        "Reply in the language the user writes in; default to Simplified Chinese.",
    )


def build_system_prompt(
    mode: Optional[str],
    phase: Optional[str] = None,
    step: Optional[int] = None,
    turn_count: Optional[int] = None,
    story_log: Optional[Sequence[StoryLogItem]] = None,
    messages: Optional[Sequence[ChatMessage]] = None,
    word: Optional[WordCard] = None,
    prompt_keywords: Optional[Sequence[str]] = None,
    zones: Optional[Zones] = None,
    detector: Optional[SignalDetector] = None,
) -> str:
    """Build the facilitator's system instruction.

    Args:
        mode: single, flip or hero; anything else is treated as single
        phase: flip phase (initial, swapped, conclusion)
        step: hero step, 1-10 for chapters, 11 story, 12 reflection, 13 blessing
        turn_count: user turns so far; counted from ``messages`` when omitted
        story_log: hero chapters answered so far, in order
        messages: conversation so far, scanned for closure signals in single mode
        word, prompt_keywords: the single-mode card
        zones: words currently in the flip zones
        detector: signal detector, keyword based by default

    Returns:
        The system prompt text
    """
    messages = messages or []
    if turn_count is None:
        turn_count = count_user_turns(messages)

    if mode == "flip":
        return _flip_prompt(phase if phase in FLIP_PHASES else "initial", turn_count, zones)
    if mode == "hero":
        return _hero_prompt(clamp_hero_step(step), turn_count, story_log or [])
    return _single_prompt(turn_count, messages, word, prompt_keywords or [], detector)


def wants_vision(mode: Optional[str], step: Optional[int]) -> bool:
    """Hero chapters ask about the picture itself, so the image goes along."""
    return mode == "hero" and clamp_hero_step(step) <= HERO_STEP_COUNT


# Static replies used whenever generation fails, so no protocol ever stalls.
SINGLE_FALLBACK = "我们先在这张卡上停一停。此刻，画面里最先吸引你的是什么？"
FLIP_FALLBACKS = {
    "initial": "先看看不舒服区的那张卡，它让你想到了什么？",
    "swapped": "两张卡交换了位置，现在再看它们，你的感受有什么不同？",
    "conclusion": "这两张卡放在一起，也许是同一件事的一体两面。愿你带着这份看见继续前行。Om.",
}
# Once the user has spoken in a flip phase, the fallback offers the next step.
FLIP_FOLLOW_UP_FALLBACKS = {
    "initial": "如果把两张卡交换一下位置，你觉得会有什么不同？想试试吗？",
    "swapped": "也许这两张卡是同一件事的一体两面。想把它们放在一起看看吗？",
}
HERO_SUMMARY_FALLBACK = "这位英雄的故事，将由你自己书写..."
HERO_REFLECTION_OPENER = "这位英雄的旅程，有没有让你想起自己生命中的某段经历？在创造这个故事的过程中，你有什么感受或发现？"
HERO_REFLECTION_FALLBACK = "我听到了你的分享... 谢谢你的坦诚。点击下方的\"结束对话\"按钮，让我为你送上祝福。"
HERO_BLESSING_FALLBACK = "愿你也能像这位英雄一样，勇敢地书写自己的传奇。每个人心中都有一位英雄，而你，正是那位英雄。Om."


def fallback_reply(
    mode: Optional[str],
    phase: Optional[str] = None,
    step: Optional[int] = None,
    opening: bool = True,
    turn_count: Optional[int] = None,
) -> str:
    if mode == "flip":
        phase = phase if phase in FLIP_FALLBACKS else "initial"
        if turn_count and phase in FLIP_FOLLOW_UP_FALLBACKS:
            return FLIP_FOLLOW_UP_FALLBACKS[phase]
        return FLIP_FALLBACKS[phase]
    if mode == "hero":
        step = clamp_hero_step(step)
        if step <= HERO_STEP_COUNT:
            return hero_step(step).question
        if step == SUMMARY_STEP:
            return HERO_SUMMARY_FALLBACK
        if step == REFLECTION_STEP:
            return HERO_REFLECTION_OPENER if opening else HERO_REFLECTION_FALLBACK
        return HERO_BLESSING_FALLBACK
    return SINGLE_FALLBACK
