"""Tests for the three consultation modes, driven with fake generators."""

import pytest

from omcard.config import Settings
from omcard.decks import SAGA_CARD_COUNT
from omcard.errors import GenerationFailure, InvalidTransition
from omcard.facilitator import (
    HERO_BLESSING_FALLBACK,
    HERO_REFLECTION_OPENER,
    HERO_SUMMARY_FALLBACK,
    SINGLE_FALLBACK,
)
from omcard.modes.base import Facilitator
from omcard.modes.flip import (
    NO_CARDS_NOTICE,
    READY_PROMPT,
    SWAP_DELAY_S,
    ZONES_NOT_FILLED_NOTICE,
    ParadoxFlip,
)
from omcard.modes.hero import SILENCE, HeroJourney
from omcard.modes.single import SingleDraw


class TestSingleDraw:
    def test_draw_and_talk(self, dealer, facilitator, text_generator):
        machine = SingleDraw(dealer, facilitator, style="abstract")
        card = machine.draw()
        assert machine.stage == "drawn"
        assert card.image_url.startswith("data:image/png")

        reply = machine.send("我看到一片雾")
        assert reply == text_generator.default
        assert machine.turn_count == 1
        assert card.word.cn in text_generator.last_prompt
        assert "Phase: Observation." in text_generator.last_prompt

    def test_failed_draw_then_retry(self, dealer, facilitator, image_generator):
        machine = SingleDraw(dealer, facilitator)
        image_generator.fail = True
        assert machine.draw() is None
        assert machine.stage == "error"
        assert machine.notice

        with pytest.raises(InvalidTransition):
            machine.send("hello")

        image_generator.fail = False
        assert machine.retry() is not None
        assert machine.stage == "drawn"
        assert machine.notice is None

    def test_text_failure_uses_fallback(self, dealer, facilitator, text_generator):
        machine = SingleDraw(dealer, facilitator, style="classic")
        machine.draw()
        text_generator.fail = True
        assert machine.send("嗯") == SINGLE_FALLBACK
        assert [m.role for m in machine.messages] == ["user", "assistant"]

    def test_draw_again_starts_fresh(self, dealer, facilitator):
        machine = SingleDraw(dealer, facilitator, style="classic")
        machine.draw()
        machine.send("第一张")
        machine.draw()
        assert machine.messages == []

    def test_empty_message_rejected(self, dealer, facilitator):
        machine = SingleDraw(dealer, facilitator, style="classic")
        machine.draw()
        with pytest.raises(ValueError):
            machine.send("   ")

    def test_set_style_resets_and_switches_deck(self, dealer, facilitator):
        machine = SingleDraw(dealer, facilitator, style="abstract")
        machine.draw()
        machine.send("雾")
        machine.set_style("classic")
        assert machine.stage == "idle"
        assert machine.card is None
        assert machine.messages == []

        card = machine.draw()
        assert card.deck_style == "classic"
        assert card.image_url == f"/cards/classic/{card.deck_id}.jpg"


def _flip(dealer, facilitator, **kwargs):
    slept = []
    machine = ParadoxFlip(dealer, facilitator, sleep=slept.append, **kwargs)
    return machine, slept


def _setup_classic(machine):
    cards = machine.choose("classic")
    machine.select(cards[0].card_id)
    machine.select(cards[1].card_id)
    return cards


class TestParadoxFlip:
    def test_classic_deals_five_distinct(self, dealer, facilitator):
        machine, _ = _flip(dealer, facilitator)
        cards = machine.choose("classic")
        assert machine.stage == "selecting"
        assert len(cards) == 5
        assert len({c.deck_id for c in cards}) == 5

    def test_select_toggles(self, dealer, facilitator):
        machine, _ = _flip(dealer, facilitator)
        cards = machine.choose("classic")
        machine.select(cards[0].card_id)
        machine.select(cards[0].card_id)
        assert machine.selected == []
        machine.select(cards[2].card_id)
        machine.select(cards[3].card_id)
        assert machine.stage == "setup"

    def test_confirm_needs_both_zones(self, dealer, facilitator, text_generator):
        machine, _ = _flip(dealer, facilitator)
        cards = _setup_classic(machine)
        machine.assign(cards[0].card_id, "discomfort")
        assert machine.confirm() is False
        assert machine.stage == "setup"
        assert machine.notice == ZONES_NOT_FILLED_NOTICE
        assert text_generator.calls == []

        machine.assign(cards[1].card_id, "comfort")
        assert machine.confirm() is True
        assert machine.stage == "initial"
        assert [m.role for m in machine.messages] == ["assistant"]
        sent = text_generator.calls[-1]["messages"]
        assert sent[-1].content == READY_PROMPT

    def test_swap_positions_twice_restores_layout(self, dealer, facilitator):
        machine, _ = _flip(dealer, facilitator)
        cards = _setup_classic(machine)
        machine.assign(cards[0].card_id, "discomfort")
        machine.assign(cards[1].card_id, "comfort")
        left, right = machine.left, machine.right
        machine.swap_positions()
        assert (machine.left, machine.right) == (right, left)
        machine.swap_positions()
        assert (machine.left, machine.right) == (left, right)

    def test_full_protocol(self, dealer, facilitator, text_generator):
        machine, slept = _flip(dealer, facilitator, swap_delay_s=SWAP_DELAY_S)
        cards = _setup_classic(machine)
        machine.assign(cards[0].card_id, "discomfort")
        machine.assign(cards[1].card_id, "comfort")
        machine.confirm()

        assert not machine.swap_available
        with pytest.raises(InvalidTransition):
            machine.swap()

        text_generator.replies = ["要不要把两张卡交换一下位置，再看看？"]
        machine.send("左边那张让我紧张")
        assert machine.swap_available

        machine.swap()
        assert slept == [1.2]
        assert machine.stage == "swapped"
        assert machine.has_swapped
        assert machine.left.card_id == cards[1].card_id
        assert machine.right.card_id == cards[0].card_id
        assert machine.zones.comfort == cards[0].word
        assert "swapped places" in text_generator.last_prompt

        assert not machine.conclusion_available
        with pytest.raises(InvalidTransition):
            machine.conclude()

        text_generator.replies = ["也许它们是一体两面？"]
        machine.send("好像没那么可怕了")
        assert machine.conclusion_available
        machine.conclude()
        assert machine.stage == "conclusion"

        summary = machine.summary()
        assert summary["hasSwapped"] is True
        assert summary["comfort"]["cardId"] == cards[0].card_id

    def test_swap_does_not_wait_by_default(self, dealer, facilitator, text_generator):
        machine, slept = _flip(dealer, facilitator)
        cards = _setup_classic(machine)
        machine.assign(cards[0].card_id, "discomfort")
        machine.assign(cards[1].card_id, "comfort")
        machine.confirm()
        text_generator.replies = ["交换试试？"]
        machine.send("一")
        machine.swap()
        assert slept == []
        assert machine.stage == "swapped"

    def test_protocol_completes_while_text_generation_is_down(self, dealer, facilitator, text_generator):
        machine, _ = _flip(dealer, facilitator)
        cards = _setup_classic(machine)
        machine.assign(cards[0].card_id, "discomfort")
        machine.assign(cards[1].card_id, "comfort")
        text_generator.fail = True

        machine.confirm()
        assert not machine.swap_available
        machine.send("左边那张让我不安")
        assert machine.swap_available
        machine.swap()

        assert not machine.conclusion_available
        machine.send("换了位置以后轻松一些")
        assert machine.conclusion_available
        machine.conclude()
        assert machine.stage == "conclusion"
        assert machine.messages[-1].content.endswith("Om.")

    def test_phase_turns_reset_per_phase(self, dealer, facilitator, text_generator):
        machine, _ = _flip(dealer, facilitator)
        cards = _setup_classic(machine)
        machine.assign(cards[0].card_id, "discomfort")
        machine.assign(cards[1].card_id, "comfort")
        machine.confirm()
        text_generator.replies = ["交换试试？"]
        machine.send("一")
        assert machine.phase_turns == 1
        machine.swap()
        assert machine.phase_turns == 0

    def test_ai_source_tolerates_partial_failure(self, dealer, facilitator, image_generator):
        calls = {"n": 0}
        original = image_generator.generate

        def flaky(prompt, negative_prompt=None):
            calls["n"] += 1
            if calls["n"] == 2:
                raise GenerationFailure()
            return original(prompt, negative_prompt)

        image_generator.generate = flaky
        machine, _ = _flip(dealer, facilitator)
        cards = machine.choose("ai")
        assert len(cards) == 2
        assert machine.stage == "selecting"

    def test_ai_source_all_failed_back_to_init(self, dealer, facilitator, image_generator):
        image_generator.fail = True
        machine, _ = _flip(dealer, facilitator)
        assert machine.choose("ai") == []
        assert machine.stage == "init"
        assert machine.notice == NO_CARDS_NOTICE

    def test_legacy_skips_selection(self, dealer, facilitator):
        machine, _ = _flip(dealer, facilitator)
        machine.choose("legacy")
        assert machine.stage == "setup"
        assert len(machine.selected) == 2

    def test_restart(self, dealer, facilitator):
        machine, _ = _flip(dealer, facilitator)
        _setup_classic(machine)
        machine.restart()
        assert machine.stage == "init"
        assert machine.selected == []


class TestHeroJourney:
    def test_ten_chapters_then_story(self, dealer, facilitator, text_generator):
        machine = HeroJourney(dealer, facilitator)
        machine.start()
        assert machine.stage == "playing"

        for i in range(1, 11):
            assert machine.step == i
            assert len(machine.story_log) == i - 1
            if i == 4:
                machine.skip()
            else:
                machine.answer(f"第{i}章")

        assert machine.stage == "summary"
        assert len(machine.story_log) == 10
        assert [e.step for e in machine.story_log] == list(range(1, 11))
        assert machine.story_log[3].user_answer == SILENCE

        deck_ids = [e.card.deck_id for e in machine.story_log]
        assert len(set(deck_ids)) == 10
        assert all(1 <= d <= SAGA_CARD_COUNT for d in deck_ids)

        story_call = text_generator.calls[-1]
        assert story_call["kind"] == "complete"
        assert "第10章" in story_call["system_prompt"]

    def test_chapter_question_sees_card(self, dealer, text_generator, tmp_path):
        saga = tmp_path / "cards" / "saga"
        saga.mkdir(parents=True)
        for deck_id in range(1, SAGA_CARD_COUNT + 1):
            (saga / f"{deck_id}.jpg").write_bytes(b"\xff\xd8\xff\xe0fake")
        facilitator = Facilitator.from_settings(text_generator, Settings(cards_dir=tmp_path / "cards"))

        machine = HeroJourney(dealer, facilitator)
        card = machine.start()
        call = text_generator.calls[-1]
        assert card.image_url.startswith("/cards/saga/")
        assert call["vision_image"].startswith("data:image/jpeg;base64,")
        assert "Current chapter: 【英雄 / The Hero】" in call["system_prompt"]
        assert machine.current_question == text_generator.default

    def test_chapter_question_without_card_file(self, dealer, text_generator, tmp_path):
        facilitator = Facilitator.from_settings(text_generator, Settings(cards_dir=tmp_path))
        machine = HeroJourney(dealer, facilitator)
        machine.start()
        assert text_generator.calls[-1]["vision_image"] is None
        assert machine.stage == "playing"

    def test_story_failure_falls_back(self, dealer, facilitator, text_generator):
        machine = HeroJourney(dealer, facilitator)
        machine.start()
        for i in range(9):
            machine.answer("嗯")
        text_generator.fail = True
        machine.answer("最后")
        assert machine.summary == HERO_SUMMARY_FALLBACK
        assert machine.stage == "summary"

    def test_reflection_then_blessing(self, dealer, facilitator, text_generator):
        machine = HeroJourney(dealer, facilitator)
        machine.start()
        for _ in range(10):
            machine.skip()

        text_generator.fail = True
        assert machine.talk() == HERO_REFLECTION_OPENER
        text_generator.fail = False
        machine.reflect("我想起了小时候")
        assert machine.reflection_turns == 1
        assert machine.stage == "reflection"

        text_generator.fail = True
        assert machine.end_reflection() == HERO_BLESSING_FALLBACK
        assert machine.stage == "blessing"

    def test_skip_reflection(self, dealer, facilitator):
        machine = HeroJourney(dealer, facilitator)
        machine.start()
        for _ in range(10):
            machine.skip()
        machine.skip_reflection()
        assert machine.stage == "blessing"
        with pytest.raises(InvalidTransition):
            machine.talk()

    def test_empty_answer_rejected(self, dealer, facilitator):
        machine = HeroJourney(dealer, facilitator)
        machine.start()
        with pytest.raises(ValueError):
            machine.answer("  ")
        assert machine.story_log == []

    def test_restart_clears_used_cards(self, dealer, facilitator):
        machine = HeroJourney(dealer, facilitator)
        machine.start()
        machine.answer("a")
        machine.restart()
        assert machine.stage == "intro"
        assert machine.used_ids == set()
        assert machine.story_log == []
