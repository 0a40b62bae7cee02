"""Tests for the HTTP surface: /api/draw and /api/chat."""

import re

from omcard.facilitator import CHECK_IN_INSTRUCTION

CLASSIC_URL = re.compile(r"^/cards/classic/([1-9]|[1-7][0-9]|8[0-8])\.jpg$")


def _chat_body(**overrides):
    body = {"messages": [{"role": "user", "content": "我看到一扇门"}], "mode": "single"}
    body.update(overrides)
    return body


class TestDraw:
    def test_classic_draw(self, client, providers):
        response = client.post("/api/draw", json={"deckStyle": "classic"})
        assert response.status_code == 200
        data = response.json()
        assert CLASSIC_URL.match(data["imageUrl"])
        assert data["word"]["cn"]
        assert data["cardId"]
        assert providers.image_generator.calls == []
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_generative_draw(self, client, providers):
        response = client.post("/api/draw", json={"deckStyle": "figurative", "provider": "doubao"})
        assert response.status_code == 200
        data = response.json()
        assert data["imageUrl"].startswith("data:image/png;base64,")
        assert len(data["promptKeywords"]) == 2
        prompt, negative = providers.image_generator.calls[0]
        assert "horror" in negative
        assert "doubao" in providers.requested

    def test_empty_body_uses_defaults(self, client, providers):
        response = client.post("/api/draw")
        assert response.status_code == 200
        assert len(providers.image_generator.calls) == 1

    def test_invalid_style(self, client):
        response = client.post("/api/draw", json={"deckStyle": "oil"})
        assert response.status_code == 400
        assert "oil" in response.json()["error"]

    def test_generation_failure(self, client, providers):
        providers.image_generator.fail = True
        response = client.post("/api/draw", json={"deckStyle": "abstract"})
        assert response.status_code == 500
        assert response.json() == {"error": "图片生成失败，请稍后重试"}

    def test_sixth_draw_rate_limited(self, client):
        for _ in range(5):
            assert client.post("/api/draw", json={"deckStyle": "classic"}).status_code == 200
        response = client.post("/api/draw", json={"deckStyle": "classic"})
        assert response.status_code == 429
        data = response.json()
        assert data["error"]
        assert data["retryAfter"] > 0
        assert int(response.headers["Retry-After"]) > 0

    def test_rate_limit_per_client(self, client):
        for _ in range(5):
            client.post("/api/draw", json={"deckStyle": "classic"}, headers={"X-Forwarded-For": "10.0.0.1"})
        blocked = client.post("/api/draw", json={"deckStyle": "classic"}, headers={"X-Forwarded-For": "10.0.0.1"})
        other = client.post("/api/draw", json={"deckStyle": "classic"}, headers={"X-Forwarded-For": "10.0.0.2"})
        assert blocked.status_code == 429
        assert other.status_code == 200


class TestChat:
    def test_streams_text(self, client, providers):
        response = client.post("/api/chat", json=_chat_body(turnCount=1))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == providers.text_generator.default

    def test_check_in_prompt(self, client, providers):
        client.post("/api/chat", json=_chat_body(turnCount=13))
        assert CHECK_IN_INSTRUCTION in providers.text_generator.last_prompt

    def test_history_order_preserved(self, client, providers):
        messages = [
            {"role": "user", "content": "一"},
            {"role": "assistant", "content": "二"},
            {"role": "user", "content": "三"},
        ]
        client.post("/api/chat", json=_chat_body(messages=messages))
        sent = providers.text_generator.calls[-1]["messages"]
        assert [m.content for m in sent] == ["一", "二", "三"]

    def test_empty_messages(self, client):
        response = client.post("/api/chat", json=_chat_body(messages=[]))
        assert response.status_code == 400
        assert response.json() == {"error": "消息不能为空"}

    def test_invalid_json(self, client):
        response = client.post("/api/chat", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_upstream_failure(self, client, providers):
        providers.text_generator.fail = True
        response = client.post("/api/chat", json=_chat_body())
        assert response.status_code == 500
        assert "error" in response.json()

    def test_hero_chapter_sends_local_card_image(self, client, providers):
        body = _chat_body(mode="hero", step=1, imageUrl="/cards/saga/1.jpg")
        response = client.post("/api/chat", json=body)
        assert response.status_code == 200
        call = providers.text_generator.calls[-1]
        assert call["vision_image"].startswith("data:image/jpeg;base64,")
        assert "The Hero" in call["system_prompt"]

    def test_hero_missing_image_asks_without_it(self, client, providers):
        body = _chat_body(mode="hero", step=2, imageUrl="/cards/saga/54.jpg")
        assert client.post("/api/chat", json=body).status_code == 200
        assert providers.text_generator.calls[-1]["vision_image"] is None

    def test_hero_story_is_one_shot(self, client, providers):
        providers.text_generator.replies = ["很久以前，有一位英雄……"]
        story_log = [{"step": i, "answer": f"答{i}"} for i in range(1, 11)]
        body = _chat_body(mode="hero", step=11, storyLog=story_log, imageUrl="/cards/saga/1.jpg")
        response = client.post("/api/chat", json=body)
        assert response.status_code == 200
        assert response.text == "很久以前，有一位英雄……"
        call = providers.text_generator.calls[-1]
        assert call["kind"] == "complete"
        assert call["vision_image"] is None
        assert "答10" in call["system_prompt"]

    def test_flip_zones(self, client, providers):
        body = _chat_body(
            mode="flip",
            phase="initial",
            zones={"comfort": {"en": "HOME", "cn": "家"}, "discomfort": {"en": "FEAR", "cn": "恐惧"}},
        )
        assert client.post("/api/chat", json=body).status_code == 200
        assert "恐惧" in providers.text_generator.last_prompt

    def test_chat_rate_limited_after_twenty(self, client):
        for _ in range(20):
            assert client.post("/api/chat", json=_chat_body()).status_code == 200
        response = client.post("/api/chat", json=_chat_body())
        assert response.status_code == 429
        assert response.json()["retryAfter"] > 0


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_card_images_served(client):
    response = client.get("/cards/saga/1.jpg")
    assert response.status_code == 200
