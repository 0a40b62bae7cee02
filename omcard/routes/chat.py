"""POST /api/chat: one facilitator turn, streamed as plain text.

The server keeps no conversation. The client sends the whole history plus the
mode, phase or step, turn count and story log with every request.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import ValidationError as PydanticValidationError

from omcard.ai import resolve_vision_image
from omcard.errors import ValidationError
from omcard.facilitator import SUMMARY_STEP, build_system_prompt, clamp_hero_step, wants_vision
from omcard.models import ChatRequest
from omcard.rate_limit import CHAT_RATE_LIMIT
from omcard.routes.deps import enforce_rate_limit, get_providers, get_settings

log = logging.getLogger("omcard.routes.chat")
router = APIRouter(prefix="/api", tags=["chat"])

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


async def _read_chat_request(request: Request) -> ChatRequest:
    try:
        payload = json.loads(await request.body() or b"{}")
    except json.JSONDecodeError as e:
        raise ValidationError("请求体不是有效的 JSON") from e
    if not isinstance(payload, dict):
        raise ValidationError("请求体必须是 JSON 对象")
    try:
        req = ChatRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"请求参数无效: {e.errors()[0].get('msg')}") from e
    if not req.messages:
        raise ValidationError("消息不能为空")
    return req


@router.post("/chat")
async def chat(request: Request):
    enforce_rate_limit(request, "chat", CHAT_RATE_LIMIT)
    req = await _read_chat_request(request)

    system_prompt = build_system_prompt(
        req.mode,
        phase=req.phase,
        step=req.step,
        turn_count=req.turn_count,
        story_log=req.story_log,
        messages=req.messages,
        word=req.word,
        prompt_keywords=req.prompt_keywords,
        zones=req.zones,
    )

    vision_image = None
    if wants_vision(req.mode, req.step) and req.image_url:
        vision_image = resolve_vision_image(req.image_url, get_settings(request).cards_dir)

    log.info(
        "chat mode=%s phase=%s step=%s turns=%s messages=%d vision=%s",
        req.mode,
        req.phase,
        req.step,
        req.turn_count,
        len(req.messages),
        bool(vision_image),
    )

    generator = get_providers(request).text(req.provider)

    if req.mode == "hero" and clamp_hero_step(req.step) == SUMMARY_STEP:
        story = await run_in_threadpool(generator.complete, system_prompt, req.messages, vision_image)
        return StreamingResponse(iter([story]), media_type=TEXT_MEDIA_TYPE)

    chunks = await run_in_threadpool(generator.stream, system_prompt, req.messages, vision_image)
    return StreamingResponse(chunks, media_type=TEXT_MEDIA_TYPE)
