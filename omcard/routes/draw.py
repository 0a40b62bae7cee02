"""POST /api/draw: compose a card and render its picture."""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from omcard.drawing import draw_card
from omcard.errors import ValidationError
from omcard.models import DrawRequest, DrawResponse
from omcard.rate_limit import DRAW_RATE_LIMIT
from omcard.routes.deps import enforce_rate_limit, get_providers

router = APIRouter(prefix="/api", tags=["draw"])


async def _read_draw_request(request: Request) -> DrawRequest:
    """An empty or non-JSON body means all defaults, as the web client sends none."""
    raw = await request.body()
    if not raw.strip():
        return DrawRequest()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return DrawRequest()
    if not isinstance(payload, dict):
        raise ValidationError("请求体必须是 JSON 对象")
    try:
        return DrawRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"请求参数无效: {e.errors()[0].get('msg')}") from e


@router.post("/draw", response_model=DrawResponse)
async def draw(request: Request):
    limit = enforce_rate_limit(request, "draw", DRAW_RATE_LIMIT)
    req = await _read_draw_request(request)

    providers = get_providers(request)
    image_generator = providers.image(req.provider)
    card = await run_in_threadpool(draw_card, req.deck_style, image_generator, req.exclude_ids)

    body = DrawResponse(
        card_id=card.card_id,
        word=card.word,
        image_url=card.image_url or "",
        prompt_keywords=card.prompt_keywords,
    )
    return JSONResponse(
        body.model_dump(by_alias=True),
        headers={
            "X-RateLimit-Remaining": str(limit.remaining),
            "X-RateLimit-Reset": str(int(limit.reset_time)),
        },
    )
