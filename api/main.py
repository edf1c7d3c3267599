"""
FastAPI Application — control surface for the prompt queue.

Provides:
- Queue inspection (items, timer, status, control state, last delay sample)
- Queue editing (add, remove, reorder) and manual card enqueueing
- Transport controls (start, pause, reset, skip, seek)
- Live settings changes (queue mode, delay, jitter, pre-dispatch actions)
"""
from __future__ import annotations

import structlog
from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional
from contextlib import asynccontextmanager

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from channels import create_dispatch_channel
from config.settings import SettingsConfigProvider, get_settings
from models.schemas import DelayUnit, QueueItem
from prompt_queue.controls import QueueControls
from prompt_queue.engine import QueueEngine
from prompt_queue.manual_cards import (
    MAX_CARDS, MIN_CARDS, ManualCard, enqueue_all_valid, enqueue_card,
)
from prompt_queue.scheduler import AsyncioScheduler

logger = structlog.get_logger()

# ──────────────────────────────────────────────────────────────
#  Bootstrap
# ──────────────────────────────────────────────────────────────

settings = get_settings()
config_provider = SettingsConfigProvider(settings)
dispatch_channel = create_dispatch_channel(settings.dispatch)
engine = QueueEngine(config_provider, dispatch_channel, AsyncioScheduler())
controls = QueueControls(engine, config_provider)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("prompt_queue_started",
                dispatch_channel=type(engine.dispatcher).__name__,
                queue_enabled=config_provider.current().feature_enabled)
    yield

    await engine.shutdown()
    logger.info("prompt_queue_stopped")


# ──────────────────────────────────────────────────────────────
#  App
# ──────────────────────────────────────────────────────────────

app = FastAPI(
    title="PromptQueue API",
    description="Sequential, delay-spaced prompt dispatch queue",
    version="1.4.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ──────────────────────────────────────────────────────────────
#  Request/Response Models
# ──────────────────────────────────────────────────────────────

class AddItemRequest(BaseModel):
    text: str
    icon: str = ""
    button_id: Optional[str] = None
    button_index: Optional[int] = None
    metadata: dict[str, Any] = {}


class MoveItemRequest(BaseModel):
    from_index: int
    to_index: int


class SeekRequest(BaseModel):
    ratio: float


class ConfigUpdateRequest(BaseModel):
    feature_enabled: Optional[bool] = None
    delay_value: Optional[float] = None
    delay_unit: Optional[DelayUnit] = None
    jitter_enabled: Optional[bool] = None
    jitter_percent: Optional[float] = None
    auto_scroll: Optional[bool] = None
    beep: Optional[bool] = None
    speak: Optional[bool] = None
    finish_beep: Optional[bool] = None


class ManualCardModel(BaseModel):
    text: str = ""
    emoji: str = ""


class ManualCardsRequest(BaseModel):
    cards: list[ManualCardModel] = Field(min_length=MIN_CARDS, max_length=MAX_CARDS)
    index: Optional[int] = None               # one card; omit to add every valid card
    start: bool = False


def _snapshot() -> dict[str, Any]:
    return engine.snapshot().model_dump(mode="json")


# ══════════════════════════════════════════════════════════════
#  HEALTH
# ══════════════════════════════════════════════════════════════

@app.get("/health")
async def health():
    metrics = getattr(engine.dispatcher, "metrics", None)
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "queue_state": engine.state,
        "queue_length": len(engine.store),
        "dispatch": metrics.to_dict() if metrics is not None else {},
    }


# ══════════════════════════════════════════════════════════════
#  QUEUE CONTENTS
# ══════════════════════════════════════════════════════════════

@app.get("/api/v1/queue")
async def get_queue():
    return _snapshot()


@app.post("/api/v1/queue/items")
async def add_item(req: AddItemRequest):
    try:
        item = QueueItem(
            text=req.text,
            icon=req.icon,
            button_id=req.button_id,
            button_index=req.button_index,
            metadata=req.metadata,
        )
    except ValidationError:
        raise HTTPException(status_code=422, detail="Prompt text must not be empty")

    if not engine.enabled:
        raise HTTPException(status_code=409, detail="Queue mode is disabled")
    entry = engine.add(item)
    if entry is None:
        raise HTTPException(status_code=409, detail=f"Queue is full ({engine.store.max_size} items)")
    return {"item": entry.model_dump(mode="json"), "queue": _snapshot()}


@app.delete("/api/v1/queue/items/{index}")
async def remove_item(index: int):
    removed = engine.remove(index)
    if removed is None:
        raise HTTPException(status_code=404, detail="No queued item at that index")
    return {"removed": removed.model_dump(mode="json"), "queue": _snapshot()}


@app.post("/api/v1/queue/items/move")
async def move_item(req: MoveItemRequest):
    if not engine.move(req.from_index, req.to_index):
        raise HTTPException(status_code=404, detail="Index out of range")
    return _snapshot()


@app.post("/api/v1/manual-cards/enqueue")
async def enqueue_manual_cards(req: ManualCardsRequest):
    if not engine.enabled:
        raise HTTPException(status_code=409, detail="Queue mode is disabled")
    cards = [ManualCard(text=c.text, emoji=c.emoji) for c in req.cards]

    if req.index is not None:
        try:
            added = 1 if enqueue_card(engine, cards, req.index) is not None else 0
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
    else:
        added = enqueue_all_valid(engine, cards)

    if added and req.start:
        await engine.start()
    return {"added": added, "queue": _snapshot()}


# ══════════════════════════════════════════════════════════════
#  TRANSPORT CONTROLS
# ══════════════════════════════════════════════════════════════

@app.post("/api/v1/queue/start")
async def start_queue():
    await engine.start()
    return _snapshot()


@app.post("/api/v1/queue/pause")
async def pause_queue():
    engine.pause()
    return _snapshot()


@app.post("/api/v1/queue/reset")
async def reset_queue():
    engine.reset()
    return _snapshot()


@app.post("/api/v1/queue/skip")
async def skip_item():
    await engine.skip()
    return _snapshot()


@app.post("/api/v1/queue/seek")
async def seek_timer(req: SeekRequest):
    await engine.seek(req.ratio)
    return _snapshot()


@app.post("/api/v1/queue/finished/ack")
async def acknowledge_finished():
    engine.acknowledge_finished()
    return _snapshot()


# ══════════════════════════════════════════════════════════════
#  SETTINGS
# ══════════════════════════════════════════════════════════════

@app.patch("/api/v1/queue/config")
async def update_config(req: ConfigUpdateRequest):
    changes = req.model_dump(exclude_none=True)
    await controls.apply(changes)
    return {"config": asdict(config_provider.current()), "queue": _snapshot()}


# ══════════════════════════════════════════════════════════════
#  Entry Point
# ══════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
