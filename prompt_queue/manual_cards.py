"""
Manual queue cards — free-text prompt cards the user can push into the queue
one at a time or all at once.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import Optional

from models.schemas import QueueItem
from prompt_queue.engine import QueueEngine

logger = structlog.get_logger()

DEFAULT_EMOJIS = ["1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣"]
MIN_CARDS = 1
MAX_CARDS = 9


@dataclass
class ManualCard:
    text: str = ""
    emoji: str = ""


def card_to_queue_item(index: int, card: ManualCard) -> QueueItem:
    """Build the queue item for card `index`. Blank text is rejected."""
    text = (card.text or "").strip()
    if not text:
        raise ValueError("Cannot add empty prompt to queue")
    emoji = (card.emoji or "").strip()
    if not emoji:
        emoji = DEFAULT_EMOJIS[index % len(DEFAULT_EMOJIS)]
    return QueueItem(
        icon=emoji,
        text=text,
        button_id=f"manual-queue-card-{index}",
        button_index=index,
        autosend=True,
        is_manual_card=True,
    )


def enqueue_card(engine: QueueEngine, cards: list[ManualCard], index: int) -> Optional[QueueItem]:
    if index < 0 or index >= len(cards):
        logger.info("manual_card_not_found", index=index)
        return None
    item = card_to_queue_item(index, cards[index])
    return engine.add(item)


def enqueue_all_valid(engine: QueueEngine, cards: list[ManualCard]) -> int:
    """Queue every card with text, in order. Returns how many were accepted."""
    added = 0
    for index, card in enumerate(cards[:MAX_CARDS]):
        if not (card.text or "").strip():
            continue
        if engine.add(card_to_queue_item(index, card)) is not None:
            added += 1
    logger.info("manual_cards_enqueued", added=added)
    return added
