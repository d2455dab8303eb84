"""OKX public websocket message encoding/decoding."""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from app.domain.models import OrderBookSnapshot


class FeedMessageError(ValueError):
    """Inbound payload could not be understood"""


@dataclass(frozen=True)
class Subscription:
    channel: str
    instrument: str

    def to_payload(self) -> Dict[str, Any]:
        return {"op": "subscribe", "args": [{"channel": self.channel, "instId": self.instrument}]}


PING_PAYLOAD: Dict[str, Any] = {"op": "ping"}


def encode(payload: Dict[str, Any]) -> str:
    return json.dumps(payload)


@dataclass(frozen=True)
class FeedMessage:
    """Decoded inbound frame: either control traffic or a book snapshot."""
    kind: str  # "pong" | "event" | "book" | "other"
    snapshot: Optional[OrderBookSnapshot] = None
    event: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None


def _parse_levels(rows: Any) -> List[Tuple[float, float]]:
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise FeedMessageError(f"Book side must be a list, got {type(rows).__name__}")
    levels: List[Tuple[float, float]] = []
    for row in rows:
        # OKX rows are [price, size, liquidated orders, order count]
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            raise FeedMessageError(f"Malformed book level: {row!r}")
        try:
            levels.append((float(row[0]), float(row[1])))
        except (TypeError, ValueError) as exc:
            raise FeedMessageError(f"Non-numeric book level: {row!r}") from exc
    return levels


def decode_message(
    raw: Union[str, bytes, bytearray],
    exchange: str,
    symbol: str,
    received_at: Optional[datetime] = None,
) -> FeedMessage:
    """
    Decode one frame from the public channel.

    Raises FeedMessageError for anything that is neither a known control
    message nor a well-formed book update.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FeedMessageError("Frame is not valid UTF-8") from exc

    # OKX answers a text "ping" with a bare "pong"
    if raw.strip() == "pong":
        return FeedMessage(kind="pong")

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FeedMessageError(f"Frame is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise FeedMessageError(f"Expected a JSON object, got {type(payload).__name__}")

    event = payload.get("event")
    if event == "pong":
        return FeedMessage(kind="pong")
    if event is not None:
        return FeedMessage(kind="event", event=str(event), detail=payload)

    data = payload.get("data")
    if data is None:
        return FeedMessage(kind="other", detail=payload)
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise FeedMessageError("Book update without a data[0] object")
    # Every frame must carry the whole visible book; incremental diffs are not merged
    if payload.get("action") == "update":
        raise FeedMessageError("Incremental book update; subscribe to a full-depth channel such as books5")

    book = data[0]
    try:
        snapshot = OrderBookSnapshot(
            timestamp=received_at or datetime.now(tz=timezone.utc),
            exchange=exchange,
            symbol=symbol,
            asks=_parse_levels(book.get("asks")),
            bids=_parse_levels(book.get("bids")),
        )
    except ValueError as exc:
        if isinstance(exc, FeedMessageError):
            raise
        raise FeedMessageError(str(exc)) from exc
    return FeedMessage(kind="book", snapshot=snapshot)
