"""
Realtime runtime: order book feed, simulation controller, and status.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from app.config import Settings, settings as default_settings
from app.domain.models import OrderParameters
from app.infrastructure.market_data.okx_codec import Subscription
from app.infrastructure.market_data.okx_streaming import FeedConnection, FeedTransport
from app.realtime.controller import SimulationController

logger = logging.getLogger(__name__)


class SimulationRuntime:
    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[FeedTransport] = None,
    ):
        self._config = config or default_settings
        self._transport = transport
        self._feed: Optional[FeedConnection] = None
        self._subscription: Optional[Subscription] = None
        self._lock = asyncio.Lock()
        self.controller = SimulationController(
            OrderParameters(
                symbol=self._config.FEED_INSTRUMENT,
                quantity_usd=self._config.SIM_QUANTITY_USD,
                fee_tier=self._config.SIM_FEE_TIER,
                exchange=self._config.FEED_EXCHANGE,
            )
        )

    @property
    def enabled(self) -> bool:
        return bool(self._config.FEED_ENABLED)

    @property
    def feed(self) -> Optional[FeedConnection]:
        return self._feed

    async def start(self) -> None:
        if not self.enabled:
            logger.info("Order book feed disabled")
            return
        async with self._lock:
            self._open_feed(self.controller.parameters.symbol)

    async def stop(self) -> None:
        async with self._lock:
            self._subscription = None
            await self._close_feed()

    async def update_parameters(self, parameters: OrderParameters) -> None:
        """Swap parameters; a new symbol needs a fresh subscription."""
        async with self._lock:
            self.controller.update_parameters(parameters)
            if not self.enabled or self._subscription is None:
                return
            if parameters.symbol != self._subscription.instrument:
                logger.info(
                    "Resubscribing order book feed: %s -> %s",
                    self._subscription.instrument,
                    parameters.symbol,
                )
                await self._close_feed()
                self._open_feed(parameters.symbol)

    async def _close_feed(self) -> None:
        feed, self._feed = self._feed, None
        if feed is not None:
            await feed.disconnect()

    def _open_feed(self, instrument: str) -> None:
        cfg = self._config
        self._subscription = Subscription(channel=cfg.FEED_CHANNEL, instrument=instrument)
        self._feed = FeedConnection(
            exchange=cfg.FEED_EXCHANGE,
            on_snapshot=self.controller.on_snapshot,
            on_status=self.controller.on_status,
            transport=self._transport,
            ping_interval=cfg.FEED_PING_INTERVAL_SECONDS,
            reconnect_delay=cfg.FEED_RECONNECT_DELAY_SECONDS,
            max_reconnect_attempts=cfg.FEED_MAX_RECONNECT_ATTEMPTS,
        )
        self._feed.connect(cfg.FEED_WS_URL, self._subscription)

    def get_status(self) -> Dict[str, object]:
        feed_status = self._feed.status if self._feed is not None else None
        return {
            "enabled": self.enabled,
            "connected": self.controller.state.connected,
            "state": feed_status.state.value if feed_status else None,
            "reconnect_attempts": feed_status.reconnect_attempts if feed_status else 0,
            "error": feed_status.error if feed_status else None,
            "instrument": self._subscription.instrument if self._subscription else None,
            "ts": datetime.now(tz=timezone.utc).isoformat(),
        }
