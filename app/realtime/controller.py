"""
Simulation controller: feed status and snapshots in, cost estimates out.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from app.domain.models import (
    ErrorKind,
    OrderBookSnapshot,
    OrderParameters,
    SimulationResult,
)
from app.domain.services.cost_model import CostEstimate, CostModel, CostModelError
from app.infrastructure.market_data.okx_streaming import FeedStatus
from app.infrastructure.market_data.streams.subscriber_registry import SubscriberRegistry

logger = logging.getLogger(__name__)

STATE_TOPIC = "state"


@dataclass(frozen=True)
class SimulationState:
    """What consumers see; replaced as a whole on every change."""
    parameters: OrderParameters
    result: Optional[SimulationResult] = None
    connected: bool = False
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    snapshot: Optional[OrderBookSnapshot] = None


def _build_result(
    estimate: CostEstimate,
    params: OrderParameters,
    latency_ms: float,
) -> SimulationResult:
    return SimulationResult(
        timestamp=datetime.now(tz=timezone.utc),
        symbol=params.symbol,
        quantity_usd=params.quantity_usd,
        execution_price=estimate.execution.execution_price,
        mid_price=estimate.execution.mid_price,
        slippage=estimate.execution.slippage,
        slippage_fraction=estimate.execution.slippage_fraction,
        fees=estimate.fees.fees,
        fee_fraction=estimate.fees.fee_fraction,
        market_impact=estimate.impact.market_impact,
        market_impact_fraction=estimate.impact.market_impact_fraction,
        net_cost=estimate.net_cost,
        net_cost_fraction=estimate.net_cost_fraction,
        maker_proportion=estimate.fees.maker_proportion,
        filled_quantity_usd=estimate.execution.filled_quantity_usd,
        internal_latency_ms=latency_ms,
    )


class SimulationController:
    """
    Holds the current order parameters and the latest simulation state.

    Recomputes only when a snapshot arrives; editing parameters takes effect
    on the next snapshot. Connection and computation errors are tracked
    separately and the state carries whichever happened last. A failed
    computation clears the result so it never outlives the book it came from.
    """

    def __init__(
        self,
        parameters: OrderParameters,
        cost_model: Optional[CostModel] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self._cost_model = cost_model or CostModel()
        self._clock = clock
        self._registry = SubscriberRegistry()
        self._state = SimulationState(parameters=parameters)

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def parameters(self) -> OrderParameters:
        return self._state.parameters

    def subscribe(self, handler: Callable[[SimulationState], None]) -> Callable[[], None]:
        return self._registry.subscribe(STATE_TOPIC, handler)

    def update_parameters(self, parameters: OrderParameters) -> None:
        logger.info(
            "Simulation parameters updated: %s %.2f USD %s",
            parameters.symbol,
            parameters.quantity_usd,
            parameters.fee_tier,
        )
        self._swap(replace(self._state, parameters=parameters))

    def on_status(self, status: FeedStatus) -> None:
        state = self._state
        error, error_kind = state.error, state.error_kind
        if status.error:
            error, error_kind = status.error, ErrorKind.CONNECTION
        elif error_kind is ErrorKind.CONNECTION:
            error, error_kind = None, None
        self._swap(replace(state, connected=status.connected, error=error, error_kind=error_kind))

    def on_snapshot(self, snapshot: OrderBookSnapshot) -> None:
        state = self._state
        if not state.connected:
            logger.debug("Dropping %s snapshot while disconnected", snapshot.symbol)
            return

        params = state.parameters
        if snapshot.symbol != params.symbol:
            logger.debug("Dropping %s snapshot; simulating %s", snapshot.symbol, params.symbol)
            return
        started = self._clock()
        try:
            estimate = self._cost_model.estimate(snapshot, params)
        except CostModelError as exc:
            logger.warning("Cannot price %s snapshot: %s", snapshot.symbol, exc)
            self._swap(replace(
                state,
                result=None,
                snapshot=snapshot,
                error=str(exc),
                error_kind=ErrorKind.COMPUTATION,
            ))
            return
        except Exception as exc:
            logger.exception("Cost model failed on %s snapshot", snapshot.symbol)
            self._swap(replace(
                state,
                result=None,
                snapshot=snapshot,
                error=f"Simulation failed: {exc}",
                error_kind=ErrorKind.COMPUTATION,
            ))
            return
        latency_ms = (self._clock() - started) * 1000

        error, error_kind = state.error, state.error_kind
        if error_kind is ErrorKind.COMPUTATION:
            error, error_kind = None, None
        self._swap(replace(
            state,
            result=_build_result(estimate, params, latency_ms),
            snapshot=snapshot,
            error=error,
            error_kind=error_kind,
        ))

    def _swap(self, state: SimulationState) -> None:
        self._state = state
        self._registry.publish(STATE_TOPIC, state)
