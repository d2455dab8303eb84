"""
Simulation routes - latest cost estimate & order parameters.
"""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Request

from app.domain.costs.fee_tiers import DEFAULT_FEE_TIER, FEE_TIERS
from app.domain.costs.impact_profiles import DEFAULT_IMPACT_SYMBOL, IMPACT_PROFILES
from app.domain.models import OrderParameters
from app.domain.schemas.simulation import (
    AssetProfileListResponse,
    AssetProfileResponse,
    FeeTierListResponse,
    FeeTierResponse,
    SimulationParametersRequest,
    SimulationParametersResponse,
    SimulationResultResponse,
    SimulationStateResponse,
)
from app.realtime.runtime import SimulationRuntime

router = APIRouter()


def _get_runtime(request: Request) -> SimulationRuntime:
    runtime = getattr(request.app.state, "simulation_runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Simulation runtime not started")
    return runtime


def _parameters_response(params: OrderParameters) -> SimulationParametersResponse:
    return SimulationParametersResponse(
        symbol=params.symbol,
        quantity_usd=params.quantity_usd,
        fee_tier=params.fee_tier,
        side=params.side.value,
        exchange=params.exchange,
        order_type=params.order_type,
    )


@router.get("", response_model=SimulationStateResponse)
async def get_simulation(request: Request):
    """Latest cost estimate plus connectivity and error state."""
    state = _get_runtime(request).controller.state
    return SimulationStateResponse(
        connected=state.connected,
        error=state.error,
        error_kind=state.error_kind.value if state.error_kind else None,
        parameters=_parameters_response(state.parameters),
        result=SimulationResultResponse(**asdict(state.result)) if state.result else None,
        book_timestamp=state.snapshot.timestamp if state.snapshot else None,
    )


@router.put("/parameters", response_model=SimulationParametersResponse)
async def update_parameters(payload: SimulationParametersRequest, request: Request):
    """Replace order parameters; applied from the next book update."""
    runtime = _get_runtime(request)
    try:
        params = OrderParameters(
            symbol=payload.symbol.strip().upper(),
            quantity_usd=payload.quantity_usd,
            fee_tier=payload.fee_tier.strip().upper(),
            exchange=payload.exchange,
            order_type=payload.order_type,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    await runtime.update_parameters(params)
    return _parameters_response(params)


@router.get("/fee-tiers", response_model=FeeTierListResponse)
async def list_fee_tiers():
    return FeeTierListResponse(
        default=DEFAULT_FEE_TIER,
        tiers=[FeeTierResponse(**asdict(tier)) for tier in FEE_TIERS.values()],
    )


@router.get("/assets", response_model=AssetProfileListResponse)
async def list_assets():
    return AssetProfileListResponse(
        default=DEFAULT_IMPACT_SYMBOL,
        assets=[AssetProfileResponse(**asdict(profile)) for profile in IMPACT_PROFILES.values()],
    )
