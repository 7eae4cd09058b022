# trailtrace/api/v1/routes_routing.py
from fastapi import APIRouter, Depends, HTTPException

from trailtrace.api.deps import get_routing_service, get_synthesis_service
from trailtrace.core.errors import InvalidInputError
from trailtrace.models.routing import (
    RouteRequest,
    RouteResponse,
    SnapRequest,
    SnapResponse,
    SynthesisRequest,
    SynthesisResponse,
)
from trailtrace.services.routing_service import RoutingService
from trailtrace.services.synthesis_service import SynthesisService

router = APIRouter(
    prefix="/route",
    tags=["routing"],
)


@router.post(
    "/",
    response_model=RouteResponse,
    summary="Compute a route between origin and destination",
)
async def compute_route(
    request: RouteRequest,
    service: RoutingService = Depends(get_routing_service),
) -> RouteResponse:
    """
    Route between two points through the road-routing oracle.

    - Requests alternatives and keeps the straightest, shortest candidate.
    - Penalises motorway/trunk usage when avoid_restricted_roads is set.
    - Falls back to a straight line when the oracle is unavailable.
    """
    return await service.compute_route(request)


@router.post(
    "/snap",
    response_model=SnapResponse,
    summary="Snap points to the nearest road",
)
async def snap_points(
    request: SnapRequest,
    service: RoutingService = Depends(get_routing_service),
) -> SnapResponse:
    return await service.snap(request)


@router.post(
    "/synthesize",
    response_model=SynthesisResponse,
    summary="Turn a freehand drawing into a road-following route",
)
async def synthesize_route(
    request: SynthesisRequest,
    service: SynthesisService = Depends(get_synthesis_service),
) -> SynthesisResponse:
    """
    Simplify the drawing, project it onto the map (into `bounds`, or
    starting at `anchor`), and align it to roads.
    """
    try:
        result = await service.synthesize(
            request.trace,
            bounds=request.bounds,
            anchor=request.anchor,
            scale=request.scale,
            padding=request.padding,
            canvas_width=request.canvas_width,
            canvas_height=request.canvas_height,
            options=request.options,
            name=request.name,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return SynthesisResponse(
        route=result.route,
        waypoints=result.waypoints,
        stage=result.stage.value,
        warnings=result.warnings,
    )
