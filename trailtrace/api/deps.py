# trailtrace/api/deps.py
from fastapi import Request

from trailtrace.services.routing_service import RoutingService
from trailtrace.services.synthesis_service import SynthesisService


def get_routing_service(request: Request) -> RoutingService:
    return request.app.state.routing_service


def get_synthesis_service(request: Request) -> SynthesisService:
    return request.app.state.synthesis_service
