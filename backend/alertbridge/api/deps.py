"""FastAPI dependencies resolving the services wired up at startup."""

from fastapi import Request

from alertbridge.services.registry import ServiceRegistry


def get_services(request: Request) -> ServiceRegistry:
    return request.app.state.services
