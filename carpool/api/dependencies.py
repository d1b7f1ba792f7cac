"""FastAPI dependency injection helpers."""

from fastapi import Header, Request

from carpool.services.registry import ServiceRegistry


def get_services(request: Request) -> ServiceRegistry:
    """The registry built by ``create_app`` and kept on ``app.state``."""
    return request.app.state.services


def get_actor_id(x_user_id: int = Header(..., alias="X-User-Id", ge=1)) -> int:
    """Authenticated user id, injected by the auth gateway in front of the API."""
    return x_user_id
