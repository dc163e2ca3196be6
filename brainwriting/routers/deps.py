"""Shared route dependencies."""

from fastapi import Request

from brainwriting.services.coordinator import BoardCoordinator


def get_coordinator(request: Request) -> BoardCoordinator:
    """The coordinator built in the app lifespan."""
    return request.app.state.coordinator
