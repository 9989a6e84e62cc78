"""
auth/dependencies.py -- FastAPI Depends() adapter for RequestGate.

guard(policy) turns a Policy into a dependency. The dependency reads the raw
Authorization header, hands it to app.state.gate, and returns the caller's
Identity (None for public policies). Domain errors raised by the gate
(Unauthenticated and its subclasses, Forbidden) propagate unchanged and are
mapped to HTTP responses by the exception handlers in api/main.py.

Usage:
    @router.delete("/users/{user_id}")
    def delete_user(user_id: int, identity: Identity = Depends(guard(requires("user:delete")))): ...

Layer rule: no imports from siteconfig/ or api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.gate import Policy, RequestGate
from auth.models import Identity


def guard(policy: Policy) -> Callable[[Request], Identity | None]:
    """Return a dependency enforcing policy on the current request.

    The resolved identity is also stored on request.state.identity so
    middleware and exception handlers can log who made the call.
    """

    def dependency(request: Request) -> Identity | None:
        gate: RequestGate = request.app.state.gate
        identity = gate.check(policy, request.headers.get("Authorization"))
        request.state.identity = identity
        return identity

    return dependency
