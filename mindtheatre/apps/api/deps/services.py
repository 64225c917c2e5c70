from __future__ import annotations

from fastapi import Request

from mindtheatre.apps.api.core.services import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:  # pragma: no cover - guard for misconfiguration
        raise RuntimeError("Services are not configured")
    return services


__all__ = ["get_services"]
