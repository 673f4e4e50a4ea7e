"""Mesh endpoint discovery."""

from meshlink.discovery.discoverer import (
    Discoverer,
    endpoint_from_fallback,
    endpoint_from_mesh_server,
    fallback_endpoints,
)


__all__ = [
    "Discoverer",
    "endpoint_from_fallback",
    "endpoint_from_mesh_server",
    "fallback_endpoints",
]
