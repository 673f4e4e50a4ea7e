"""Endpoint health probing."""

from meshlink.health.prober import HealthProber


__all__ = ["HealthProber"]
