"""
Multi-Endpoint Connection Manager.

Discovers the backend mesh of the market dashboard, probes every endpoint's
health and latency, and keeps exactly one active endpoint selected with
automatic failover.
"""

__version__ = "1.0.0"
__author__ = "Tim"
