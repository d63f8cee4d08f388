"""State layer.

Explicit, dependency-injected stores for the ingestion pipeline: the device
registry, the bounded sensor window, and the pure presence policy. Only the
pipeline in :mod:`pyiotdash.ingestion.apply` writes to them from telemetry.
"""
