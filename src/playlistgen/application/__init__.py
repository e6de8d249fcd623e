"""Application layer: use cases, services and workers."""
