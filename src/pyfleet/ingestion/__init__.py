"""Ingestion layer.

Adapters that turn row-store snapshots and change notifications into typed
records and state-store actions.
"""

__all__: list[str] = []
