"""
Storage package.

Sticky assignments are kept behind a small connector contract so the
engine can run against memory, Redis or a caller-provided store.

- connectors: StorageConnector base and the in-memory connector.
- redis_connector: Redis-backed connector with optional TTL.
- service: StorageService, which turns connector failures into misses.
"""
