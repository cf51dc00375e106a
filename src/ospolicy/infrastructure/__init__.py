"""
ospolicy.infrastructure - Object Storage Layer
================================================

This package provides the storage the staging pipeline writes installers
into. Workers only see the ObjectStore interface, so the real bucket and
the in-memory fake are interchangeable.

Architecture:

    ┌─────────────── STAGING PIPELINE ────────────────────┐
    │  TransferWorker (one per artifact)                  │
    └─────────────────────┬───────────────────────────────┘
                          │ get_attrs / open_writer / delete
                          ▼
    ┌─────────────── INFRASTRUCTURE LAYER ────────────────┐
    │                                                      │
    │  ObjectStore (ABC)                                   │
    │    ├── InMemoryObjectStore                           │
    │    └── GCSObjectStore (google-cloud-storage)         │
    │                                                      │
    └──────────────────────────────────────────────────────┘

Components:
    - ObjectStore (ABC):    Abstract interface for object storage
    - ObjectWriter (ABC):   Streaming upload handle (write / close / abort)
    - InMemoryObjectStore:  In-memory implementation for development/testing
    - GCSObjectStore:       Google Cloud Storage implementation

Usage:
    from ospolicy.infrastructure import InMemoryObjectStore
"""

from ospolicy.infrastructure.object_store import (
    InMemoryObjectStore,
    ObjectStore,
    ObjectWriter,
)

__all__ = [
    "InMemoryObjectStore",
    "ObjectStore",
    "ObjectWriter",
]
