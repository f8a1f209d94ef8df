"""Record store layer.

This package is the client-side cache between the presentation layer and the
remote tables: identity-indexed records, request coalescing, optimistic local
mutation and debounced propagation of writes.
"""

from budgetsync.store.pending import DebounceScheduler, OperationKind, PendingOperation
from budgetsync.store.ports import Record, RemotePort
from budgetsync.store.record_store import IdStrategy, RecordStore, StoreResult
from budgetsync.store.registry import StoreRegistry
from budgetsync.store.request import RemoteRequest, RequestKind

__all__ = [
    "DebounceScheduler",
    "IdStrategy",
    "OperationKind",
    "PendingOperation",
    "Record",
    "RecordStore",
    "RemotePort",
    "RemoteRequest",
    "RequestKind",
    "StoreRegistry",
    "StoreResult",
]
