"""Business logic layer for drive app.

One module per component of the storage core:
- quota_operations: per-user storage ledger with admission control
- tree_operations: file/folder records, rename, move, copy, paths
- version_operations: append-only version history
- trash_operations: soft delete, restore, permanent delete, purge
- sync_operations: simulated sync state machine and offline flags
- conflict_operations: conflict resolution strategies
- access: the single authorization guard every operation goes through

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
"""
