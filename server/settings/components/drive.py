"""Storage core settings: quotas, sync simulation, trash retention."""

from server.settings.components import config

# Default per-user quota: 10 GB
DRIVE_DEFAULT_QUOTA_BYTES = config(
    'DRIVE_DEFAULT_QUOTA_BYTES',
    cast=int,
    default=10 * 1024 * 1024 * 1024,
)

# Simulated sync: delay before syncing -> synced, files picked when
# no explicit ids are given
DRIVE_SYNC_DELAY_SECONDS = config(
    'DRIVE_SYNC_DELAY_SECONDS',
    cast=float,
    default=2.0,
)
DRIVE_RECENT_SYNC_COUNT = config('DRIVE_RECENT_SYNC_COUNT', cast=int, default=5)

# Trash
DRIVE_TRASH_RETENTION_DAYS = config(
    'DRIVE_TRASH_RETENTION_DAYS',
    cast=int,
    default=30,
)
DRIVE_TRASH_PURGE_INTERVAL_HOURS = config(
    'DRIVE_TRASH_PURGE_INTERVAL_HOURS',
    cast=float,
    default=6.0,
)

# Signed download URL lifetime in seconds
DRIVE_SIGNED_URL_TTL = config('DRIVE_SIGNED_URL_TTL', cast=int, default=3600)

# External collaborators (dotted paths)
DRIVE_EVENT_BUS = config('DRIVE_EVENT_BUS', default='')
DRIVE_ACCESS_POLICY = config(
    'DRIVE_ACCESS_POLICY',
    default='server.apps.drive.logic.access.no_shared_access',
)
