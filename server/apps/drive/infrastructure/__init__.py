"""Infrastructure layer for drive app.

This package contains integrations with external systems:
- Custom storage backend (S3/MinIO/R2)
- Metadata extraction (MIME type, checksum, size)
- Background scheduling of deferred and periodic jobs

Keep infrastructure concerns separate from business logic.
"""
