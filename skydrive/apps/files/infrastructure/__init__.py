"""Infrastructure layer for files app.

This package contains integrations with external systems:
- S3-compatible object store backend (MinIO, AWS S3)
- Streaming zip archive writer
- Content metadata helpers

Keep infrastructure concerns separate from business logic.
"""
