"""Business logic layer for files app.

This package contains all business logic for file operations:
- Path validation and per-user key scoping
- File upload, download, delete, move
- Directory listing, creation and zip download
- Search

All business logic should be implemented here, separate from
infrastructure (external systems) and the HTTP layer.
"""
