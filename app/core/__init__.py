"""
Core infrastructure for the event reporting backend.

- credentials: Static storage credential resolution and effective-identity checks
- storage: S3 client lifecycle and startup permission verification
- exceptions: Storage error taxonomy
- database: MongoDB async client with Motor driver and connection pooling
- auth: Bearer token authentication dependency

The storage and database clients are process-wide singletons created during
application startup.
"""
