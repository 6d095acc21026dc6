"""
Event Reporting Backend Application Package

FastAPI backend for event reporting. Media attached to branches is uploaded
to a private S3 bucket under generated keys and handed out only through
short-lived presigned URLs.

Package Structure:
- api/: REST API endpoints organized by version (v1)
- core/: Core infrastructure (credentials, storage client, database, auth)
- models/: Pydantic data models
- services/: Business logic layer (media storage, branch media)
- utils/: File validation and logging helpers
"""

__version__ = "1.0.0"
__app_name__ = "event-reporting-backend"
