"""
Event Reporting API Package.

Package Structure:
    - v1/: Version 1 API endpoints (current stable version)
        - branch_media.py: Branch media upload, listing, presigned URLs and deletion

All endpoints are versioned under the /api/v1 URL prefix.
"""
