"""
Services module for the event reporting backend.

- storage_service: Object keys, uploads, presigned URLs and metadata on S3
- branch_media_service: Branch media records tying MongoDB documents to stored objects

Services are provided to endpoints through FastAPI's dependency system.
"""
