"""
Branch media service.

Ties the media store to branch records: validates and uploads files, persists
the generated key in MongoDB, and re-signs URLs every time records are read.
"""

import logging

from datetime import UTC, datetime
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.database import get_db_client
from app.core.exceptions import SigningError, StorageServiceError
from app.models.branch_media import BranchMedia, BranchMediaResponse, BranchMediaUpdate
from app.services.storage_service import StorageService, get_storage_service
from app.utils.file_validator import check_size, folder_for, validate_file_type


logger = logging.getLogger(__name__)


def _object_id(media_id: str) -> ObjectId | None:
    try:
        return ObjectId(media_id)
    except (InvalidId, TypeError):
        return None


class BranchMediaRepository:
    """MongoDB access for branch media documents."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    @staticmethod
    def _to_model(document: dict[str, Any]) -> BranchMedia:
        document = dict(document)
        document["_id"] = str(document["_id"])
        return BranchMedia.model_validate(document)

    async def insert(self, media: BranchMedia) -> BranchMedia:
        document = media.model_dump(by_alias=True, exclude={"id"})
        if media.file_url:
            document["file_url"] = media.file_url
        result = await self.collection.insert_one(document)
        return media.model_copy(update={"id": str(result.inserted_id)})

    async def get(self, media_id: str) -> BranchMedia | None:
        oid = _object_id(media_id)
        if oid is None:
            return None
        document = await self.collection.find_one({"_id": oid})
        return self._to_model(document) if document else None

    async def _collect(self, cursor: Any) -> list[BranchMedia]:
        """Convert a cursor's documents, skipping those that do not form a record."""
        records: list[BranchMedia] = []
        async for document in cursor:
            try:
                records.append(self._to_model(document))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed branch media document %s: %d validation error(s)",
                    document.get("_id"),
                    e.error_count(),
                )
        return records

    async def list_all(self) -> list[BranchMedia]:
        return await self._collect(self.collection.find({}).sort("created_on", -1))

    async def list_by_branch(self, branch_id: int, is_child_branch: bool) -> list[BranchMedia]:
        cursor = self.collection.find(
            {"branch_id": branch_id, "is_child_branch": is_child_branch}
        ).sort("created_on", -1)
        return await self._collect(cursor)

    async def update(self, media_id: str, fields: dict[str, Any]) -> BranchMedia | None:
        oid = _object_id(media_id)
        if oid is None:
            return None
        document = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(document) if document else None

    async def delete(self, media_id: str) -> bool:
        oid = _object_id(media_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0


class BranchMediaService:
    """
    Upload, list, update and delete branch media.

    Attributes:
        repository: Persistence for branch media records
        storage: Media storage service
    """

    def __init__(self, repository: BranchMediaRepository, storage: StorageService) -> None:
        self.repository = repository
        self.storage = storage

    def object_key(self, media: BranchMedia) -> str:
        """Stored key of a record, derived from the legacy URL when missing."""
        if media.s3_key:
            return media.s3_key
        if media.file_url:
            return self.storage.get_key_from_url(media.file_url)
        return ""

    async def _with_urls(self, records: list[BranchMedia]) -> list[BranchMediaResponse]:
        """Listing view: records whose URL cannot be signed are left out."""
        outcomes = await self.storage.presign_batch([self.object_key(m) for m in records])
        return [
            BranchMediaResponse.from_media(
                media.model_copy(update={"s3_key": outcome.key}), outcome.url
            )
            for media, outcome in zip(records, outcomes, strict=True)
            if outcome.ok
        ]

    async def _with_url(self, media: BranchMedia) -> BranchMediaResponse:
        (outcome,) = await self.storage.presign_batch([self.object_key(media)])
        return BranchMediaResponse.from_media(
            media.model_copy(update={"s3_key": outcome.key or None}), outcome.url
        )

    async def upload_media(
        self,
        *,
        branch_id: int,
        is_child_branch: bool,
        data: bytes,
        filename: str,
        content_type: str,
        name: str = "",
        category: str = "",
        user_id: str | None = None,
    ) -> BranchMediaResponse:
        """
        Validate, upload and record a media file for a branch.

        Type and size are checked before anything is sent to S3. If the record
        cannot be stored, the uploaded object is removed again.

        Raises:
            UnsupportedFileTypeError: Content type not on the allow-list.
            FileTooLargeError: File above its category limit.
            UploadError: Object could not be written.
        """
        file_category = validate_file_type(content_type)
        check_size(len(data), file_category)

        upload = await self.storage.upload_file(
            data, filename, content_type, folder_for(file_category)
        )

        media = BranchMedia(
            branch_id=branch_id,
            is_child_branch=is_child_branch,
            s3_key=upload.key,
            file_type=file_category,
            name=name or upload.original_filename,
            category=category,
            original_filename=upload.original_filename,
            content_type=content_type,
            file_size=len(data),
            created_by=user_id,
            updated_by=user_id,
        )

        try:
            media = await self.repository.insert(media)
        except PyMongoError:
            logger.exception("Failed to store branch media record, removing %s", upload.key)
            try:
                await self.storage.delete_file(upload.key)
            except StorageServiceError:
                logger.warning("Orphaned object left in bucket: %s", upload.key)
            raise

        logger.info(
            "Branch media created",
            extra={"media_id": media.id, "branch_id": branch_id, "key": upload.key},
        )

        try:
            url = await self.storage.get_presigned_url(upload.key, check_exists=False)
        except SigningError:
            url = None
        return BranchMediaResponse.from_media(media, url)

    async def list_media(self) -> list[BranchMediaResponse]:
        """All media records that could be given a presigned URL."""
        return await self._with_urls(await self.repository.list_all())

    async def list_branch_media(
        self, branch_id: int, is_child_branch: bool = False
    ) -> list[BranchMediaResponse]:
        """Media of one branch; a database failure yields an empty list."""
        try:
            records = await self.repository.list_by_branch(branch_id, is_child_branch)
        except PyMongoError:
            logger.exception("Failed to load media for branch %s", branch_id)
            return []
        return await self._with_urls(records)

    async def get_media(self, media_id: str) -> BranchMediaResponse | None:
        media = await self.repository.get(media_id)
        if media is None:
            return None
        return await self._with_url(media)

    async def update_media(
        self, media_id: str, update: BranchMediaUpdate, user_id: str | None = None
    ) -> BranchMediaResponse | None:
        """Update name and/or category; returns None if the record does not exist."""
        fields: dict[str, Any] = {
            key: value.strip()
            for key, value in update.model_dump(exclude_none=True).items()
        }
        fields["updated_on"] = datetime.now(UTC)
        fields["updated_by"] = user_id

        media = await self.repository.update(media_id, fields)
        if media is None:
            return None
        return await self._with_url(media)

    async def get_media_url(self, media_id: str, expires_in: int | None = None) -> str | None:
        """
        Issue a fresh presigned URL for a record.

        Returns:
            str | None: The URL, or None if the record does not exist.

        Raises:
            InvalidArgumentError: If the record has no key or expires_in is
                out of range.
            SigningError: If signing fails.
        """
        media = await self.repository.get(media_id)
        if media is None:
            return None
        return await self.storage.get_presigned_url(self.object_key(media), expires_in)

    async def delete_media(self, media_id: str) -> bool:
        """
        Delete the stored object and then the record.

        A failure to delete the object is logged and does not keep the record.

        Returns:
            bool: False if the record does not exist.
        """
        media = await self.repository.get(media_id)
        if media is None:
            return False

        key = self.object_key(media)
        if key:
            try:
                await self.storage.delete_file(key)
            except StorageServiceError as e:
                logger.warning(
                    "Failed to delete object for media %s, deleting record anyway: %s",
                    media_id,
                    e,
                )

        deleted = await self.repository.delete(media_id)
        logger.info("Branch media deleted", extra={"media_id": media_id, "key": key})
        return deleted


def get_branch_media_service() -> BranchMediaService:
    """
    FastAPI dependency building the service over the shared clients.

    Kept synchronous: FastAPI runs it in its threadpool, so a lazy storage
    initialisation (connection probes included) never blocks the event loop.
    """
    repository = BranchMediaRepository(get_db_client().get_branch_media_collection())
    return BranchMediaService(repository, get_storage_service())
