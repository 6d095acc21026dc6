"""
Tests for BranchMediaService and BranchMediaRepository.

MongoDB is replaced by AsyncMock collections; storage runs on a real
StorageClient whose network-bound methods are mocked per test.
"""

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from bson import ObjectId
from botocore.exceptions import ClientError
from pymongo.errors import PyMongoError

from app.core.storage import StorageClient
from app.models.branch_media import BranchMedia, BranchMediaUpdate
from app.services.branch_media_service import BranchMediaRepository, BranchMediaService
from app.services.storage_service import StorageService
from app.utils.file_validator import (
    BYTES_PER_MB,
    MAX_FILE_SIZE_BY_CATEGORY,
    FileCategory,
    FileTooLargeError,
    UnsupportedFileTypeError,
)


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "failed"}}, operation)


class _Cursor:
    """Minimal async Motor cursor over a fixed list of documents."""

    def __init__(self, documents: list[dict]) -> None:
        self._documents = documents

    def sort(self, *args: object) -> "_Cursor":
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self._documents:
            yield document


class TestUploadMedia:
    @pytest.mark.asyncio
    async def test_upload_stores_key_and_returns_signed_url(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        mock_repository: Mock,
    ) -> None:
        storage_client.upload_bytes = Mock()

        response = await branch_media_service.upload_media(
            branch_id=7,
            is_child_branch=True,
            data=b"\x89PNG",
            filename="lobby.png",
            content_type="image/png",
            category="  Branch Photos ",
            user_id="reporter@example.com",
        )

        stored: BranchMedia = mock_repository.insert.await_args.args[0]
        assert stored.s3_key.startswith("images/")
        assert stored.file_url is None
        assert stored.name == "lobby.png"
        assert stored.category == "Branch Photos"
        assert stored.file_size == 4
        assert stored.created_by == "reporter@example.com"

        assert response.id == "652f1c2e8b3a4d5e6f7081aa"
        assert response.s3_key == stored.s3_key
        assert response.file_type == "image"
        assert "X-Amz-Signature=" in response.url

    @pytest.mark.asyncio
    async def test_rejected_type_never_reaches_storage(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        mock_repository: Mock,
    ) -> None:
        storage_client.upload_bytes = Mock()

        with pytest.raises(UnsupportedFileTypeError):
            await branch_media_service.upload_media(
                branch_id=7,
                is_child_branch=False,
                data=b"PK\x03\x04",
                filename="bundle.zip",
                content_type="application/zip",
            )

        storage_client.upload_bytes.assert_not_called()
        mock_repository.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_file_never_reaches_storage(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setitem(MAX_FILE_SIZE_BY_CATEGORY, FileCategory.AUDIO, BYTES_PER_MB)
        storage_client.upload_bytes = Mock()

        with pytest.raises(FileTooLargeError):
            await branch_media_service.upload_media(
                branch_id=7,
                is_child_branch=False,
                data=b"\x00" * (BYTES_PER_MB + 1),
                filename="call.mp3",
                content_type="audio/mpeg",
            )

        storage_client.upload_bytes.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_insert_removes_uploaded_object(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        mock_repository: Mock,
    ) -> None:
        storage_client.upload_bytes = Mock()
        storage_client.delete_object = Mock()
        mock_repository.insert.side_effect = PyMongoError("write failed")

        with pytest.raises(PyMongoError):
            await branch_media_service.upload_media(
                branch_id=7,
                is_child_branch=False,
                data=b"%PDF",
                filename="incident.pdf",
                content_type="application/pdf",
            )

        uploaded_key = storage_client.upload_bytes.call_args.args[0]
        assert uploaded_key.startswith("files/")
        storage_client.delete_object.assert_called_once_with(uploaded_key)

    @pytest.mark.asyncio
    async def test_signing_failure_after_upload_returns_record_without_url(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
    ) -> None:
        storage_client.upload_bytes = Mock()
        storage_client.generate_presigned_download_url = Mock(
            side_effect=_client_error("InternalError", "GetObject")
        )

        response = await branch_media_service.upload_media(
            branch_id=7,
            is_child_branch=False,
            data=b"RIFF",
            filename="note.wav",
            content_type="audio/wav",
        )

        assert response.url is None
        assert response.s3_key.startswith("audio/")


class TestReadMedia:
    @pytest.mark.asyncio
    async def test_list_resigns_every_record(
        self,
        branch_media_service: BranchMediaService,
        mock_repository: Mock,
        sample_media: BranchMedia,
        legacy_media: BranchMedia,
    ) -> None:
        mock_repository.list_all.return_value = [sample_media, legacy_media]

        responses = await branch_media_service.list_media()

        assert [r.id for r in responses] == [sample_media.id, legacy_media.id]
        assert "X-Amz-Signature=" in responses[0].url
        assert responses[1].s3_key == "files/annual report.pdf"
        assert responses[1].file_type == "document"
        assert "X-Amz-Signature=" in responses[1].url

    @pytest.mark.asyncio
    async def test_list_omits_records_without_url(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        mock_repository: Mock,
        sample_media: BranchMedia,
    ) -> None:
        unkeyed = sample_media.model_copy(update={"id": "652f1c2e8b3a4d5e6f7081ff", "s3_key": None})
        failing = sample_media.model_copy(
            update={"id": "652f1c2e8b3a4d5e6f7081fe", "s3_key": "images/broken.png"}
        )
        signer = storage_client.generate_presigned_download_url

        def sign(key: str, expires_in: int, cache_control: str | None = None) -> str:
            if key == "images/broken.png":
                raise _client_error("InternalError", "GetObject")
            return signer(key, expires_in, cache_control=cache_control)

        storage_client.generate_presigned_download_url = Mock(side_effect=sign)
        mock_repository.list_all.return_value = [unkeyed, sample_media, failing]

        responses = await branch_media_service.list_media()

        assert [r.id for r in responses] == [sample_media.id]

    @pytest.mark.asyncio
    async def test_single_record_without_key_has_no_url(
        self,
        branch_media_service: BranchMediaService,
        mock_repository: Mock,
        sample_media: BranchMedia,
    ) -> None:
        mock_repository.get.return_value = sample_media.model_copy(update={"s3_key": None})

        response = await branch_media_service.get_media(sample_media.id)

        assert response.id == sample_media.id
        assert response.url is None
        assert response.s3_key is None

    @pytest.mark.asyncio
    async def test_branch_listing_database_error_returns_empty(
        self, branch_media_service: BranchMediaService, mock_repository: Mock
    ) -> None:
        mock_repository.list_by_branch.side_effect = PyMongoError("timeout")

        assert await branch_media_service.list_branch_media(12) == []

    @pytest.mark.asyncio
    async def test_branch_listing_filters_child_branches(
        self, branch_media_service: BranchMediaService, mock_repository: Mock
    ) -> None:
        await branch_media_service.list_branch_media(12, is_child_branch=True)

        mock_repository.list_by_branch.assert_awaited_once_with(12, True)

    @pytest.mark.asyncio
    async def test_media_url_for_missing_record(
        self, branch_media_service: BranchMediaService
    ) -> None:
        assert await branch_media_service.get_media_url("652f1c2e8b3a4d5e6f7081ab") is None

    @pytest.mark.asyncio
    async def test_media_url_uses_requested_expiry(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        mock_repository: Mock,
        sample_media: BranchMedia,
    ) -> None:
        storage_client.head_object = Mock(return_value={})
        mock_repository.get.return_value = sample_media

        url = await branch_media_service.get_media_url(sample_media.id, 300)

        assert "X-Amz-Expires=300" in url


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_update_strips_and_stamps(
        self,
        branch_media_service: BranchMediaService,
        mock_repository: Mock,
        sample_media: BranchMedia,
    ) -> None:
        mock_repository.update.return_value = sample_media.model_copy(update={"name": "Lobby"})

        response = await branch_media_service.update_media(
            sample_media.id, BranchMediaUpdate(name="  Lobby  "), "editor@example.com"
        )

        media_id, fields = mock_repository.update.await_args.args
        assert media_id == sample_media.id
        assert fields["name"] == "Lobby"
        assert "category" not in fields
        assert fields["updated_by"] == "editor@example.com"
        assert "updated_on" in fields
        assert response.name == "Lobby"

    @pytest.mark.asyncio
    async def test_delete_removes_object_then_record(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        mock_repository: Mock,
        sample_media: BranchMedia,
    ) -> None:
        storage_client.delete_object = Mock()
        mock_repository.get.return_value = sample_media

        assert await branch_media_service.delete_media(sample_media.id) is True

        storage_client.delete_object.assert_called_once_with(sample_media.s3_key)
        mock_repository.delete.assert_awaited_once_with(sample_media.id)

    @pytest.mark.asyncio
    async def test_delete_storage_failure_still_deletes_record(
        self,
        branch_media_service: BranchMediaService,
        storage_client: StorageClient,
        mock_repository: Mock,
        sample_media: BranchMedia,
    ) -> None:
        storage_client.delete_object = Mock(side_effect=_client_error("AccessDenied", "DeleteObject"))
        mock_repository.get.return_value = sample_media

        assert await branch_media_service.delete_media(sample_media.id) is True

        mock_repository.delete.assert_awaited_once_with(sample_media.id)

    @pytest.mark.asyncio
    async def test_delete_missing_record(
        self, branch_media_service: BranchMediaService, mock_repository: Mock
    ) -> None:
        assert await branch_media_service.delete_media("652f1c2e8b3a4d5e6f7081ab") is False
        mock_repository.delete.assert_not_awaited()


class TestBranchMediaRepository:
    @pytest.fixture
    def collection(self) -> MagicMock:
        collection = MagicMock()
        collection.insert_one = AsyncMock()
        collection.find_one = AsyncMock(return_value=None)
        collection.find_one_and_update = AsyncMock(return_value=None)
        collection.delete_one = AsyncMock()
        return collection

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_omits_url(
        self, collection: MagicMock, sample_media: BranchMedia
    ) -> None:
        inserted_id = ObjectId()
        collection.insert_one.return_value = MagicMock(inserted_id=inserted_id)
        repository = BranchMediaRepository(collection)

        stored = await repository.insert(sample_media.model_copy(update={"id": None}))

        document = collection.insert_one.await_args.args[0]
        assert "_id" not in document
        assert "file_url" not in document
        assert document["s3_key"] == sample_media.s3_key
        assert document["file_type"] == "image"
        assert stored.id == str(inserted_id)

    @pytest.mark.asyncio
    async def test_get_converts_legacy_document(self, collection: MagicMock) -> None:
        oid = ObjectId()
        collection.find_one.return_value = {
            "_id": oid,
            "branch_id": 3,
            "file_url": "https://event-media.s3.amazonaws.com/files/a.pdf",
            "file_type": "file",
            "name": "Policy",
        }
        repository = BranchMediaRepository(collection)

        media = await repository.get(str(oid))

        assert media.id == str(oid)
        assert media.file_type == FileCategory.DOCUMENT
        assert media.file_url == "https://event-media.s3.amazonaws.com/files/a.pdf"
        collection.find_one.assert_awaited_once_with({"_id": oid})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("media_id", ["not-an-object-id", ""])
    async def test_invalid_ids_short_circuit(self, collection: MagicMock, media_id: str) -> None:
        repository = BranchMediaRepository(collection)

        assert await repository.get(media_id) is None
        assert await repository.update(media_id, {"name": "x"}) is None
        assert await repository.delete(media_id) is False
        collection.find_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_reports_deleted_count(self, collection: MagicMock) -> None:
        collection.delete_one.return_value = MagicMock(deleted_count=0)
        repository = BranchMediaRepository(collection)

        assert await repository.delete(str(ObjectId())) is False

    @pytest.mark.asyncio
    async def test_document_without_type_takes_it_from_content_type(
        self, collection: MagicMock
    ) -> None:
        oid = ObjectId()
        collection.find_one.return_value = {
            "_id": oid,
            "branch_id": 3,
            "s3_key": "videos/tour.mp4",
            "content_type": "video/mp4",
        }

        media = await BranchMediaRepository(collection).get(str(oid))

        assert media.file_type == FileCategory.VIDEO

    @pytest.mark.asyncio
    async def test_listing_skips_malformed_documents(self, collection: MagicMock) -> None:
        good, broken, legacy = ObjectId(), ObjectId(), ObjectId()
        collection.find.return_value = _Cursor(
            [
                {"_id": good, "branch_id": 3, "s3_key": "images/a.png", "file_type": "image"},
                {"_id": broken, "s3_key": "images/b.png", "file_type": "image"},
                {
                    "_id": legacy,
                    "branch_id": 3,
                    "file_url": "https://event-media.s3.amazonaws.com/files/x.pdf",
                },
            ]
        )

        records = await BranchMediaRepository(collection).list_all()

        assert [media.id for media in records] == [str(good), str(legacy)]
        assert records[1].file_type == FileCategory.DOCUMENT


@pytest.mark.asyncio
async def test_listing_survives_legacy_and_malformed_records(
    storage_service: StorageService,
) -> None:
    collection = MagicMock()
    collection.find.return_value = _Cursor(
        [
            {"_id": ObjectId(), "branch_id": 3, "s3_key": "images/a.png", "file_type": "image"},
            {
                "_id": ObjectId(),
                "branch_id": 3,
                "file_url": "https://event-media.s3.amazonaws.com/files/x.pdf",
            },
            {"_id": ObjectId(), "branch_id": "not-a-branch", "s3_key": "images/c.png"},
        ]
    )
    service = BranchMediaService(BranchMediaRepository(collection), storage_service)

    listing = await service.list_media()

    assert [item.s3_key for item in listing] == ["images/a.png", "files/x.pdf"]
    assert [item.file_type for item in listing] == ["image", "document"]
    assert all("X-Amz-Signature=" in item.url for item in listing)
