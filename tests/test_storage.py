import pytest

from salarymask.errors import UploadPermissionError
from salarymask.storage import (
    AttachmentMetadata,
    BlobNotFoundError,
    InMemoryBlobStore,
    InMemoryMetadataStore,
    build_storage_path,
    delete_attachment,
    format_file_size,
    get_file_type,
    store_masked_document,
)


class FailingMetadataStore(InMemoryMetadataStore):
    def create(self, metadata: AttachmentMetadata) -> str:
        raise RuntimeError("database unavailable")


def test_store_masked_document_records_metadata():
    blobs, meta = InMemoryBlobStore(), InMemoryMetadataStore()
    record = store_masked_document(
        blobs,
        meta,
        owner_id="applicant-1",
        original_name="resume.pdf",
        data=b"%PDF-1.4 masked",
        privileged=True,
        visibility="admin_only",
    )
    assert record.id
    assert record.file_name == "masked_resume.pdf"
    assert record.file_type == "pdf"
    assert record.file_size == "15B"
    assert record.visibility == "admin_only"
    assert record.storage_path.startswith("applicant-1/")
    assert record.storage_path.endswith(".pdf")
    assert blobs.download(record.storage_path) == b"%PDF-1.4 masked"
    assert [m.id for m in meta.list_by_owner("applicant-1")] == [record.id]


def test_unmasked_upload_keeps_original_name():
    record = store_masked_document(
        InMemoryBlobStore(),
        InMemoryMetadataStore(),
        owner_id="a",
        original_name="resume.pdf",
        data=b"x",
        privileged=True,
        masked=False,
    )
    assert record.file_name == "resume.pdf"


def test_unprivileged_caller_cannot_upload():
    blobs = InMemoryBlobStore()
    with pytest.raises(UploadPermissionError) as info:
        store_masked_document(
            blobs,
            InMemoryMetadataStore(),
            owner_id="a",
            original_name="resume.pdf",
            data=b"x",
            privileged=False,
        )
    assert info.value.stage == "upload"
    assert blobs._blobs == {}


def test_blob_removed_when_metadata_write_fails():
    blobs = InMemoryBlobStore()
    with pytest.raises(RuntimeError):
        store_masked_document(
            blobs,
            FailingMetadataStore(),
            owner_id="a",
            original_name="resume.pdf",
            data=b"x",
            privileged=True,
        )
    assert blobs._blobs == {}


def test_delete_attachment_removes_blob_and_record():
    blobs, meta = InMemoryBlobStore(), InMemoryMetadataStore()
    record = store_masked_document(
        blobs, meta, owner_id="a", original_name="cv.pdf", data=b"x", privileged=True
    )
    delete_attachment(blobs, meta, record)
    assert meta.list_by_owner("a") == []
    with pytest.raises(BlobNotFoundError):
        blobs.download(record.storage_path)


def test_signed_url_requires_existing_blob():
    blobs = InMemoryBlobStore()
    blobs.upload("a/1.pdf", b"x")
    assert blobs.signed_url("a/1.pdf", 60).startswith("memory://attachments/a/1.pdf?")
    with pytest.raises(BlobNotFoundError):
        blobs.signed_url("a/2.pdf")


@pytest.mark.parametrize(
    "size, expected",
    [(0, "0B"), (1023, "1023B"), (2048, "2KB"), (1536 * 1024, "1.5MB")],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


@pytest.mark.parametrize(
    "name, mime, expected",
    [
        ("cv.PDF", None, "pdf"),
        ("photo.jpeg", None, "image"),
        ("letter.docx", None, "word"),
        ("sheet.xlsx", None, "excel"),
        ("form.hwp", None, "hwp"),
        ("scan", "image/png", "image"),
        ("notes.txt", "text/plain", "document"),
    ],
)
def test_get_file_type(name, mime, expected):
    assert get_file_type(name, mime) == expected


def test_storage_path_is_ascii_even_for_korean_names():
    path = build_storage_path("applicant-1", "이력서.pdf")
    assert path.isascii()
    assert path.endswith(".pdf")
