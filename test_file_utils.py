import io

import pytest
from PIL import Image

from patient_portal.core.exceptions import FileValidationError
from patient_portal.services.file_utils import (
    base64_to_bytes, build_document, compress_image, file_to_base64, format_file_size,
    generate_document_id, prepare_file_for_upload, resolve_content_type, validate_file
)


def png_bytes(width, height):
    output = io.BytesIO()
    Image.new('RGB', (width, height), color=(200, 30, 30)).save(output, format='PNG')
    return output.getvalue()


def test_format_file_size():
    assert format_file_size(0) == "0 Bytes"
    assert format_file_size(512) == "512 Bytes"
    assert format_file_size(1536) == "1.5 KB"
    assert format_file_size(10 * 1024 * 1024) == "10 MB"


def test_generic_content_type_falls_back_to_extension():
    assert resolve_content_type("scan.PDF", "application/octet-stream") == "application/pdf"
    assert resolve_content_type("photo.jpeg", None) == "image/jpeg"
    assert resolve_content_type("photo.png", "image/png; charset=binary") == "image/png"


def test_oversize_file_is_rejected_before_type_check():
    with pytest.raises(FileValidationError) as exc_info:
        validate_file("movie.mp4", "video/mp4", 11 * 1024 * 1024, max_size=10 * 1024 * 1024)

    assert exc_info.value.reason == FileValidationError.TOO_LARGE
    assert exc_info.value.message == "File size (11 MB) exceeds the 10 MB limit"


def test_unsupported_type_is_rejected():
    with pytest.raises(FileValidationError) as exc_info:
        validate_file("notes.txt", "text/plain", 100)

    assert exc_info.value.reason == FileValidationError.UNSUPPORTED_TYPE
    assert exc_info.value.message == (
        "File type 'text/plain' is not supported. Please upload PDF, JPG, PNG, DOC or DOCX files only."
    )


def test_docx_is_accepted():
    resolved = validate_file("letter.docx", "", 2048)
    assert resolved == "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def test_wide_images_are_downscaled():
    original = png_bytes(2400, 1200)
    compressed = compress_image(original, "image/png", max_width=1200)

    with Image.open(io.BytesIO(compressed)) as image:
        assert image.size == (1200, 600)


def test_small_images_and_documents_pass_through():
    small = png_bytes(300, 200)
    assert compress_image(small, "image/png", max_width=1200) == small
    assert compress_image(b"%PDF-1.4 ...", "application/pdf") == b"%PDF-1.4 ..."
    # Not really an image: kept as-is
    assert compress_image(b"garbage", "image/jpeg") == b"garbage"


def test_base64_round_trip_tolerates_data_url_prefix():
    content = b"\x89PNG\r\n\x1a\nrest"
    encoded = file_to_base64(content)
    assert base64_to_bytes(encoded) == content
    assert base64_to_bytes(f"data:image/png;base64,{encoded}") == content


def test_build_document_from_prepared_upload():
    prepared = prepare_file_for_upload("report.pdf", "application/pdf", b"%PDF-1.4 lab results")
    document = build_document(prepared, uploaded_by="user_1")

    assert document.file_name == "report.pdf"
    assert document.file_type == "application/pdf"
    assert document.file_size == "20 Bytes"
    assert document.uploaded_by == "user_1"
    assert base64_to_bytes(document.file_content) == b"%PDF-1.4 lab results"
    assert document.to_store()['fileUrl'] == ""


def test_document_ids_are_unique():
    first, second = generate_document_id(), generate_document_id()
    assert first.startswith("doc_")
    assert first != second
