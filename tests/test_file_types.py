"""
Tests for material file type helpers.
"""

import pytest

from edu_admin.services.file_types import (
    all_accepted_extensions,
    format_file_size,
    get_mime_type_from_extension,
    max_file_size,
    resolve_mime_type,
    storage_resource_type,
)


@pytest.mark.parametrize("size,expected", [
    (0, "0 Bytes"),
    (None, "0 Bytes"),
    (512, "512 Bytes"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (2 * 1024 * 1024, "2 MB"),
    (int(1.25 * 1024 ** 3), "1.25 GB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_mime_from_extension():
    assert get_mime_type_from_extension("lesson.MP4") == "video/mp4"
    assert get_mime_type_from_extension("book.epub") == "application/epub+zip"
    assert get_mime_type_from_extension("README") == "application/octet-stream"
    assert get_mime_type_from_extension("archive.xyz") == "application/octet-stream"


def test_resolve_mime_prefers_client_type():
    assert resolve_mime_type("notes.pdf", "application/pdf") == "application/pdf"
    assert resolve_mime_type("notes.pdf", "application/octet-stream") == "application/pdf"
    assert resolve_mime_type("track.mp3", None) == "audio/mpeg"


@pytest.mark.parametrize("mime,expected", [
    ("image/png", "image"),
    ("image/svg+xml", "raw"),
    ("video/mp4", "video"),
    ("audio/mpeg", "video"),
    ("application/pdf", "raw"),
    (None, "raw"),
])
def test_storage_resource_type(mime, expected):
    assert storage_resource_type(mime) == expected


def test_size_limits_by_material_type():
    assert max_file_size("video") == 500 * 1024 * 1024
    assert max_file_size("assignment") == 50 * 1024 * 1024
    assert max_file_size("unknown") == 100 * 1024 * 1024


def test_accepted_extensions_deduplicated():
    extensions = all_accepted_extensions()
    assert len(extensions) == len(set(extensions))
    assert ".pdf" in extensions and ".mkv" in extensions and ".epub" in extensions
