import math
from typing import List, Optional

# Extended file type support for learning materials
ACCEPTED_FILE_TYPES = {
    "video": [".mp4", ".webm", ".ogg", ".mov", ".avi", ".wmv", ".flv", ".mkv"],
    "audio": [".mp3", ".wav", ".ogg", ".m4a", ".aac", ".wma", ".flac"],
    "document": [".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".odt", ".ods", ".odp"],
    "image": [".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp", ".ico"],
    "text": [".txt", ".json", ".csv", ".md", ".xml", ".html", ".css", ".js"],
    "ebook": [".pdf", ".epub", ".mobi", ".azw", ".azw3"],
    "assignment": [".pdf", ".doc", ".docx", ".txt", ".md"],
}

MB = 1024 * 1024

MAX_FILE_SIZES = {
    "video": 500 * MB,
    "audio": 100 * MB,
    "ebook": 100 * MB,
    "assignment": 50 * MB,
}
DEFAULT_MAX_FILE_SIZE = 100 * MB

MIME_TYPES = {
    # Video
    "mp4": "video/mp4",
    "webm": "video/webm",
    "ogg": "video/ogg",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "wmv": "video/x-ms-wmv",
    "flv": "video/x-flv",
    "mkv": "video/x-matroska",
    # Audio
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "wma": "audio/x-ms-wma",
    "flac": "audio/flac",
    # Documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # Images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "ico": "image/x-icon",
    # Text
    "txt": "text/plain",
    "json": "application/json",
    "csv": "text/csv",
    "md": "text/markdown",
    "xml": "text/xml",
    "html": "text/html",
    # E-books
    "epub": "application/epub+zip",
    "mobi": "application/x-mobipocket-ebook",
    "azw": "application/vnd.amazon.ebook",
    "azw3": "application/vnd.amazon.ebook",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def all_accepted_extensions() -> List[str]:
    """Every extension accepted by the materials upload, deduplicated."""
    seen = []
    for extensions in ACCEPTED_FILE_TYPES.values():
        for ext in extensions:
            if ext not in seen:
                seen.append(ext)
    return seen


def max_file_size(material_type: str) -> int:
    return MAX_FILE_SIZES.get(material_type, DEFAULT_MAX_FILE_SIZE)


def get_mime_type_from_extension(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return DEFAULT_MIME_TYPE
    extension = filename.rsplit(".", 1)[-1].lower()
    return MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)


def resolve_mime_type(filename: Optional[str], content_type: Optional[str]) -> str:
    """Prefer the type the client sent, fall back to the extension."""
    if content_type and content_type != DEFAULT_MIME_TYPE:
        return content_type
    return get_mime_type_from_extension(filename)


def storage_resource_type(mime_type: Optional[str]) -> str:
    """Cloudinary resource type for a MIME type (audio is stored as video)."""
    if not mime_type:
        return "raw"
    if mime_type.startswith("image/") and mime_type != "image/svg+xml":
        return "image"
    if mime_type.startswith("video/") or mime_type.startswith("audio/"):
        return "video"
    return "raw"


def format_file_size(size: Optional[int]) -> str:
    """
    Human readable size: "0 Bytes", "512 Bytes", "1.5 KB", "2 MB".

    Two decimals at most, trailing zeros dropped.
    """
    if not size:
        return "0 Bytes"
    k = 1024
    sizes = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size) / math.log(k))), len(sizes) - 1)
    value = ("%.2f" % (size / math.pow(k, i))).rstrip("0").rstrip(".")
    return f"{value} {sizes[i]}"
