import os
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

import cloudinary
import cloudinary.uploader
import cloudinary.utils
from fastapi import UploadFile, HTTPException, status
from starlette.concurrency import run_in_threadpool

from edu_admin.config import settings

# Configure Cloudinary
cloudinary.config(
    cloud_name=settings.CLOUDINARY_CLOUD_NAME,
    api_key=settings.CLOUDINARY_API_KEY,
    api_secret=settings.CLOUDINARY_API_SECRET,
    secure=True
)

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg"}


def storage_configured() -> bool:
    return bool(
        settings.CLOUDINARY_CLOUD_NAME
        and settings.CLOUDINARY_API_KEY
        and settings.CLOUDINARY_API_SECRET
    )


def get_file_extension(filename: Optional[str]) -> str:
    return os.path.splitext(filename)[1].lower() if filename else ""


def build_public_id(filename: Optional[str]) -> str:
    """Unique object name inside a bucket: <timestamp>_<sanitized stem>."""
    stem = os.path.splitext(os.path.basename(filename or "file"))[0]
    safe_stem = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in stem) or "file"
    return f"{int(datetime.now().timestamp() * 1000)}_{safe_stem}"


async def upload_file_to_storage(
    file: UploadFile,
    bucket: str,
    allowed_extensions: Optional[Iterable[str]] = None,
    max_size: Optional[int] = None,
    resource_type: str = "auto",
) -> Dict[str, object]:
    """
    Upload a file into a storage bucket (a Cloudinary folder).

    Args:
        file: The uploaded file
        bucket: Bucket name, used as the Cloudinary folder
        allowed_extensions: Lower-case extensions (with dot) accepted, None for any
        max_size: Maximum size in bytes, None for no limit
        resource_type: Cloudinary resource type ("image", "video", "raw" or "auto")

    Returns:
        Dict with public_id (the storage path), url and size

    Raises:
        HTTPException: 503 when storage is not configured, 400 for a rejected file,
        500 when the upload itself fails
    """
    if not storage_configured():
        logger.error("Cloudinary credentials not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="File upload service is not configured"
        )

    # Check file type
    file_ext = get_file_extension(file.filename)
    if allowed_extensions is not None:
        allowed = sorted(set(allowed_extensions))
        if file_ext not in allowed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File type not allowed. Must be one of: {', '.join(allowed)}"
            )

    contents = await file.read()

    if max_size is not None and len(contents) > max_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File size exceeds the maximum allowed size of {max_size} bytes"
        )

    try:
        result = await run_in_threadpool(
            cloudinary.uploader.upload,
            contents,
            folder=bucket,
            resource_type=resource_type,
            public_id=build_public_id(file.filename),
        )
    except Exception as e:
        logger.error(f"Error uploading to Cloudinary bucket {bucket}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload file"
        )
    finally:
        # Reset file pointer for potential further processing
        await file.seek(0)

    logger.info(f"Uploaded {file.filename} to {result.get('public_id')}")
    return {
        "public_id": result["public_id"],
        "url": result.get("secure_url") or result.get("url"),
        "size": result.get("bytes", len(contents)),
        "resource_type": result.get("resource_type", resource_type),
    }


async def delete_file_from_storage(public_id: Optional[str], resource_type: str = "image") -> bool:
    """
    Delete an object from storage by its public ID.

    Returns:
        True if successful, False otherwise
    """
    if not public_id:
        return False

    try:
        result = await run_in_threadpool(
            cloudinary.uploader.destroy, public_id, resource_type=resource_type
        )
        return result.get("result") == "ok"
    except Exception as e:
        logger.error(f"Error deleting {public_id} from Cloudinary: {str(e)}")
        return False


def get_public_url(public_id: Optional[str], resource_type: str = "image") -> Optional[str]:
    """Public delivery URL for a stored object."""
    if not public_id:
        return None
    url, _ = cloudinary.utils.cloudinary_url(public_id, resource_type=resource_type, secure=True)
    return url
