import base64
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from edu_admin.config import settings

logger = logging.getLogger(__name__)

ALLOWED_ATTACHMENT_TYPES = ["image/png", "image/jpeg", "image/jpg", "image/gif", "application/pdf"]


class AttachmentError(ValueError):
    """Raised when an attachment cannot be added to or removed from a session."""


def generate_attachment_key(question_id: str, part_index: Optional[int] = None, subpart_index: Optional[int] = None) -> str:
    """Key attachments are filed under: <question_id>[_p<part>][_s<subpart>]."""
    key = str(question_id)
    if part_index is not None:
        key += f"_p{part_index}"
    if subpart_index is not None:
        key += f"_s{subpart_index}"
    return key


def build_attachment(file_name: str, file_type: str, content: bytes, attachment_key: str) -> Dict[str, Any]:
    """Attachment record holding the file inline as a data URL."""
    encoded = base64.b64encode(content).decode("ascii")
    return {
        "id": f"att_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}",
        "file_url": f"data:{file_type};base64,{encoded}",
        "file_name": file_name,
        "file_type": file_type,
        "file_size": len(content),
        "source": "primary",
        "attachment_key": attachment_key,
        "can_delete": True,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


def add_attachment(
    attachments: Dict[str, List[Dict[str, Any]]],
    attachment_key: str,
    file_name: str,
    file_type: str,
    content: bytes,
) -> Dict[str, Any]:
    """
    Validate and add an attachment under a key, mutating ``attachments``.

    Returns:
        The new attachment record

    Raises:
        AttachmentError: too many attachments, wrong type or file too large
    """
    existing = attachments.get(attachment_key) or []
    max_attachments = settings.MAX_ATTACHMENTS_PER_KEY

    if len(existing) >= max_attachments:
        raise AttachmentError(f"Maximum {max_attachments} attachments allowed")

    if file_type not in ALLOWED_ATTACHMENT_TYPES:
        raise AttachmentError(f"File type {file_type} not allowed")

    if len(content) > settings.MAX_ATTACHMENT_SIZE_BYTES:
        raise AttachmentError(
            f"File size must be less than {settings.MAX_ATTACHMENT_SIZE_BYTES // (1024 * 1024)}MB"
        )

    attachment = build_attachment(file_name, file_type, content, attachment_key)
    attachments[attachment_key] = existing + [attachment]
    return attachment


def remove_attachment(attachments: Dict[str, List[Dict[str, Any]]], attachment_key: str, attachment_id: str) -> None:
    if attachment_key not in attachments:
        raise AttachmentError("Failed to delete attachment: Invalid attachment key")

    remaining = [att for att in attachments[attachment_key] if att.get("id") != attachment_id]
    if len(remaining) == len(attachments[attachment_key]):
        raise AttachmentError("Failed to delete attachment: Attachment not found")

    attachments[attachment_key] = remaining
    logger.debug(f"Removed attachment {attachment_id} from {attachment_key}")


def count_attachments(attachments: Dict[str, List[Dict[str, Any]]]) -> int:
    return sum(len(items or []) for items in attachments.values())


def attach_to_question(question: Dict[str, Any], attachments: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Copy of a question with the session attachments filed under its keys merged in.

    The question's own key goes on the question, ``<qid>_p<i>`` on ``parts[i]``
    and ``<qid>_p<i>_s<j>`` on that part's ``subparts[j]``.
    """
    question_id = str(question.get("id"))
    merged = dict(question)
    merged["attachments"] = list(question.get("attachments") or []) + list(attachments.get(question_id) or [])

    parts = []
    for part_index, part in enumerate(question.get("parts") or []):
        if not isinstance(part, dict):
            parts.append(part)
            continue
        part = dict(part)
        part_key = generate_attachment_key(question_id, part_index)
        part["attachments"] = list(part.get("attachments") or []) + list(attachments.get(part_key) or [])

        subparts = []
        for subpart_index, subpart in enumerate(part.get("subparts") or []):
            if isinstance(subpart, dict):
                subpart_key = generate_attachment_key(question_id, part_index, subpart_index)
                subpart = dict(subpart)
                subpart["attachments"] = list(subpart.get("attachments") or []) + list(attachments.get(subpart_key) or [])
            subparts.append(subpart)
        if subparts:
            part["subparts"] = subparts

        parts.append(part)

    merged["parts"] = parts
    return merged
