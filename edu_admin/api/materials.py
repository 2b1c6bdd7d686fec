import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path, File, Form, UploadFile
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete

from edu_admin.config import settings
from edu_admin.database import get_db
from edu_admin.schemas.materials import MaterialCreate, MaterialUpdate, MaterialInDB
from edu_admin.schemas.tenants import BulkDeleteResponse
from edu_admin.models.catalogue import DataStructure
from edu_admin.models.materials import Material
from edu_admin.models.users import User
from edu_admin.middleware.authentication import get_current_user, validate_admin_access
from edu_admin.services.storage import (
    upload_file_to_storage, delete_file_from_storage, get_public_url, get_file_extension, IMAGE_EXTENSIONS
)
from edu_admin.services.file_types import (
    all_accepted_extensions, max_file_size, resolve_mime_type, storage_resource_type, format_file_size
)

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_THUMBNAIL_SIZE = 5 * 1024 * 1024

def parse_form(schema, **fields):
    """Validate multipart form values with a pydantic schema, 400 on the first error."""
    try:
        return schema(**fields)
    except ValidationError as e:
        message = e.errors()[0]["msg"].removeprefix("Value error, ")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message
        )

def serialize_material(material: Material) -> dict:
    return {
        "id": material.id,
        "title": material.title,
        "description": material.description,
        "data_structure_id": material.data_structure_id,
        "unit_id": material.unit_id,
        "topic_id": material.topic_id,
        "subtopic_id": material.subtopic_id,
        "type": material.type,
        "status": material.status,
        "file_path": material.file_path,
        "file_url": material.file_url,
        "mime_type": material.mime_type,
        "size": material.size,
        "formatted_size": format_file_size(material.size),
        "thumbnail_url": material.thumbnail_url,
        "thumbnail_public_url": get_public_url(material.thumbnail_url),
        "created_by": material.created_by,
        "created_at": material.created_at,
        "updated_at": material.updated_at,
    }

async def ensure_data_structure(db: AsyncSession, ds_id: int) -> None:
    result = await db.execute(select(DataStructure).where(DataStructure.id == ds_id))
    if not result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Data structure not found"
        )

async def store_material_file(file: UploadFile, material_type: str) -> dict:
    """Upload into the materials bucket and describe the stored object."""
    mime_type = resolve_mime_type(file.filename, file.content_type)
    uploaded = await upload_file_to_storage(
        file,
        settings.MATERIALS_BUCKET,
        allowed_extensions=all_accepted_extensions(),
        max_size=max_file_size(material_type),
        resource_type=storage_resource_type(mime_type),
    )
    return {
        "file_path": uploaded["public_id"],
        "file_url": uploaded["url"],
        "mime_type": mime_type,
        "size": uploaded["size"],
    }

def check_thumbnail(thumbnail: Optional[UploadFile]) -> bool:
    """True when a thumbnail was sent. Rejects non-images before anything is uploaded."""
    if thumbnail is None or not thumbnail.filename:
        return False
    if get_file_extension(thumbnail.filename) not in IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type not allowed. Must be one of: {', '.join(sorted(IMAGE_EXTENSIONS))}"
        )
    return True

async def store_thumbnail(thumbnail: UploadFile) -> str:
    """Upload a preview image into the thumbnails bucket, returning its storage path."""
    uploaded = await upload_file_to_storage(
        thumbnail,
        settings.THUMBNAILS_BUCKET,
        allowed_extensions=IMAGE_EXTENSIONS,
        max_size=MAX_THUMBNAIL_SIZE,
        resource_type="image",
    )
    return uploaded["public_id"]

async def remove_material_file(material_id: int, file_path: Optional[str], mime_type: Optional[str]) -> None:
    if not file_path:
        return
    removed = await delete_file_from_storage(file_path, storage_resource_type(mime_type))
    if not removed:
        logger.warning(f"Could not remove file {file_path} of material {material_id}")

async def remove_thumbnail(material_id: int, thumbnail_path: Optional[str]) -> None:
    if not thumbnail_path:
        return
    removed = await delete_file_from_storage(thumbnail_path, "image")
    if not removed:
        logger.warning(f"Could not remove thumbnail {thumbnail_path} of material {material_id}")

async def get_material_or_404(db: AsyncSession, material_id: int) -> Material:
    result = await db.execute(
        select(Material).where(Material.id == material_id).execution_options(populate_existing=True)
    )
    material = result.scalars().first()
    if not material:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Material not found"
        )
    return material

# Material endpoints
@router.post("/materials", response_model=MaterialInDB, status_code=status.HTTP_201_CREATED)
async def create_material(
    title: str = Form(...),
    data_structure_id: int = Form(...),
    material_type: str = Form(..., alias="type"),
    description: Optional[str] = Form(None),
    unit_id: Optional[str] = Form(None),
    topic_id: Optional[str] = Form(None),
    subtopic_id: Optional[str] = Form(None),
    status_value: str = Form("active", alias="status"),
    file: UploadFile = File(...),
    thumbnail: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Upload a learning material file and create its record (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    material_data = parse_form(
        MaterialCreate,
        title=title,
        description=description,
        data_structure_id=data_structure_id,
        unit_id=unit_id,
        topic_id=topic_id,
        subtopic_id=subtopic_id,
        type=material_type,
        status=status_value,
    )
    await ensure_data_structure(db, material_data.data_structure_id)

    has_thumbnail = check_thumbnail(thumbnail)
    stored = await store_material_file(file, material_data.type)
    if has_thumbnail:
        stored["thumbnail_url"] = await store_thumbnail(thumbnail)

    material = Material(**material_data.model_dump(), **stored, created_by=current_user.id)
    db.add(material)
    await db.commit()
    await db.refresh(material)

    logger.info(f"Material {material.id} ({stored['file_path']}) created by user {current_user.id}")
    return serialize_material(material)

@router.get("/materials", response_model=List[MaterialInDB])
async def get_materials(
    search: Optional[str] = None,
    data_structure_ids: Optional[List[int]] = Query(None),
    types: Optional[List[str]] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List materials, newest first, with formatted sizes.
    """
    await validate_admin_access(current_user, db)

    query = select(Material)
    if search:
        query = query.where(Material.title.ilike(f"%{search}%"))
    if data_structure_ids:
        query = query.where(Material.data_structure_id.in_(data_structure_ids))
    if types:
        query = query.where(Material.type.in_(types))
    if status_filter:
        query = query.where(Material.status.in_(status_filter))

    result = await db.execute(query.order_by(Material.created_at.desc(), Material.id.desc()))
    return [serialize_material(material) for material in result.scalars().all()]

@router.get("/materials/{material_id}", response_model=MaterialInDB)
async def get_material(
    material_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific material by ID.
    """
    await validate_admin_access(current_user, db)
    return serialize_material(await get_material_or_404(db, material_id))

@router.put("/materials/{material_id}", response_model=MaterialInDB)
async def update_material(
    material_id: int = Path(..., gt=0),
    title: str = Form(...),
    data_structure_id: int = Form(...),
    material_type: str = Form(..., alias="type"),
    description: Optional[str] = Form(None),
    unit_id: Optional[str] = Form(None),
    topic_id: Optional[str] = Form(None),
    subtopic_id: Optional[str] = Form(None),
    status_value: str = Form("active", alias="status"),
    file: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a material. A new file or thumbnail replaces the stored one.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    material = await get_material_or_404(db, material_id)
    material_data = parse_form(
        MaterialUpdate,
        title=title,
        description=description,
        data_structure_id=data_structure_id,
        unit_id=unit_id,
        topic_id=topic_id,
        subtopic_id=subtopic_id,
        type=material_type,
        status=status_value,
    )
    if material_data.data_structure_id != material.data_structure_id:
        await ensure_data_structure(db, material_data.data_structure_id)

    has_thumbnail = check_thumbnail(thumbnail)

    previous = None
    if file is not None and file.filename:
        stored = await store_material_file(file, material_data.type)
        previous = (material.id, material.file_path, material.mime_type)
        for key, value in stored.items():
            setattr(material, key, value)

    previous_thumbnail = None
    if has_thumbnail:
        thumbnail_path = await store_thumbnail(thumbnail)
        previous_thumbnail = (material.id, material.thumbnail_url)
        material.thumbnail_url = thumbnail_path

    for key, value in material_data.model_dump().items():
        setattr(material, key, value)

    await db.commit()

    # Old object goes only after the new one is stored and saved
    if previous is not None:
        await remove_material_file(*previous)
    if previous_thumbnail is not None:
        await remove_thumbnail(*previous_thumbnail)

    return serialize_material(await get_material_or_404(db, material_id))

@router.delete("/materials", response_model=BulkDeleteResponse)
async def delete_materials(
    ids: List[int] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete materials by id. Stored files and thumbnails are removed first.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(select(Material).where(Material.id.in_(ids)))
    materials = result.scalars().all()

    for material in materials:
        await remove_material_file(material.id, material.file_path, material.mime_type)
        await remove_thumbnail(material.id, material.thumbnail_url)

    material_ids = [material.id for material in materials]
    await db.execute(delete(Material).where(Material.id.in_(material_ids)))
    await db.commit()

    return {"deleted": len(material_ids), "detail": f"{len(material_ids)} material(s) deleted successfully"}
