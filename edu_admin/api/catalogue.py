import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy import delete, or_

from edu_admin.database import get_db
from edu_admin.schemas.catalogue import (
    CatalogueItemCreate, CatalogueItemUpdate, CatalogueItemInDB,
    ProgramCreate, ProgramUpdate, ProgramInDB,
    DataStructureCreate, DataStructureUpdate, DataStructureInDB,
)
from edu_admin.schemas.tenants import BulkDeleteResponse
from edu_admin.models.catalogue import Region, Program, Provider, Subject, DataStructure
from edu_admin.models.users import User
from edu_admin.middleware.authentication import get_current_user, validate_admin_access

router = APIRouter()
logger = logging.getLogger(__name__)

DUPLICATE_COMBINATION = "This combination already exists"

async def get_or_404(db: AsyncSession, model, item_id: int, label: str):
    result = await db.execute(select(model).where(model.id == item_id))
    item = result.scalars().first()
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found"
        )
    return item

# Program endpoints
@router.post("/programs", response_model=ProgramInDB, status_code=status.HTTP_201_CREATED)
async def create_program(
    program_data: ProgramCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a new program (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    db_program = Program(**program_data.model_dump())
    db.add(db_program)
    await db.commit()
    await db.refresh(db_program)

    logger.info(f"Program {db_program.id} created by user {current_user.id}")
    return db_program

@router.get("/programs", response_model=List[ProgramInDB])
async def get_programs(
    name: Optional[str] = None,
    code: Optional[str] = None,
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List programs, newest first.
    """
    await validate_admin_access(current_user, db)

    query = select(Program)
    if name:
        query = query.where(Program.name.ilike(f"%{name}%"))
    if code:
        query = query.where(Program.code.ilike(f"%{code}%"))
    if status_filter:
        query = query.where(Program.status.in_(status_filter))

    result = await db.execute(query.order_by(Program.created_at.desc(), Program.id.desc()))
    return result.scalars().all()

@router.get("/programs/{program_id}", response_model=ProgramInDB)
async def get_program(
    program_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific program by ID.
    """
    await validate_admin_access(current_user, db)
    return await get_or_404(db, Program, program_id, "Program")

@router.put("/programs/{program_id}", response_model=ProgramInDB)
async def update_program(
    program_data: ProgramUpdate,
    program_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a program (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    program = await get_or_404(db, Program, program_id, "Program")
    for key, value in program_data.model_dump(exclude_unset=True).items():
        if key in ("name", "code", "status") and value is None:
            continue
        setattr(program, key, value)

    await db.commit()
    await db.refresh(program)
    return program

@router.delete("/programs", response_model=BulkDeleteResponse)
async def delete_programs(
    ids: List[int] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete programs by id (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(delete(Program).where(Program.id.in_(ids)))
    await db.commit()

    return {"deleted": result.rowcount, "detail": f"{result.rowcount} program(s) deleted successfully"}

# Region, provider and subject endpoints
def add_catalogue_routes(model, path: str, label: str, plural: str) -> None:
    """Register create/list/get/update/delete routes for a name/code/status table."""

    async def create_item(
        item_data: CatalogueItemCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ):
        await validate_admin_access(current_user, db, system_admin_only=True)

        item = model(**item_data.model_dump())
        db.add(item)
        await db.commit()
        await db.refresh(item)

        logger.info(f"{label} {item.id} created by user {current_user.id}")
        return item

    async def list_items(
        search: Optional[str] = None,
        status_filter: Optional[List[str]] = Query(None, alias="status"),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ):
        await validate_admin_access(current_user, db)

        query = select(model)
        if search:
            query = query.where(or_(model.name.ilike(f"%{search}%"), model.code.ilike(f"%{search}%")))
        if status_filter:
            query = query.where(model.status.in_(status_filter))

        result = await db.execute(query.order_by(model.name.asc()))
        return result.scalars().all()

    async def get_item(
        item_id: int = Path(..., gt=0),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ):
        await validate_admin_access(current_user, db)
        return await get_or_404(db, model, item_id, label)

    async def update_item(
        item_data: CatalogueItemUpdate,
        item_id: int = Path(..., gt=0),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ):
        await validate_admin_access(current_user, db, system_admin_only=True)

        item = await get_or_404(db, model, item_id, label)
        update_data = item_data.model_dump(exclude_unset=True)
        if "name" in update_data and not update_data["name"]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Name is required"
            )
        for key, value in update_data.items():
            setattr(item, key, value)

        await db.commit()
        await db.refresh(item)
        return item

    async def delete_items(
        ids: List[int] = Query(...),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ):
        await validate_admin_access(current_user, db, system_admin_only=True)

        result = await db.execute(delete(model).where(model.id.in_(ids)))
        await db.commit()

        return {"deleted": result.rowcount, "detail": f"{result.rowcount} {plural} deleted successfully"}

    router.add_api_route(
        f"/{path}", create_item, methods=["POST"], response_model=CatalogueItemInDB,
        status_code=status.HTTP_201_CREATED, summary=f"Create {label.lower()}",
    )
    router.add_api_route(
        f"/{path}", list_items, methods=["GET"], response_model=List[CatalogueItemInDB],
        summary=f"List {plural}",
    )
    router.add_api_route(
        f"/{path}/{{item_id}}", get_item, methods=["GET"], response_model=CatalogueItemInDB,
        summary=f"Get {label.lower()}",
    )
    router.add_api_route(
        f"/{path}/{{item_id}}", update_item, methods=["PUT"], response_model=CatalogueItemInDB,
        summary=f"Update {label.lower()}",
    )
    router.add_api_route(
        f"/{path}", delete_items, methods=["DELETE"], response_model=BulkDeleteResponse,
        summary=f"Delete {plural}",
    )

add_catalogue_routes(Region, "regions", "Region", "region(s)")
add_catalogue_routes(Provider, "providers", "Provider", "provider(s)")
add_catalogue_routes(Subject, "subjects", "Subject", "subject(s)")

# Data structure helpers
def serialize_data_structure(ds: DataStructure) -> dict:
    return {
        "id": ds.id,
        "region_id": ds.region_id,
        "program_id": ds.program_id,
        "provider_id": ds.provider_id,
        "subject_id": ds.subject_id,
        "status": ds.status,
        "region_name": ds.region.name if ds.region else "Unknown Region",
        "program_name": ds.program.name if ds.program else "Unknown Program",
        "provider_name": ds.provider.name if ds.provider else "Unknown Provider",
        "subject_name": ds.subject.name if ds.subject else "Unknown Subject",
        "created_at": ds.created_at,
        "updated_at": ds.updated_at,
    }

async def load_data_structure(db: AsyncSession, ds_id: int) -> DataStructure:
    result = await db.execute(
        select(DataStructure)
        .where(DataStructure.id == ds_id)
        .execution_options(populate_existing=True)
    )
    ds = result.scalars().first()
    if not ds:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Data structure not found"
        )
    return ds

async def validate_combination(db: AsyncSession, ids: dict, exclude_id: Optional[int] = None) -> None:
    """All four references must exist and the combination must be new."""
    missing = [name for name in ("region_id", "program_id", "provider_id", "subject_id") if not ids.get(name)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Region, program, provider and subject are required"
        )

    await get_or_404(db, Region, ids["region_id"], "Region")
    await get_or_404(db, Program, ids["program_id"], "Program")
    await get_or_404(db, Provider, ids["provider_id"], "Provider")
    await get_or_404(db, Subject, ids["subject_id"], "Subject")

    query = select(DataStructure).where(
        DataStructure.region_id == ids["region_id"],
        DataStructure.program_id == ids["program_id"],
        DataStructure.provider_id == ids["provider_id"],
        DataStructure.subject_id == ids["subject_id"],
    )
    if exclude_id is not None:
        query = query.where(DataStructure.id != exclude_id)
    result = await db.execute(query)
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=DUPLICATE_COMBINATION
        )

# Data structure endpoints
@router.post("/data-structures", response_model=DataStructureInDB, status_code=status.HTTP_201_CREATED)
async def create_data_structure(
    ds_data: DataStructureCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a region/program/provider/subject combination (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    values = ds_data.model_dump()
    await validate_combination(db, values)

    db_ds = DataStructure(**values)
    db.add(db_ds)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=DUPLICATE_COMBINATION
        )

    logger.info(f"Data structure {db_ds.id} created by user {current_user.id}")
    return serialize_data_structure(await load_data_structure(db, db_ds.id))

@router.get("/data-structures", response_model=List[DataStructureInDB])
async def get_data_structures(
    region_ids: Optional[List[int]] = Query(None),
    program_ids: Optional[List[int]] = Query(None),
    provider_ids: Optional[List[int]] = Query(None),
    subject_ids: Optional[List[int]] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List data structures with resolved names, newest first.
    """
    await validate_admin_access(current_user, db)

    query = select(DataStructure)
    if region_ids:
        query = query.where(DataStructure.region_id.in_(region_ids))
    if program_ids:
        query = query.where(DataStructure.program_id.in_(program_ids))
    if provider_ids:
        query = query.where(DataStructure.provider_id.in_(provider_ids))
    if subject_ids:
        query = query.where(DataStructure.subject_id.in_(subject_ids))
    if status_filter:
        query = query.where(DataStructure.status.in_(status_filter))

    result = await db.execute(query.order_by(DataStructure.created_at.desc(), DataStructure.id.desc()))
    return [serialize_data_structure(ds) for ds in result.scalars().all()]

@router.get("/data-structures/{ds_id}", response_model=DataStructureInDB)
async def get_data_structure(
    ds_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific data structure by ID.
    """
    await validate_admin_access(current_user, db)
    return serialize_data_structure(await load_data_structure(db, ds_id))

@router.put("/data-structures/{ds_id}", response_model=DataStructureInDB)
async def update_data_structure(
    ds_data: DataStructureUpdate,
    ds_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a data structure (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    ds = await load_data_structure(db, ds_id)
    update_data = ds_data.model_dump(exclude_unset=True)

    combination = {
        name: update_data.get(name) or getattr(ds, name)
        for name in ("region_id", "program_id", "provider_id", "subject_id")
    }
    await validate_combination(db, combination, exclude_id=ds_id)

    for key, value in combination.items():
        setattr(ds, key, value)
    if update_data.get("status"):
        ds.status = update_data["status"]

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=DUPLICATE_COMBINATION
        )

    return serialize_data_structure(await load_data_structure(db, ds_id))

@router.delete("/data-structures", response_model=BulkDeleteResponse)
async def delete_data_structures(
    ids: List[int] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete data structures by id (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(delete(DataStructure).where(DataStructure.id.in_(ids)))
    await db.commit()

    return {"deleted": result.rowcount, "detail": f"{result.rowcount} data structure(s) deleted successfully"}
