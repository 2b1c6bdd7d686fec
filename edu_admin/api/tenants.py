import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete, or_

from edu_admin.config import settings
from edu_admin.database import get_db
from edu_admin.schemas.tenants import (
    CompanyCreate, CompanyUpdate, CompanyInDB,
    SchoolCreate, SchoolUpdate, SchoolInDB,
    BranchCreate, BranchUpdate, BranchInDB,
    BulkDeleteResponse,
)
from edu_admin.models.tenants import Company, School, Branch, BranchAdditional
from edu_admin.models.users import User
from edu_admin.middleware.authentication import (
    get_current_user, validate_admin_access, ensure_company_access, is_system_admin
)
from edu_admin.services.storage import (
    upload_file_to_storage, delete_file_from_storage, get_public_url, IMAGE_EXTENSIONS
)

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_LOGO_SIZE = 5 * 1024 * 1024

# Company endpoints
@router.post("/companies", response_model=CompanyInDB, status_code=status.HTTP_201_CREATED)
async def create_company(
    company_data: CompanyCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a new company (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(select(Company).where(Company.name == company_data.name))
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Company with this name already exists"
        )

    db_company = Company(**company_data.model_dump())
    db.add(db_company)
    await db.commit()
    await db.refresh(db_company)

    logger.info(f"Company {db_company.id} created by user {current_user.id}")
    return db_company

@router.get("/companies", response_model=List[CompanyInDB])
async def get_companies(
    search: Optional[str] = None,
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List companies, newest first. Pass status=active for option lists.
    """
    await validate_admin_access(current_user, db)

    query = select(Company)
    if not is_system_admin(current_user):
        query = query.where(Company.id == current_user.company_id)
    if search:
        query = query.where(or_(Company.name.ilike(f"%{search}%"), Company.code.ilike(f"%{search}%")))
    if status_filter:
        query = query.where(Company.status.in_(status_filter))

    result = await db.execute(query.order_by(Company.created_at.desc(), Company.id.desc()))
    return result.scalars().all()

@router.get("/companies/{company_id}", response_model=CompanyInDB)
async def get_company(
    company_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific company by ID.
    """
    await validate_admin_access(current_user, db)
    ensure_company_access(current_user, company_id)

    result = await db.execute(select(Company).where(Company.id == company_id))
    company = result.scalars().first()
    if not company:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found"
        )
    return company

@router.put("/companies/{company_id}", response_model=CompanyInDB)
async def update_company(
    company_data: CompanyUpdate,
    company_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a company (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(select(Company).where(Company.id == company_id))
    company = result.scalars().first()
    if not company:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found"
        )

    update_data = company_data.model_dump(exclude_unset=True)
    if "name" in update_data and not update_data["name"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Company name is required"
        )
    for key, value in update_data.items():
        setattr(company, key, value)

    await db.commit()
    await db.refresh(company)
    return company

@router.delete("/companies", response_model=BulkDeleteResponse)
async def delete_companies(
    ids: List[int] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete companies by id (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(delete(Company).where(Company.id.in_(ids)))
    await db.commit()

    return {"deleted": result.rowcount, "detail": f"{result.rowcount} company(ies) deleted successfully"}

# School endpoints
@router.post("/schools", response_model=SchoolInDB, status_code=status.HTTP_201_CREATED)
async def create_school(
    school_data: SchoolCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a new school.
    """
    await validate_admin_access(current_user, db)
    ensure_company_access(current_user, school_data.company_id)

    result = await db.execute(select(Company).where(Company.id == school_data.company_id))
    if not result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found"
        )

    db_school = School(**school_data.model_dump())
    db.add(db_school)
    await db.commit()
    await db.refresh(db_school)

    return db_school

@router.get("/schools", response_model=List[SchoolInDB])
async def get_schools(
    search: Optional[str] = None,
    company_ids: Optional[List[int]] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List schools, newest first.
    """
    await validate_admin_access(current_user, db)

    query = select(School)
    if not is_system_admin(current_user):
        query = query.where(School.company_id == current_user.company_id)
    if search:
        query = query.where(or_(School.name.ilike(f"%{search}%"), School.code.ilike(f"%{search}%")))
    if company_ids:
        query = query.where(School.company_id.in_(company_ids))
    if status_filter:
        query = query.where(School.status.in_(status_filter))

    result = await db.execute(query.order_by(School.created_at.desc(), School.id.desc()))
    return result.scalars().all()

@router.get("/schools/{school_id}", response_model=SchoolInDB)
async def get_school(
    school_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific school by ID.
    """
    await validate_admin_access(current_user, db)

    school = await get_school_or_404(db, school_id)
    ensure_company_access(current_user, school.company_id)
    return school

@router.put("/schools/{school_id}", response_model=SchoolInDB)
async def update_school(
    school_data: SchoolUpdate,
    school_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a school.
    """
    await validate_admin_access(current_user, db)

    school = await get_school_or_404(db, school_id)
    ensure_company_access(current_user, school.company_id)

    update_data = school_data.model_dump(exclude_unset=True)
    if "name" in update_data and not update_data["name"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="School name is required"
        )
    if "company_id" in update_data:
        ensure_company_access(current_user, update_data["company_id"])
    for key, value in update_data.items():
        setattr(school, key, value)

    await db.commit()
    await db.refresh(school)
    return school

@router.delete("/schools", response_model=BulkDeleteResponse)
async def delete_schools(
    ids: List[int] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete schools by id.
    """
    await validate_admin_access(current_user, db)

    result = await db.execute(select(School).where(School.id.in_(ids)))
    for school in result.scalars().all():
        ensure_company_access(current_user, school.company_id)

    result = await db.execute(delete(School).where(School.id.in_(ids)))
    await db.commit()

    return {"deleted": result.rowcount, "detail": f"{result.rowcount} school(s) deleted successfully"}

# Branch helpers
async def get_school_or_404(db: AsyncSession, school_id: int) -> School:
    result = await db.execute(select(School).where(School.id == school_id))
    school = result.scalars().first()
    if not school:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="School not found"
        )
    return school

def branch_query():
    return (
        select(Branch, School.name, Company.id, Company.name)
        .join(School, Branch.school_id == School.id)
        .join(Company, School.company_id == Company.id)
        .execution_options(populate_existing=True)
    )

def serialize_branch(branch: Branch, school_name: str, company_id: int, company_name: str) -> dict:
    return {
        "id": branch.id,
        "name": branch.name,
        "code": branch.code,
        "school_id": branch.school_id,
        "status": branch.status,
        "address": branch.address,
        "notes": branch.notes,
        "logo": branch.logo,
        "logo_url": get_public_url(branch.logo),
        "school_name": school_name,
        "company_id": company_id,
        "company_name": company_name,
        "additional": branch.additional,
        "created_at": branch.created_at,
        "updated_at": branch.updated_at,
    }

async def load_branch(db: AsyncSession, branch_id: int) -> dict:
    result = await db.execute(branch_query().where(Branch.id == branch_id))
    row = result.first()
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Branch not found"
        )
    return serialize_branch(*row)

async def upsert_branch_additional(db: AsyncSession, branch_id: int, additional_data: dict) -> None:
    result = await db.execute(select(BranchAdditional).where(BranchAdditional.branch_id == branch_id))
    additional = result.scalars().first()
    if additional is None:
        db.add(BranchAdditional(branch_id=branch_id, **additional_data))
        return
    for key, value in additional_data.items():
        setattr(additional, key, value)

async def validate_branch_school(db: AsyncSession, branch_data: BranchCreate, current_user: User) -> None:
    ensure_company_access(current_user, branch_data.company_id)
    school = await get_school_or_404(db, branch_data.school_id)
    if school.company_id != branch_data.company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="School does not belong to the selected company"
        )

# Branch endpoints
@router.post("/branches", response_model=BranchInDB, status_code=status.HTTP_201_CREATED)
async def create_branch(
    branch_data: BranchCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a branch together with its additional details.
    """
    await validate_admin_access(current_user, db)
    await validate_branch_school(db, branch_data, current_user)

    db_branch = Branch(**branch_data.branch_data())
    db.add(db_branch)
    await db.flush()

    await upsert_branch_additional(db, db_branch.id, branch_data.additional_data())
    await db.commit()

    logger.info(f"Branch {db_branch.id} created by user {current_user.id}")
    return await load_branch(db, db_branch.id)

@router.get("/branches", response_model=List[BranchInDB])
async def get_branches(
    search: Optional[str] = None,
    company_ids: Optional[List[int]] = Query(None),
    school_ids: Optional[List[int]] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List branches, newest first, with school and company names.
    """
    await validate_admin_access(current_user, db)

    query = branch_query()
    if not is_system_admin(current_user):
        query = query.where(Company.id == current_user.company_id)
    if search:
        query = query.where(or_(Branch.name.ilike(f"%{search}%"), Branch.code.ilike(f"%{search}%")))
    if company_ids:
        query = query.where(Company.id.in_(company_ids))
    if school_ids:
        query = query.where(Branch.school_id.in_(school_ids))
    if status_filter:
        query = query.where(Branch.status.in_(status_filter))

    result = await db.execute(query.order_by(Branch.created_at.desc(), Branch.id.desc()))
    return [serialize_branch(*row) for row in result.all()]

@router.get("/branches/{branch_id}", response_model=BranchInDB)
async def get_branch(
    branch_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific branch by ID.
    """
    await validate_admin_access(current_user, db)

    branch = await load_branch(db, branch_id)
    ensure_company_access(current_user, branch["company_id"])
    return branch

@router.put("/branches/{branch_id}", response_model=BranchInDB)
async def update_branch(
    branch_data: BranchUpdate,
    branch_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a branch and upsert its additional details.
    """
    await validate_admin_access(current_user, db)

    result = await db.execute(select(Branch).where(Branch.id == branch_id))
    branch = result.scalars().first()
    if not branch:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Branch not found"
        )

    current_school = await get_school_or_404(db, branch.school_id)
    ensure_company_access(current_user, current_school.company_id)
    await validate_branch_school(db, branch_data, current_user)

    for key, value in branch_data.branch_data().items():
        setattr(branch, key, value)
    await upsert_branch_additional(db, branch.id, branch_data.additional_data())

    await db.commit()
    return await load_branch(db, branch.id)

@router.delete("/branches", response_model=BulkDeleteResponse)
async def delete_branches(
    ids: List[int] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete branches by id. Logos are removed from storage first.
    """
    await validate_admin_access(current_user, db)

    result = await db.execute(branch_query().where(Branch.id.in_(ids)))
    branches = result.all()

    for branch, _, company_id, _ in branches:
        ensure_company_access(current_user, company_id)

    for branch, _, _, _ in branches:
        if branch.logo:
            removed = await delete_file_from_storage(branch.logo)
            if not removed:
                logger.warning(f"Could not remove logo {branch.logo} of branch {branch.id}")

    branch_ids = [branch.id for branch, _, _, _ in branches]
    await db.execute(delete(BranchAdditional).where(BranchAdditional.branch_id.in_(branch_ids)))
    await db.execute(delete(Branch).where(Branch.id.in_(branch_ids)))
    await db.commit()

    return {"deleted": len(branch_ids), "detail": f"{len(branch_ids)} branch(es) deleted successfully"}

@router.post("/branches/{branch_id}/logo", response_model=BranchInDB)
async def upload_branch_logo(
    branch_id: int = Path(..., gt=0),
    logo: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Upload a branch logo, replacing the previous one.
    """
    await validate_admin_access(current_user, db)

    current = await load_branch(db, branch_id)
    ensure_company_access(current_user, current["company_id"])

    uploaded = await upload_file_to_storage(
        logo,
        settings.BRANCH_LOGOS_BUCKET,
        allowed_extensions=IMAGE_EXTENSIONS,
        max_size=MAX_LOGO_SIZE,
        resource_type="image",
    )

    result = await db.execute(select(Branch).where(Branch.id == branch_id))
    branch = result.scalars().first()
    previous_logo = branch.logo
    branch.logo = uploaded["public_id"]
    await db.commit()

    if previous_logo:
        removed = await delete_file_from_storage(previous_logo)
        if not removed:
            logger.warning(f"Could not remove previous logo {previous_logo} of branch {branch_id}")

    return await load_branch(db, branch_id)
