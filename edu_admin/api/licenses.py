import logging
from datetime import date, datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete, or_

from edu_admin.database import get_db
from edu_admin.schemas.licenses import (
    LicenseCreate, LicenseUpdate, LicenseInDB, CompanyLicenses,
    LicenseActionCreate, LicenseActionInDB, LicenseActionResult,
    StudentLicenseAssign, StudentLicenseInDB, StudentLicenseAssignResult,
)
from edu_admin.schemas.tenants import BulkDeleteResponse
from edu_admin.models.licenses import (
    License, LicenseAction, StudentLicense,
    STUDENT_LICENSE_PENDING, STUDENT_LICENSE_ACTIVATED, STUDENT_LICENSE_REVOKED,
)
from edu_admin.models.catalogue import DataStructure
from edu_admin.models.tenants import Company, STATUS_ACTIVE
from edu_admin.models.users import User, Student
from edu_admin.middleware.authentication import (
    get_current_user, validate_admin_access, ensure_company_access, is_system_admin
)
from edu_admin.services.licensing import (
    LicenseActionError, apply_action, apply_status_transition, can_assign, can_activate,
    is_expired, is_expiring_soon, remaining_quantity, REVOCABLE_STATUSES,
)

router = APIRouter()
logger = logging.getLogger(__name__)

EXPIRED_FILTER = "expired"

def serialize_license(license: License, today: Optional[date] = None) -> dict:
    ds = license.data_structure
    return {
        "id": license.id,
        "company_id": license.company_id,
        "company_name": license.company.name if license.company else "Unknown Company",
        "data_structure_id": license.data_structure_id,
        "region_name": ds.region.name if ds and ds.region else "Unknown Region",
        "program_name": ds.program.name if ds and ds.program else "Unknown Program",
        "provider_name": ds.provider.name if ds and ds.provider else "Unknown Provider",
        "subject_name": ds.subject.name if ds and ds.subject else "Unknown Subject",
        "total_quantity": license.total_quantity,
        "used_quantity": license.used_quantity or 0,
        "total_assigned": license.total_assigned or 0,
        "total_consumed": license.total_consumed or 0,
        "remaining_quantity": remaining_quantity(license),
        "start_date": license.start_date,
        "end_date": license.end_date,
        "status": license.status,
        "notes": license.notes,
        "is_expired": is_expired(license, today),
        "is_expiring_soon": is_expiring_soon(license, today),
        "created_at": license.created_at,
        "updated_at": license.updated_at,
    }

async def get_license_or_404(db: AsyncSession, license_id: int) -> License:
    result = await db.execute(
        select(License).where(License.id == license_id).execution_options(populate_existing=True)
    )
    license = result.scalars().first()
    if not license:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="License not found"
        )
    return license

def license_list_query(
    current_user: User,
    company_ids: Optional[List[int]] = None,
    region_ids: Optional[List[int]] = None,
    program_ids: Optional[List[int]] = None,
    provider_ids: Optional[List[int]] = None,
    subject_ids: Optional[List[int]] = None,
    status_filter: Optional[List[str]] = None,
):
    query = select(License).join(DataStructure, License.data_structure_id == DataStructure.id)
    if not is_system_admin(current_user):
        query = query.where(License.company_id == current_user.company_id)
    if company_ids:
        query = query.where(License.company_id.in_(company_ids))
    if region_ids:
        query = query.where(DataStructure.region_id.in_(region_ids))
    if program_ids:
        query = query.where(DataStructure.program_id.in_(program_ids))
    if provider_ids:
        query = query.where(DataStructure.provider_id.in_(provider_ids))
    if subject_ids:
        query = query.where(DataStructure.subject_id.in_(subject_ids))
    if status_filter:
        statuses = [s for s in status_filter if s != EXPIRED_FILTER]
        conditions = []
        if statuses:
            conditions.append(License.status.in_(statuses))
        if EXPIRED_FILTER in status_filter:
            conditions.append(License.end_date < date.today())
        query = query.where(or_(*conditions))
    return query.order_by(License.created_at.desc(), License.id.desc())

# License endpoints
@router.post("/licenses", response_model=LicenseInDB, status_code=status.HTTP_201_CREATED)
async def create_license(
    license_data: LicenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a license for a company on a data structure (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(select(Company).where(Company.id == license_data.company_id))
    if not result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found"
        )

    result = await db.execute(select(DataStructure).where(DataStructure.id == license_data.data_structure_id))
    if not result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Data structure not found"
        )

    result = await db.execute(
        select(License).where(
            License.company_id == license_data.company_id,
            License.data_structure_id == license_data.data_structure_id,
            License.status == STATUS_ACTIVE,
        )
    )
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot create duplicate license. Please use Expand, Extend, or Renew."
        )

    db_license = License(**license_data.model_dump())
    db.add(db_license)
    await db.commit()

    logger.info(f"License {db_license.id} created for company {db_license.company_id} by user {current_user.id}")
    return serialize_license(await get_license_or_404(db, db_license.id))

@router.get("/licenses", response_model=List[LicenseInDB])
async def get_licenses(
    company_ids: Optional[List[int]] = Query(None),
    region_ids: Optional[List[int]] = Query(None),
    program_ids: Optional[List[int]] = Query(None),
    provider_ids: Optional[List[int]] = Query(None),
    subject_ids: Optional[List[int]] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List licenses with resolved names, remaining quantity and expiry flags.
    """
    await validate_admin_access(current_user, db)

    query = license_list_query(
        current_user, company_ids, region_ids, program_ids, provider_ids, subject_ids, status_filter
    )
    result = await db.execute(query)
    today = date.today()
    return [serialize_license(license, today) for license in result.scalars().all()]

@router.get("/licenses/by-company", response_model=List[CompanyLicenses])
async def get_licenses_by_company(
    company_ids: Optional[List[int]] = Query(None),
    region_ids: Optional[List[int]] = Query(None),
    program_ids: Optional[List[int]] = Query(None),
    provider_ids: Optional[List[int]] = Query(None),
    subject_ids: Optional[List[int]] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Licenses grouped per company, with quantity totals.
    """
    await validate_admin_access(current_user, db)

    query = license_list_query(
        current_user, company_ids, region_ids, program_ids, provider_ids, subject_ids, status_filter
    )
    result = await db.execute(query)
    today = date.today()

    groups = {}
    for license in result.scalars().all():
        row = serialize_license(license, today)
        group = groups.setdefault(license.company_id, {
            "company_id": license.company_id,
            "company_name": row["company_name"],
            "license_count": 0,
            "total_quantity": 0,
            "total_assigned": 0,
            "total_consumed": 0,
            "licenses": [],
        })
        group["license_count"] += 1
        group["total_quantity"] += row["total_quantity"]
        group["total_assigned"] += row["total_assigned"]
        group["total_consumed"] += row["total_consumed"]
        group["licenses"].append(row)

    return sorted(groups.values(), key=lambda g: g["company_name"].lower())

@router.get("/licenses/{license_id}", response_model=LicenseInDB)
async def get_license(
    license_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific license by ID.
    """
    await validate_admin_access(current_user, db)

    license = await get_license_or_404(db, license_id)
    ensure_company_access(current_user, license.company_id)
    return serialize_license(license)

@router.put("/licenses/{license_id}", response_model=LicenseInDB)
async def update_license(
    license_data: LicenseUpdate,
    license_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update the validity window or notes of a license (system_admin only).
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    license = await get_license_or_404(db, license_id)
    update_data = license_data.model_dump(exclude_unset=True)

    start_date = update_data.get("start_date") or license.start_date
    end_date = update_data.get("end_date") or license.end_date
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date must be after or equal to start date"
        )

    license.start_date = start_date
    license.end_date = end_date
    if "notes" in update_data:
        license.notes = update_data["notes"]

    await db.commit()
    return serialize_license(await get_license_or_404(db, license_id))

@router.delete("/licenses", response_model=BulkDeleteResponse)
async def delete_licenses(
    ids: List[int] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete licenses by id (system_admin only). Actions and seats go with them.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    await db.execute(delete(StudentLicense).where(StudentLicense.license_id.in_(ids)))
    await db.execute(delete(LicenseAction).where(LicenseAction.license_id.in_(ids)))
    result = await db.execute(delete(License).where(License.id.in_(ids)))
    await db.commit()

    return {"deleted": result.rowcount, "detail": f"{result.rowcount} license(s) deleted successfully"}

# License action endpoints
@router.post("/licenses/{license_id}/actions", response_model=LicenseActionResult, status_code=status.HTTP_201_CREATED)
async def create_license_action(
    action_data: LicenseActionCreate,
    license_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Expand, extend or renew a license and record the action.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    license = await get_license_or_404(db, license_id)

    try:
        change_quantity = apply_action(
            license,
            action_data.action_type,
            additional_quantity=action_data.additional_quantity,
            new_total_quantity=action_data.new_total_quantity,
            new_start_date=action_data.new_start_date,
            new_end_date=action_data.new_end_date,
        )
    except LicenseActionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    action = LicenseAction(
        license_id=license.id,
        action_type=action_data.action_type,
        change_quantity=change_quantity,
        new_end_date=license.end_date if action_data.new_end_date else None,
        notes=action_data.notes,
        performed_by=current_user.id,
    )
    db.add(action)
    await db.commit()
    await db.refresh(action)

    logger.info(f"License {license_id} {action_data.action_type} by user {current_user.id}")
    return {
        "action": action,
        "license": serialize_license(await get_license_or_404(db, license_id)),
        "detail": f"License {action_data.action_type.lower()} completed successfully",
    }

@router.get("/licenses/{license_id}/actions", response_model=List[LicenseActionInDB])
async def get_license_actions(
    license_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Action history of a license, newest first.
    """
    await validate_admin_access(current_user, db)

    license = await get_license_or_404(db, license_id)
    ensure_company_access(current_user, license.company_id)

    result = await db.execute(
        select(LicenseAction)
        .where(LicenseAction.license_id == license_id)
        .order_by(LicenseAction.created_at.desc(), LicenseAction.id.desc())
    )
    return result.scalars().all()

# Student license endpoints
@router.post("/licenses/{license_id}/students", response_model=StudentLicenseAssignResult, status_code=status.HTTP_201_CREATED)
async def assign_license(
    assign_data: StudentLicenseAssign,
    license_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Assign a license to students. Students already holding a seat are skipped.
    """
    await validate_admin_access(current_user, db)

    license = await get_license_or_404(db, license_id)
    ensure_company_access(current_user, license.company_id)

    result = await db.execute(select(Student).where(Student.id.in_(assign_data.student_ids)))
    students = {student.id: student for student in result.scalars().all()}
    missing = [sid for sid in assign_data.student_ids if sid not in students]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Student(s) not found: {', '.join(str(sid) for sid in missing)}"
        )
    for student in students.values():
        if student.company_id != license.company_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Student does not belong to the license's company"
            )

    result = await db.execute(
        select(StudentLicense.student_id).where(
            StudentLicense.license_id == license_id,
            StudentLicense.status.in_(REVOCABLE_STATUSES),
        )
    )
    holding = set(result.scalars().all())

    assigned, skipped = [], []
    for student_id in assign_data.student_ids:
        if student_id in holding:
            skipped.append(student_id)
            continue

        reason = can_assign(license)
        if reason:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=reason
            )

        seat = StudentLicense(
            license_id=license.id,
            student_id=student_id,
            status=STUDENT_LICENSE_PENDING,
            assigned_by=current_user.id,
            valid_from_snapshot=license.start_date,
            valid_to_snapshot=license.end_date,
        )
        db.add(seat)
        apply_status_transition(license, None, STUDENT_LICENSE_PENDING)
        assigned.append(seat)

    await db.commit()
    for seat in assigned:
        await db.refresh(seat)

    logger.info(f"License {license_id} assigned to {len(assigned)} student(s) by user {current_user.id}")
    return {
        "assigned": assigned,
        "skipped": skipped,
        "detail": f"License assigned to {len(assigned)} student(s)",
    }

@router.get("/licenses/{license_id}/students", response_model=List[StudentLicenseInDB])
async def get_license_students(
    license_id: int = Path(..., gt=0),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Seats of a license.
    """
    await validate_admin_access(current_user, db)

    license = await get_license_or_404(db, license_id)
    ensure_company_access(current_user, license.company_id)

    query = select(StudentLicense).where(StudentLicense.license_id == license_id)
    if status_filter:
        query = query.where(StudentLicense.status.in_(status_filter))
    result = await db.execute(query.order_by(StudentLicense.id))
    return result.scalars().all()

async def get_seat_or_404(db: AsyncSession, seat_id: int) -> StudentLicense:
    result = await db.execute(
        select(StudentLicense).where(StudentLicense.id == seat_id).execution_options(populate_existing=True)
    )
    seat = result.scalars().first()
    if not seat:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student license not found"
        )
    return seat

@router.post("/student-licenses/{seat_id}/activate", response_model=StudentLicenseInDB)
async def activate_student_license(
    seat_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Activate an assigned license. The student it belongs to may do this too.
    """
    seat = await get_seat_or_404(db, seat_id)

    result = await db.execute(select(Student).where(Student.id == seat.student_id))
    student = result.scalars().first()
    if student is None or student.user_id != current_user.id:
        await validate_admin_access(current_user, db)
        ensure_company_access(current_user, student.company_id if student else None)

    if seat.status != STUDENT_LICENSE_PENDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only licenses pending activation can be activated"
        )

    reason = can_activate(seat.valid_from_snapshot, seat.valid_to_snapshot)
    if reason:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=reason
        )

    license = await get_license_or_404(db, seat.license_id)
    seat.status = STUDENT_LICENSE_ACTIVATED
    seat.activated_on = datetime.now(timezone.utc)
    apply_status_transition(license, STUDENT_LICENSE_PENDING, STUDENT_LICENSE_ACTIVATED)

    await db.commit()
    return await get_seat_or_404(db, seat_id)

@router.post("/student-licenses/{seat_id}/revoke", response_model=StudentLicenseInDB)
async def revoke_student_license(
    seat_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Revoke a student's license and release its seat.
    """
    await validate_admin_access(current_user, db)

    seat = await get_seat_or_404(db, seat_id)
    license = await get_license_or_404(db, seat.license_id)
    ensure_company_access(current_user, license.company_id)

    if seat.status == STUDENT_LICENSE_REVOKED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="License is already revoked"
        )

    old_status = seat.status
    seat.status = STUDENT_LICENSE_REVOKED
    apply_status_transition(license, old_status, STUDENT_LICENSE_REVOKED)

    await db.commit()
    logger.info(f"Student license {seat_id} revoked by user {current_user.id}")
    return await get_seat_or_404(db, seat_id)
