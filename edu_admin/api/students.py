import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import or_, and_, func, delete

from edu_admin.database import get_db
from edu_admin.schemas.students import StudentCreate, StudentUpdate, StudentResponse, StudentListResponse
from edu_admin.models.users import User, Student, ROLE_STUDENT
from edu_admin.models.tenants import Company, School, Branch
from edu_admin.middleware.authentication import (
    get_current_user, validate_admin_access, ensure_company_access, is_system_admin
)
from edu_admin.services.auth import get_password_hash, get_or_create_role

router = APIRouter()
logger = logging.getLogger(__name__)

USER_FIELDS = {"name": "full_name", "phone": "phone"}

def student_query():
    return (
        select(Student, User, School.name, Branch.name)
        .join(User, Student.user_id == User.id)
        .outerjoin(School, Student.school_id == School.id)
        .outerjoin(Branch, Student.branch_id == Branch.id)
        .execution_options(populate_existing=True)
    )

def serialize_student(student: Student, user: User, school_name: Optional[str], branch_name: Optional[str]) -> dict:
    return {
        "id": student.id,
        "user_id": user.id,
        "name": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "company_id": student.company_id,
        "school_id": student.school_id,
        "school_name": school_name,
        "branch_id": student.branch_id,
        "branch_name": branch_name,
        "student_code": student.student_code,
        "enrollment_number": student.enrollment_number,
        "grade_level": student.grade_level,
        "section": student.section,
        "admission_date": student.admission_date,
        "parent_name": student.parent_name,
        "parent_contact": student.parent_contact,
        "parent_email": student.parent_email,
        "is_active": student.is_active,
        "created_at": student.created_at,
        "updated_at": student.updated_at,
    }

async def load_student(db: AsyncSession, student_id: int) -> dict:
    result = await db.execute(student_query().where(Student.id == student_id))
    row = result.first()
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )
    return serialize_student(*row)

async def validate_placement(
    db: AsyncSession,
    company_id: int,
    school_id: Optional[int],
    branch_id: Optional[int],
) -> None:
    """School must belong to the company and branch to the school."""
    if school_id is not None:
        result = await db.execute(select(School).where(School.id == school_id))
        school = result.scalars().first()
        if not school:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="School not found"
            )
        if school.company_id != company_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="School does not belong to the student's company"
            )

    if branch_id is not None:
        result = await db.execute(select(Branch).where(Branch.id == branch_id))
        branch = result.scalars().first()
        if not branch:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Branch not found"
            )
        if school_id is not None and branch.school_id != school_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Branch does not belong to the selected school"
            )

# Student endpoints
@router.post("/students", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def create_student(
    student_data: StudentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a student together with its user account.
    """
    await validate_admin_access(current_user, db)
    ensure_company_access(current_user, student_data.company_id)

    result = await db.execute(select(Company).where(Company.id == student_data.company_id))
    if not result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found"
        )

    await validate_placement(db, student_data.company_id, student_data.school_id, student_data.branch_id)

    # Uniqueness checks
    result = await db.execute(select(Student).where(Student.student_code == student_data.student_code))
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Student code already exists"
        )

    result = await db.execute(select(Student).where(Student.enrollment_number == student_data.enrollment_number))
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Enrollment number already exists"
        )

    email = student_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already in use"
        )

    student_role = await get_or_create_role(db, ROLE_STUDENT)

    # User and student row go in one transaction
    user = User(
        company_id=student_data.company_id,
        role_id=student_role.id,
        full_name=student_data.name,
        email=email,
        phone=student_data.phone,
        hashed_password=get_password_hash(student_data.password),
        is_active=student_data.is_active,
    )
    db.add(user)
    await db.flush()

    student = Student(
        user_id=user.id,
        company_id=student_data.company_id,
        school_id=student_data.school_id,
        branch_id=student_data.branch_id,
        student_code=student_data.student_code,
        enrollment_number=student_data.enrollment_number,
        grade_level=student_data.grade_level,
        section=student_data.section,
        admission_date=student_data.admission_date,
        parent_name=student_data.parent_name,
        parent_contact=student_data.parent_contact,
        parent_email=student_data.parent_email,
        is_active=student_data.is_active,
    )
    db.add(student)
    await db.commit()

    logger.info(f"Student {student.id} ({student.student_code}) created by user {current_user.id}")
    return await load_student(db, student.id)

@router.get("/students", response_model=StudentListResponse)
async def get_students(
    company_id: Optional[int] = None,
    school_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    admission_year: Optional[int] = Query(None, ge=1900, le=2999),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List students with filtering and pagination.
    """
    await validate_admin_access(current_user, db)

    conditions = []
    if not is_system_admin(current_user):
        conditions.append(Student.company_id == current_user.company_id)
    if company_id:
        conditions.append(Student.company_id == company_id)
    if school_id:
        conditions.append(Student.school_id == school_id)
    if branch_id:
        conditions.append(Student.branch_id == branch_id)
    if grade_level:
        conditions.append(Student.grade_level == grade_level)
    if section:
        conditions.append(Student.section == section)
    if is_active is not None:
        conditions.append(Student.is_active == is_active)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            User.full_name.ilike(pattern),
            User.email.ilike(pattern),
            Student.student_code.ilike(pattern),
            Student.enrollment_number.ilike(pattern),
        ))
    if admission_year:
        conditions.append(and_(
            Student.admission_date >= date(admission_year, 1, 1),
            Student.admission_date < date(admission_year + 1, 1, 1),
        ))

    count_query = select(func.count(Student.id)).join(User, Student.user_id == User.id).where(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        student_query()
        .where(*conditions)
        .order_by(Student.created_at.desc(), Student.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(query)

    return {"total": total, "items": [serialize_student(*row) for row in result.all()]}

@router.get("/students/{student_id}", response_model=StudentResponse)
async def get_student(
    student_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a specific student by ID.
    """
    await validate_admin_access(current_user, db)

    student = await load_student(db, student_id)
    ensure_company_access(current_user, student["company_id"])
    return student

@router.put("/students/{student_id}", response_model=StudentResponse)
async def update_student(
    student_data: StudentUpdate,
    student_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a student and its user account.
    """
    await validate_admin_access(current_user, db)

    result = await db.execute(
        select(Student, User).join(User, Student.user_id == User.id).where(Student.id == student_id)
    )
    row = result.first()
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )
    student, user = row
    ensure_company_access(current_user, student.company_id)

    update_data = student_data.model_dump(exclude_unset=True)

    if "name" in update_data and not update_data["name"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name cannot be empty"
        )

    school_id = update_data.get("school_id", student.school_id)
    branch_id = update_data.get("branch_id", student.branch_id)
    if "school_id" in update_data or "branch_id" in update_data:
        await validate_placement(db, student.company_id, school_id, branch_id)

    password = update_data.pop("password", None)
    if password:
        user.hashed_password = get_password_hash(password)

    for key, column in USER_FIELDS.items():
        if key in update_data:
            setattr(user, column, update_data.pop(key))

    if "is_active" in update_data:
        user.is_active = update_data["is_active"]

    for key, value in update_data.items():
        setattr(student, key, value)

    await db.commit()
    return await load_student(db, student_id)

@router.delete("/students/{student_id}", status_code=status.HTTP_200_OK)
async def delete_student(
    student_id: int = Path(..., gt=0),
    hard: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Deactivate a student, or delete it with its user account when hard=true.
    """
    await validate_admin_access(current_user, db)

    result = await db.execute(
        select(Student, User).join(User, Student.user_id == User.id).where(Student.id == student_id)
    )
    row = result.first()
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )
    student, user = row
    ensure_company_access(current_user, student.company_id)

    if hard:
        user_id = user.id
        await db.execute(delete(Student).where(Student.id == student_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()
        logger.info(f"Student {student_id} deleted by user {current_user.id}")
        return {"detail": "Student deleted successfully"}

    student.is_active = False
    user.is_active = False
    await db.commit()

    logger.info(f"Student {student_id} deactivated by user {current_user.id}")
    return {"detail": "Student deactivated successfully"}
