import logging
from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path, File, UploadFile, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete, update

from edu_admin.database import get_db
from edu_admin.schemas.papers import (
    ImportSessionSummary, ImportSessionDetail, ImportSessionUploadResult,
    StructureUpdate, PaperMetadataUpdate, PaperMetadataResult,
    ProcessQuestionsRequest, ProcessQuestionsResult, AttachmentResult,
    SimulationRequirement, SimulationResultIn, SimulationOutcome,
    QuestionInDB, ImportQuestionsResult, SessionStatusResult,
)
from edu_admin.models.papers import (
    PastPaperImportSession, PaperSetup, Question,
    SESSION_IN_PROGRESS, SESSION_COMPLETED, SESSION_FAILED,
)
from edu_admin.models.users import User
from edu_admin.middleware.authentication import get_current_user, validate_admin_access
from edu_admin.services.import_sessions import (
    InvalidImportDocument, parse_import_document, compute_json_hash, paper_identity,
    find_similar_session, session_metadata, merge_session_metadata, tab_statuses,
    next_tab_for, session_paper_code,
)
from edu_admin.services.question_processing import (
    process_questions, processing_stats, validate_questions, sanitize_question_for_storage,
    ensure_string, parse_int,
)
from edu_admin.services.attachments import AttachmentError, add_attachment, remove_attachment, attach_to_question
from edu_admin.services.simulation import is_simulation_required, complete_simulation

router = APIRouter()
logger = logging.getLogger(__name__)

ENTITY_ID_FIELDS = ("program_id", "provider_id", "subject_id", "region_id", "data_structure_id")
REQUIRED_ENTITY_IDS = ("program_id", "provider_id", "subject_id")

# Session helpers
def serialize_session_summary(session: PastPaperImportSession) -> dict:
    return {
        "id": session.id,
        "json_file_name": session.json_file_name,
        "status": session.status,
        "paper_code": session_paper_code(session),
        "paper_id": session.paper_id,
        "file_size": session.file_size,
        "created_by": session.created_by,
        "last_accessed_at": session.last_accessed_at,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
    }

def serialize_session(session: PastPaperImportSession) -> dict:
    data = serialize_session_summary(session)
    needs_new_import = session.status in (SESSION_COMPLETED, SESSION_FAILED)
    detail = None
    if session.status == SESSION_COMPLETED:
        detail = "This import session has been completed. Please start a new import."
    elif session.status == SESSION_FAILED:
        detail = "This import session has failed. Please start a new import."
    data.update({
        "raw_json": session.raw_json,
        "metadata": session_metadata(session),
        "tabs": tab_statuses(session),
        "next_tab": next_tab_for(session),
        "needs_new_import": needs_new_import,
        "detail": detail,
    })
    return data

async def get_session_or_404(db: AsyncSession, session_id: int) -> PastPaperImportSession:
    result = await db.execute(
        select(PastPaperImportSession)
        .where(PastPaperImportSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    session = result.scalars().first()
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Import session not found"
        )
    return session

async def get_active_session(db: AsyncSession, session_id: int) -> PastPaperImportSession:
    """Only in-progress sessions can move through the wizard."""
    session = await get_session_or_404(db, session_id)
    if session.status != SESSION_IN_PROGRESS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This import session is no longer active. Please start a new import."
        )
    return session

def session_questions(session: PastPaperImportSession) -> list:
    """
    Processed questions saved on the session.

    When none are saved yet the raw questions are processed once and stored, so
    generated question ids stay stable across calls. The caller commits.
    """
    metadata = session_metadata(session)
    if metadata.get("questions"):
        return metadata["questions"]
    raw_questions = (session.raw_json or {}).get("questions") or []
    questions = sanitize_question_for_storage(process_questions(raw_questions))
    if questions:
        merge_session_metadata(session, questions=questions)
    return questions

def optional_int(value) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

# Import session endpoints
@router.post("/papers-setup/sessions", response_model=ImportSessionUploadResult, status_code=status.HTTP_201_CREATED)
async def upload_import_session(
    response: Response,
    file: UploadFile = File(...),
    create_new: bool = False,
    resume_similar: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Start an import from a past paper JSON file, resuming a matching session when there is one.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    content = await file.read()
    try:
        raw_json = parse_import_document(content)
    except InvalidImportDocument as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    json_hash = compute_json_hash(raw_json)

    result = await db.execute(
        select(PastPaperImportSession)
        .where(
            PastPaperImportSession.created_by == current_user.id,
            PastPaperImportSession.status == SESSION_IN_PROGRESS,
        )
        .order_by(PastPaperImportSession.created_at.desc(), PastPaperImportSession.id.desc())
    )
    open_sessions = result.scalars().all()

    duplicate = next((s for s in open_sessions if s.json_hash == json_hash), None)
    if duplicate is not None:
        duplicate.last_accessed_at = datetime.now(timezone.utc)
        await db.commit()
        response.status_code = status.HTTP_200_OK
        logger.info(f"Resuming import session {duplicate.id} for user {current_user.id}")
        return {
            "session": serialize_session(await get_session_or_404(db, duplicate.id)),
            "resumed": True,
            "detail": "Resuming existing import session with identical content",
        }

    paper_code, exam_year = paper_identity(raw_json)
    similar = None if create_new else find_similar_session(open_sessions, paper_code, exam_year, json_hash)
    if similar is not None:
        if not resume_similar:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    f"An import session for paper {paper_code} ({exam_year}) is already in progress "
                    f"with different content (session {similar.id}). "
                    "Resume it or create a new session."
                )
            )
        similar.last_accessed_at = datetime.now(timezone.utc)
        await db.commit()
        response.status_code = status.HTTP_200_OK
        return {
            "session": serialize_session(await get_session_or_404(db, similar.id)),
            "resumed": True,
            "detail": "Resuming existing import session for this paper",
        }

    session = PastPaperImportSession(
        json_file_name=file.filename,
        raw_json=raw_json,
        json_hash=json_hash,
        status=SESSION_IN_PROGRESS,
        file_size=len(content),
        metadata_={
            "upload_timestamp": datetime.now(timezone.utc).isoformat(),
            "file_size": len(content),
        },
        created_by=current_user.id,
    )
    db.add(session)
    await db.commit()

    logger.info(f"Import session {session.id} created from {file.filename} by user {current_user.id}")
    return {
        "session": serialize_session(await get_session_or_404(db, session.id)),
        "resumed": False,
        "detail": "Import session created successfully",
    }

@router.get("/papers-setup/sessions", response_model=List[ImportSessionSummary])
async def get_import_sessions(
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Previous import sessions, newest first.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    query = select(PastPaperImportSession)
    if status_filter:
        query = query.where(PastPaperImportSession.status.in_(status_filter))
    query = query.order_by(PastPaperImportSession.created_at.desc(), PastPaperImportSession.id.desc()).limit(limit)

    result = await db.execute(query)
    return [serialize_session_summary(session) for session in result.scalars().all()]

@router.get("/papers-setup/sessions/{session_id}", response_model=ImportSessionDetail)
async def get_import_session(
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Open an import session with its tab statuses.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_session_or_404(db, session_id)
    session.last_accessed_at = datetime.now(timezone.utc)
    await db.commit()

    return serialize_session(await get_session_or_404(db, session_id))

@router.put("/papers-setup/sessions/{session_id}/structure", response_model=ImportSessionDetail)
async def save_structure(
    structure_data: StructureUpdate,
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Save the reviewed academic structure of the paper.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)
    updates = {
        "academic_structure": structure_data.academic_structure,
        "structure_complete": True,
    }
    if structure_data.entity_ids is not None:
        updates["entity_ids"] = structure_data.entity_ids.model_dump()
    merge_session_metadata(session, **updates)
    await db.commit()

    return serialize_session(await get_session_or_404(db, session_id))

@router.put("/papers-setup/sessions/{session_id}/metadata", response_model=PaperMetadataResult)
async def save_paper_metadata(
    metadata_data: PaperMetadataUpdate,
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create or update the paper for this session, keyed on paper_code.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)
    metadata = session_metadata(session)

    paper_fields = metadata_data.model_dump()
    stored_ids = metadata.get("entity_ids") or {}
    for field in ENTITY_ID_FIELDS:
        if not paper_fields.get(field) and stored_ids.get(field):
            paper_fields[field] = stored_ids[field]

    missing = [field for field in REQUIRED_ENTITY_IDS if not paper_fields.get(field)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Cannot create paper: Missing entity IDs: {', '.join(missing)}. "
                "Please ensure the data structure has all required entities."
            )
        )

    result = await db.execute(select(PaperSetup).where(PaperSetup.paper_code == metadata_data.paper_code))
    paper = result.scalars().first()
    existed = paper is not None
    if paper is None:
        paper = PaperSetup(paper_code=metadata_data.paper_code)
        db.add(paper)

    for key, value in paper_fields.items():
        setattr(paper, key, value)
    paper.import_session_id = session.id
    await db.flush()

    session.paper_id = paper.id
    merge_session_metadata(
        session,
        metadata_complete=True,
        paper_id=paper.id,
        paper_metadata=metadata_data.model_dump(mode="json"),
        entity_ids={field: paper_fields.get(field) for field in ENTITY_ID_FIELDS},
    )
    await db.commit()

    result = await db.execute(
        select(PaperSetup).where(PaperSetup.id == paper.id).execution_options(populate_existing=True)
    )
    logger.info(f"Paper {paper.paper_code} {'updated' if existed else 'created'} from session {session_id}")
    return {
        "paper": result.scalars().first(),
        "detail": "Existing paper updated" if existed else "Paper metadata saved successfully",
    }

@router.post("/papers-setup/sessions/{session_id}/questions/process", response_model=ProcessQuestionsResult)
async def process_session_questions(
    process_data: Optional[ProcessQuestionsRequest] = None,
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Sanitize and validate questions, saving the processed set on the session.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)

    raw_questions = process_data.questions if process_data and process_data.questions is not None else None
    if raw_questions is None:
        raw_questions = (session.raw_json or {}).get("questions") or []

    questions = process_questions(raw_questions)
    validation_errors, invalid_count = validate_questions(questions)

    merge_session_metadata(session, questions=sanitize_question_for_storage(questions))
    await db.commit()

    return {
        "questions": questions,
        "validation_errors": validation_errors,
        "invalid_count": invalid_count,
        "stats": processing_stats(questions),
    }

# Attachment endpoints
@router.post("/papers-setup/sessions/{session_id}/attachments/{attachment_key}", response_model=AttachmentResult, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    session_id: int = Path(..., gt=0),
    attachment_key: str = Path(..., min_length=1),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Attach a figure (PNG, JPEG, GIF or PDF) to a question, part or subpart.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)
    attachments = dict(session_metadata(session).get("attachments") or {})

    content = await file.read()
    try:
        add_attachment(attachments, attachment_key, file.filename or "attachment", file.content_type or "", content)
    except AttachmentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    merge_session_metadata(session, attachments=attachments)
    await db.commit()

    return {
        "attachment_key": attachment_key,
        "attachments": attachments[attachment_key],
        "total": len(attachments[attachment_key]),
        "detail": "Attachment added successfully",
    }

@router.delete("/papers-setup/sessions/{session_id}/attachments/{attachment_key}", response_model=AttachmentResult)
async def delete_attachment(
    session_id: int = Path(..., gt=0),
    attachment_key: str = Path(..., min_length=1),
    attachment_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Remove one attachment from a key.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)
    attachments = dict(session_metadata(session).get("attachments") or {})

    try:
        remove_attachment(attachments, attachment_key, attachment_id)
    except AttachmentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    merge_session_metadata(session, attachments=attachments)
    await db.commit()

    return {
        "attachment_key": attachment_key,
        "attachments": attachments[attachment_key],
        "total": len(attachments[attachment_key]),
        "detail": "Attachment deleted successfully",
    }

# Simulation endpoints
@router.get("/papers-setup/sessions/{session_id}/simulation/requirement", response_model=SimulationRequirement)
async def get_simulation_requirement(
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Whether the questions need a test simulation before import.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_session_or_404(db, session_id)
    questions = session_questions(session)
    await db.commit()

    return {
        "required": is_simulation_required(questions),
        "completed": bool(session_metadata(session).get("simulation_completed")),
        "question_count": len(questions),
    }

@router.post("/papers-setup/sessions/{session_id}/simulation", response_model=SimulationOutcome)
async def save_simulation(
    result_data: SimulationResultIn,
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Record a finished test simulation and flag the questions it found problems with.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)
    metadata = session_metadata(session)
    questions = session_questions(session)

    total_marks = None
    if session.paper is not None and session.paper.total_marks:
        total_marks = parse_int(session.paper.total_marks) or None
    if total_marks is None:
        total_marks = sum(parse_int(q.get("marks")) for q in questions) or None

    outcome = complete_simulation(
        questions,
        metadata.get("attachments") or {},
        result_data.model_dump(),
        total_marks=total_marks,
    )

    merge_session_metadata(
        session,
        questions=sanitize_question_for_storage(outcome["questions"]),
        simulation_results=outcome["simulation_results"],
        simulation_completed=True,
        validation_metadata=outcome["validation_metadata"],
    )
    await db.commit()

    flagged_count = len([q for q in outcome["questions"] if q.get("simulation_flags")])
    return {
        "simulation_results": outcome["simulation_results"],
        "validation_metadata": outcome["validation_metadata"],
        "flagged_count": flagged_count,
        "detail": "Simulation results saved",
    }

# Import endpoints
@router.post("/papers-setup/sessions/{session_id}/questions/import", response_model=ImportQuestionsResult)
async def import_questions(
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Write the session's questions to the question bank as drafts and complete the session.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)
    metadata = session_metadata(session)

    paper_id = metadata.get("paper_id") or session.paper_id
    if not metadata.get("metadata_complete") or not paper_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please save the paper metadata before importing questions"
        )

    questions = session_questions(session)
    if not questions:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No questions to import"
        )

    if is_simulation_required(questions) and not metadata.get("simulation_completed"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please complete the test simulation before importing questions"
        )

    _, invalid_count = validate_questions(questions)
    if invalid_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{invalid_count} question(s) have validation errors. Please fix them before importing."
        )

    attachments = metadata.get("attachments") or {}
    for q in questions:
        q = attach_to_question(q, attachments)
        db.add(Question(
            paper_id=paper_id,
            import_session_id=session.id,
            question_number=ensure_string(q.get("question_number")),
            question_text=ensure_string(q.get("question_text")),
            question_type=q.get("question_type") or "standard",
            marks=parse_int(q.get("marks")),
            unit=q.get("unit") or None,
            unit_id=optional_int(q.get("unit_id")),
            topic=q.get("topic") or None,
            topic_id=optional_int(q.get("topic_id")),
            subtopic=q.get("subtopic") or None,
            subtopic_id=optional_int(q.get("subtopic_id")),
            difficulty=q.get("difficulty") or "medium",
            status="draft",
            answer_format=q.get("answer_format"),
            answer_requirement=q.get("answer_requirement"),
            hint=q.get("hint"),
            explanation=q.get("explanation"),
            figure=bool(q.get("figure")),
            parts=sanitize_question_for_storage(q.get("parts") or []),
            correct_answers=sanitize_question_for_storage(q.get("correct_answers") or []),
            options=sanitize_question_for_storage(q.get("options") or []),
            attachments=sanitize_question_for_storage(q["attachments"]),
            created_by=current_user.id,
        ))

    merge_session_metadata(
        session,
        questions_imported=True,
        imported_count=len(questions),
        imported_at=datetime.now(timezone.utc).isoformat(),
    )
    session.status = SESSION_COMPLETED
    await db.commit()

    logger.info(f"Imported {len(questions)} question(s) into paper {paper_id} from session {session_id}")
    return {
        "imported": len(questions),
        "paper_id": paper_id,
        "detail": f"{len(questions)} question(s) imported successfully",
    }

@router.get("/papers-setup/papers/{paper_id}/questions", response_model=List[QuestionInDB])
async def get_paper_questions(
    paper_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Questions imported into a paper.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    result = await db.execute(select(Question).where(Question.paper_id == paper_id).order_by(Question.id))
    return result.scalars().all()

@router.post("/papers-setup/sessions/{session_id}/fail", response_model=SessionStatusResult)
async def fail_import_session(
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Mark an import session as failed.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    session = await get_active_session(db, session_id)
    session.status = SESSION_FAILED
    await db.commit()

    logger.info(f"Import session {session_id} marked as failed by user {current_user.id}")
    return {"id": session_id, "status": SESSION_FAILED, "detail": "Import session marked as failed"}

@router.delete("/papers-setup/sessions/{session_id}", status_code=status.HTTP_200_OK)
async def delete_import_session(
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete an import session. Papers and questions it produced are kept.
    """
    await validate_admin_access(current_user, db, system_admin_only=True)

    await get_session_or_404(db, session_id)

    await db.execute(
        update(PaperSetup).where(PaperSetup.import_session_id == session_id).values(import_session_id=None)
    )
    await db.execute(
        update(Question).where(Question.import_session_id == session_id).values(import_session_id=None)
    )
    await db.execute(delete(PastPaperImportSession).where(PastPaperImportSession.id == session_id))
    await db.commit()

    return {"detail": "Import session deleted successfully"}
