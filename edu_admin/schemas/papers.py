from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from edu_admin.schemas.tenants import clean_text


class PaperStatusEnum(str, Enum):
    draft = "draft"
    qa_review = "qa_review"
    active = "active"
    inactive = "inactive"
    archived = "archived"


# Import session schemas
class ImportSessionSummary(BaseModel):
    id: int
    json_file_name: Optional[str] = None
    status: str
    paper_code: Optional[str] = None
    paper_id: Optional[int] = None
    file_size: Optional[int] = None
    created_by: Optional[int] = None
    last_accessed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ImportSessionDetail(ImportSessionSummary):
    raw_json: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tabs: Dict[str, str]
    next_tab: str
    needs_new_import: bool
    detail: Optional[str] = None


class ImportSessionUploadResult(BaseModel):
    session: ImportSessionDetail
    resumed: bool
    detail: str


class EntityIds(BaseModel):
    program_id: Optional[int] = None
    provider_id: Optional[int] = None
    subject_id: Optional[int] = None
    region_id: Optional[int] = None
    data_structure_id: Optional[int] = None


class StructureUpdate(BaseModel):
    academic_structure: Dict[str, Any]
    entity_ids: Optional[EntityIds] = None


class PaperMetadataUpdate(BaseModel):
    paper_code: str
    subject_code: Optional[str] = None
    paper_number: Optional[str] = None
    variant_number: Optional[str] = None
    paper_type: Optional[str] = None
    exam_session: Optional[str] = None
    exam_year: Optional[int] = None
    program: Optional[str] = None
    provider: Optional[str] = None
    subject: Optional[str] = None
    title: Optional[str] = None
    duration: Optional[str] = None
    total_marks: Optional[str] = None
    status: PaperStatusEnum = PaperStatusEnum.draft
    notes: Optional[str] = None
    program_id: Optional[int] = None
    provider_id: Optional[int] = None
    subject_id: Optional[int] = None
    region_id: Optional[int] = None
    data_structure_id: Optional[int] = None

    class Config:
        use_enum_values = True

    @field_validator("paper_code")
    @classmethod
    def paper_code_required(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Paper code is required")
        return v

    @field_validator(
        "subject_code", "paper_number", "variant_number", "paper_type", "exam_session",
        "program", "provider", "subject", "title", "duration", "notes",
        mode="before",
    )
    @classmethod
    def trim(cls, v):
        return clean_text(v)

    @field_validator("total_marks", mode="before")
    @classmethod
    def marks_as_text(cls, v):
        return clean_text(str(v)) if v is not None else None


class PaperInDB(BaseModel):
    id: int
    paper_code: str
    subject_code: Optional[str] = None
    paper_number: Optional[str] = None
    variant_number: Optional[str] = None
    paper_type: Optional[str] = None
    exam_session: Optional[str] = None
    exam_year: Optional[int] = None
    program_id: Optional[int] = None
    provider_id: Optional[int] = None
    subject_id: Optional[int] = None
    region_id: Optional[int] = None
    data_structure_id: Optional[int] = None
    title: Optional[str] = None
    duration: Optional[str] = None
    total_marks: Optional[str] = None
    status: str
    qa_status: Optional[str] = None
    notes: Optional[str] = None
    import_session_id: Optional[int] = None

    class Config:
        from_attributes = True


class PaperMetadataResult(BaseModel):
    paper: PaperInDB
    detail: str


# Question schemas
class ProcessQuestionsRequest(BaseModel):
    questions: Optional[List[Any]] = None


class ProcessingStats(BaseModel):
    total: int
    processed: int
    with_topics: int
    with_subtopics: int
    with_units: int
    errors: int


class ProcessQuestionsResult(BaseModel):
    questions: List[Dict[str, Any]]
    validation_errors: Dict[str, List[str]]
    invalid_count: int
    stats: ProcessingStats


class AttachmentResult(BaseModel):
    attachment_key: str
    attachments: List[Dict[str, Any]]
    total: int
    detail: str


class SimulationRequirement(BaseModel):
    required: bool
    completed: bool
    question_count: int


class SimulationIssueIn(BaseModel):
    question_id: Optional[Union[str, int]] = None
    type: str = "info"
    message: Optional[str] = None


class ValidationResultIn(BaseModel):
    question_id: Optional[Union[str, int]] = None
    is_correct: bool = False
    partial_credit: Optional[float] = None
    message: Optional[str] = None


class SimulationResultIn(BaseModel):
    flagged_questions: List[Union[str, int]] = Field(default_factory=list)
    issues: List[SimulationIssueIn] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    score: Optional[float] = None
    time_elapsed: Optional[float] = None
    validation_results: List[ValidationResultIn] = Field(default_factory=list)
    question_times: Dict[str, float] = Field(default_factory=dict)


class SimulationOutcome(BaseModel):
    simulation_results: Dict[str, Any]
    validation_metadata: Dict[str, Any]
    flagged_count: int
    detail: str


class QuestionInDB(BaseModel):
    id: int
    paper_id: int
    import_session_id: Optional[int] = None
    question_number: str
    question_text: str
    question_type: Optional[str] = None
    marks: int
    unit: Optional[str] = None
    topic: Optional[str] = None
    subtopic: Optional[str] = None
    difficulty: Optional[str] = None
    status: str
    answer_format: Optional[str] = None
    answer_requirement: Optional[str] = None
    figure: Optional[bool] = None
    parts: Optional[List[Any]] = None
    correct_answers: Optional[List[Any]] = None
    options: Optional[List[Any]] = None
    attachments: Optional[List[Any]] = None

    class Config:
        from_attributes = True


class ImportQuestionsResult(BaseModel):
    imported: int
    paper_id: int
    detail: str


class SessionStatusResult(BaseModel):
    id: int
    status: str
    detail: str
