from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Boolean, BigInteger, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edu_admin.database import Base

SESSION_IN_PROGRESS = "in_progress"
SESSION_COMPLETED = "completed"
SESSION_FAILED = "failed"

PAPER_STATUSES = ["draft", "qa_review", "active", "inactive", "archived", "completed", "failed"]
QUESTION_STATUSES = ["draft", "qa_review", "active", "inactive", "archived"]

# Past paper JSON import session
class PastPaperImportSession(Base):
    __tablename__ = "past_paper_import_sessions"

    id = Column(Integer, primary_key=True, index=True)
    json_file_name = Column(String(255))
    raw_json = Column(JSON)
    json_hash = Column(String(64), index=True)
    status = Column(String(20), default=SESSION_IN_PROGRESS, nullable=False, index=True)
    # Wizard progress: structure_complete, metadata_complete, attachments, simulation_results, ...
    metadata_ = Column("metadata", JSON, default=dict)
    file_size = Column(BigInteger)
    paper_id = Column(Integer, ForeignKey("papers_setup.id", ondelete="SET NULL"))
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    last_accessed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    paper = relationship("PaperSetup", foreign_keys=[paper_id], lazy="selectin")

# Paper model
class PaperSetup(Base):
    __tablename__ = "papers_setup"

    id = Column(Integer, primary_key=True, index=True)
    paper_code = Column(String(100), unique=True, nullable=False)
    subject_code = Column(String(50))
    paper_number = Column(String(20))
    variant_number = Column(String(20))
    paper_type = Column(String(50))
    exam_session = Column(String(50))
    exam_year = Column(Integer)
    program_id = Column(Integer, ForeignKey("programs.id", ondelete="SET NULL"))
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="SET NULL"))
    subject_id = Column(Integer, ForeignKey("edu_subjects.id", ondelete="SET NULL"))
    region_id = Column(Integer, ForeignKey("regions.id", ondelete="SET NULL"))
    data_structure_id = Column(Integer, ForeignKey("data_structures.id", ondelete="SET NULL"))
    program = Column(String(255))
    provider = Column(String(255))
    subject = Column(String(255))
    title = Column(String(255))
    duration = Column(String(50))
    total_marks = Column(String(20))
    status = Column(String(20), default="draft", nullable=False)
    qa_status = Column(String(20), default="pending")
    notes = Column(Text)
    import_session_id = Column(
        Integer,
        ForeignKey("past_paper_import_sessions.id", ondelete="SET NULL", use_alter=True, name="fk_papers_setup_import_session"),
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    questions = relationship("Question", back_populates="paper", cascade="all, delete-orphan")

# Imported question model
class Question(Base):
    __tablename__ = "questions_master_admin"

    id = Column(Integer, primary_key=True, index=True)
    paper_id = Column(Integer, ForeignKey("papers_setup.id", ondelete="CASCADE"), nullable=False, index=True)
    import_session_id = Column(Integer, ForeignKey("past_paper_import_sessions.id", ondelete="SET NULL"))
    question_number = Column(String(20), nullable=False)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(50), default="standard")
    marks = Column(Integer, default=0, nullable=False)
    unit = Column(String(255))
    unit_id = Column(Integer)
    topic = Column(String(255))
    topic_id = Column(Integer)
    subtopic = Column(String(255))
    subtopic_id = Column(Integer)
    difficulty = Column(String(20), default="medium")
    status = Column(String(20), default="draft", nullable=False)
    answer_format = Column(String(50))
    answer_requirement = Column(Text)
    hint = Column(Text)
    explanation = Column(Text)
    figure = Column(Boolean, default=False)
    parts = Column(JSON, default=list)
    correct_answers = Column(JSON, default=list)
    options = Column(JSON, default=list)
    attachments = Column(JSON, default=list)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    paper = relationship("PaperSetup", back_populates="questions")
