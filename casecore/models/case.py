"""
Case and case event model definitions
"""

from sqlalchemy import Column, String, Text, Date, DateTime, Integer, ForeignKey, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship
import uuid

from casecore.core.database import Base
from casecore.core.identifiers import format_case_id
from casecore.core.timeutils import utcnow

class Case(Base):
    """Legal matter belonging to exactly one client"""
    __tablename__ = "cases"

    case_id = Column(Integer, primary_key=True, autoincrement=False)
    client_id = Column(Integer, ForeignKey("clients.client_id"), nullable=False, index=True)

    case_creation_date = Column(Date, nullable=False)

    # Written only by the status projector once the case exists
    current_status = Column(String(255), nullable=False)
    last_status_changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    client = relationship("Client", back_populates="cases")
    events = relationship("CaseEvent", back_populates="case", cascade="all, delete-orphan")

    @property
    def display_id(self) -> str:
        return format_case_id(self.case_id)

    def __repr__(self):
        return f"<Case(case_id={self.case_id}, client_id={self.client_id}, status='{self.current_status}')>"

class CaseEvent(Base):
    """One entry in a case's status history"""
    __tablename__ = "case_events"
    __table_args__ = (
        UniqueConstraint("case_id", "sequence", name="uq_case_events_case_sequence"),
        Index("ix_case_events_case_occurred", "case_id", "occurred_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Integer, ForeignKey("cases.case_id"), nullable=False)

    # Per-case insertion order, breaks ties between equal occurred_at values
    sequence = Column(Integer, nullable=False)

    event_type = Column(String(255), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    details = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    case = relationship("Case", back_populates="events")

    def __repr__(self):
        return f"<CaseEvent(id={self.id}, case_id={self.case_id}, event_type='{self.event_type}')>"
