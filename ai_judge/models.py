from sqlmodel import SQLModel, Field
from sqlalchemy import JSON, UniqueConstraint
from typing import List, Optional
from pydantic import BaseModel, field_validator
from datetime import datetime, timezone
from enum import Enum
import uuid


class Side(str, Enum):
    A = "A"
    B = "B"


class Jurisdiction(str, Enum):
    INDIA = "INDIA"
    USA = "USA"
    UK = "UK"
    CANADA = "CANADA"
    AUSTRALIA = "AUSTRALIA"
    INTERNATIONAL = "INTERNATIONAL"


class CaseStatus(str, Enum):
    PENDING = "pending"
    JUDGED = "judged"
    IN_ARGUMENT = "in_argument"


class JudgmentKind(str, Enum):
    TENTATIVE = "tentative"
    RECONSIDERED = "reconsidered"
    FINAL = "final"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Tables ----

class Case(SQLModel, table=True):
    __tablename__ = "cases"

    id: str = Field(default_factory=new_id, primary_key=True)
    case_type: str
    jurisdiction: str
    status: CaseStatus = Field(default=CaseStatus.PENDING, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CaseDetail(SQLModel, table=True):
    __tablename__ = "case_details"
    __table_args__ = (UniqueConstraint("case_id", "side"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    case_id: str = Field(foreign_key="cases.id", index=True)
    side: Side
    summary: str
    documents: List[str] = Field(default_factory=list, sa_type=JSON)
    evidence: List[str] = Field(default_factory=list, sa_type=JSON)


class JudgmentBase(SQLModel):
    verdict: str
    reasoning: str
    legal_basis: List[str] = Field(default_factory=list, sa_type=JSON)
    confidence: int


class Judgment(JudgmentBase, table=True):
    __tablename__ = "judgments"
    __table_args__ = (UniqueConstraint("case_id", "version"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    case_id: str = Field(foreign_key="cases.id", index=True)
    version: int
    kind: JudgmentKind = JudgmentKind.TENTATIVE
    created_at: datetime = Field(default_factory=utcnow)


class ArgumentBase(SQLModel):
    side: Side
    argument: str
    response: str
    strengthens: Optional[str] = None
    weakens: Optional[str] = None
    uncertainty_remains: Optional[str] = None
    provisional_note: Optional[str] = None
    reconsidered: bool = False


class Argument(ArgumentBase, table=True):
    __tablename__ = "arguments"
    __table_args__ = (UniqueConstraint("case_id", "sequence_number"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    case_id: str = Field(foreign_key="cases.id", index=True)
    sequence_number: int
    created_at: datetime = Field(default_factory=utcnow)


# ---- Read models ----

class JudgmentRead(JudgmentBase):
    id: str
    case_id: str
    version: int
    kind: JudgmentKind
    created_at: datetime


class ArgumentRead(ArgumentBase):
    id: str
    case_id: str
    sequence_number: int
    created_at: datetime


class SideView(BaseModel):
    summary: str
    documents: List[str] = []
    evidence: List[str] = []


class CaseSummary(BaseModel):
    id: str
    case_type: str
    jurisdiction: str
    status: CaseStatus
    created_at: datetime
    updated_at: datetime


class CaseView(CaseSummary):
    side_a: SideView
    side_b: SideView


# ---- Requests ----

class SideInput(BaseModel):
    summary: str
    evidence: List[str] = []
    documents: List[str] = []

    @field_validator("summary")
    @classmethod
    def summary_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("summary must not be empty")
        return v


class CaseCreate(BaseModel):
    case_type: str
    jurisdiction: Jurisdiction
    side_a: SideInput
    side_b: SideInput


class ArgumentCreate(BaseModel):
    side: Side
    argument: str


# ---- Responses ----

class JudgmentView(BaseModel):
    verdict: str
    reasoning: str
    legal_basis: List[str] = []
    confidence: int
    version: int
    kind: JudgmentKind
    cached: bool = False


class ArgumentOutcome(BaseModel):
    response: str
    strengthens: Optional[str] = None
    weakens: Optional[str] = None
    uncertainty_remains: Optional[str] = None
    provisional_note: Optional[str] = None
    reconsidered: bool
    updated_reasoning: Optional[str] = None
    confidence: int
    sequence_number: int
    remaining_arguments: int


class ArgumentList(BaseModel):
    arguments: List[ArgumentRead]
    count: int
    remaining_arguments: int
