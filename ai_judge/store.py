"""
Persistence store for cases, sides, judgments and arguments.

The store is the only place that assigns judgment versions and checks
argument sequence numbers. Writes that belong together (a case and its two
sides, an argument and the judgment revision it triggered) share one
transaction.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine, func, select

from . import models
from .errors import ConcurrentModificationError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

MAX_ARGUMENTS = 5


class CaseLocks:
    """Advisory in-process lock per case id.

    An entry lives only while some thread holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, case_id: str):
        with self._guard:
            entry = self._locks.setdefault(case_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[case_id]


class CaseStore:
    def __init__(self, database_url: str = "sqlite:///./data.db", engine=None, max_arguments: int = MAX_ARGUMENTS):
        if engine is None:
            connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
            engine = create_engine(database_url, echo=False, connect_args=connect_args)
        self.engine = engine
        self.max_arguments = max_arguments
        self._locks = CaseLocks()

    def create_tables(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def case_lock(self, case_id: str):
        """Serialize work on an existing case; unknown ids raise NotFoundError."""
        with self._session("locking case") as sess:
            self._require_case(sess, case_id)
        with self._locks.hold(case_id):
            yield

    @contextmanager
    def _session(self, action: str):
        try:
            with Session(self.engine) as sess:
                yield sess
        except IntegrityError as e:
            logger.warning(f"Write conflict while {action}: {e.orig}")
            raise ConcurrentModificationError(f"Conflicting write while {action}; re-read the case and retry") from e
        except SQLAlchemyError as e:
            logger.error(f"Storage failure while {action}: {e}")
            raise StorageError(f"Storage failure while {action}") from e

    @staticmethod
    def _require_case(sess: Session, case_id: str) -> models.Case:
        case = sess.get(models.Case, case_id)
        if not case:
            raise NotFoundError(f"Case {case_id} not found")
        return case

    # ---- Cases ----

    def create_case(self, case_type: str, jurisdiction: str, side_a: models.SideInput, side_b: models.SideInput) -> str:
        if not case_type or not case_type.strip():
            raise ValidationError("case_type is required")
        try:
            jurisdiction = models.Jurisdiction(jurisdiction).value
        except ValueError:
            raise ValidationError(f"Unknown jurisdiction: {jurisdiction}") from None
        for label, side in (("A", side_a), ("B", side_b)):
            if side is None or not side.summary or not side.summary.strip():
                raise ValidationError(f"Side {label} summary is required")

        with self._session("creating case") as sess:
            case = models.Case(case_type=case_type.strip(), jurisdiction=jurisdiction)
            sess.add(case)
            for side, detail in ((models.Side.A, side_a), (models.Side.B, side_b)):
                sess.add(models.CaseDetail(
                    case_id=case.id,
                    side=side,
                    summary=detail.summary,
                    documents=list(detail.documents),
                    evidence=list(detail.evidence),
                ))
            case_id = case.id
            sess.commit()

        logger.info(f"Case created: {case_id}")
        return case_id

    def get_case(self, case_id: str) -> models.CaseView:
        with self._session("reading case") as sess:
            case = self._require_case(sess, case_id)
            details = sess.exec(
                select(models.CaseDetail).where(models.CaseDetail.case_id == case_id)
            ).all()
            sides = {
                d.side: models.SideView(summary=d.summary, documents=d.documents or [], evidence=d.evidence or [])
                for d in details
            }
            return models.CaseView(
                id=case.id,
                case_type=case.case_type,
                jurisdiction=case.jurisdiction,
                status=case.status,
                created_at=case.created_at,
                updated_at=case.updated_at,
                side_a=sides[models.Side.A],
                side_b=sides[models.Side.B],
            )

    def list_cases(self) -> List[models.CaseSummary]:
        with self._session("listing cases") as sess:
            cases = sess.exec(select(models.Case).order_by(models.Case.created_at)).all()
            return [
                models.CaseSummary(
                    id=c.id,
                    case_type=c.case_type,
                    jurisdiction=c.jurisdiction,
                    status=c.status,
                    created_at=c.created_at,
                    updated_at=c.updated_at,
                )
                for c in cases
            ]

    # ---- Judgments ----

    @staticmethod
    def _next_version(sess: Session, case_id: str) -> int:
        current = sess.exec(
            select(func.max(models.Judgment.version)).where(models.Judgment.case_id == case_id)
        ).one()
        return (current or 0) + 1

    def _add_judgment(self, sess, case, verdict, reasoning, legal_basis, confidence, kind, expected_version=None) -> models.Judgment:
        version = self._next_version(sess, case.id)
        if expected_version is not None and expected_version != version:
            raise ConcurrentModificationError(
                f"Judgment version {expected_version} is stale for case {case.id}; next version is {version}"
            )
        if not 0 <= int(confidence) <= 100:
            raise ValidationError(f"confidence must be between 0 and 100, got {confidence}")

        judgment = models.Judgment(
            case_id=case.id,
            verdict=verdict,
            reasoning=reasoning,
            legal_basis=list(legal_basis or []),
            confidence=int(confidence),
            version=version,
            kind=kind,
        )
        sess.add(judgment)
        return judgment

    def save_judgment(
        self,
        case_id: str,
        verdict: str,
        reasoning: str,
        legal_basis: List[str],
        confidence: int,
        version: Optional[int] = None,
        kind: models.JudgmentKind = models.JudgmentKind.TENTATIVE,
    ) -> str:
        """Append a judgment version.

        The version is always computed here as max(version) + 1. A
        caller-supplied ``version`` is only checked against that value.
        """
        with self._session("saving judgment") as sess:
            case = self._require_case(sess, case_id)
            judgment = self._add_judgment(sess, case, verdict, reasoning, legal_basis, confidence, kind, version)
            if case.status == models.CaseStatus.PENDING:
                case.status = models.CaseStatus.JUDGED
            case.updated_at = models.utcnow()
            sess.add(case)
            judgment_id, saved_version = judgment.id, judgment.version
            sess.commit()

        logger.info(f"Judgment saved: case={case_id} version={saved_version} kind={models.JudgmentKind(kind).value}")
        return judgment_id

    def get_latest_judgment(self, case_id: str) -> Optional[models.JudgmentRead]:
        with self._session("reading latest judgment") as sess:
            self._require_case(sess, case_id)
            row = sess.exec(
                select(models.Judgment)
                .where(models.Judgment.case_id == case_id)
                .order_by(models.Judgment.version.desc())
                .limit(1)
            ).first()
            return models.JudgmentRead.model_validate(row) if row else None

    def get_all_judgments(self, case_id: str) -> List[models.JudgmentRead]:
        with self._session("reading judgments") as sess:
            self._require_case(sess, case_id)
            rows = sess.exec(
                select(models.Judgment)
                .where(models.Judgment.case_id == case_id)
                .order_by(models.Judgment.version)
            ).all()
            return [models.JudgmentRead.model_validate(r) for r in rows]

    # ---- Arguments ----

    @staticmethod
    def _count_arguments(sess: Session, case_id: str) -> int:
        return sess.exec(
            select(func.count()).select_from(models.Argument).where(models.Argument.case_id == case_id)
        ).one()

    def save_argument(
        self,
        case_id: str,
        side: str,
        argument_text: str,
        response_text: str,
        reconsidered: bool,
        sequence_number: int,
        strengthens: Optional[str] = None,
        weakens: Optional[str] = None,
        uncertainty: Optional[str] = None,
        provisional_note: Optional[str] = None,
        revision: Optional[models.JudgmentBase] = None,
    ) -> str:
        """Append an argument, plus its judgment revision when reconsidered.

        ``sequence_number`` must be the next free slot. Both rows are
        committed together or not at all.
        """
        try:
            side = models.Side(side)
        except ValueError:
            raise ValidationError(f"Side must be A or B, got {side!r}") from None
        if not argument_text or not argument_text.strip():
            raise ValidationError("Argument text is required")
        if not 1 <= sequence_number <= self.max_arguments:
            raise ValidationError(
                f"Maximum number of arguments ({self.max_arguments}) reached"
                if sequence_number > self.max_arguments
                else f"Invalid sequence number {sequence_number}"
            )
        if reconsidered and revision is None:
            raise ValidationError("A reconsidered argument needs the revised judgment")

        with self._session("saving argument") as sess:
            case = self._require_case(sess, case_id)
            expected = self._count_arguments(sess, case_id) + 1
            if sequence_number != expected:
                raise ConcurrentModificationError(
                    f"Argument slot {sequence_number} is not free for case {case_id}; next slot is {expected}"
                )

            argument = models.Argument(
                case_id=case_id,
                side=side,
                argument=argument_text,
                response=response_text,
                strengthens=strengthens,
                weakens=weakens,
                uncertainty_remains=uncertainty,
                provisional_note=provisional_note,
                reconsidered=bool(reconsidered),
                sequence_number=sequence_number,
            )
            sess.add(argument)

            new_version = None
            if reconsidered:
                judgment = self._add_judgment(
                    sess, case,
                    revision.verdict, revision.reasoning, revision.legal_basis, revision.confidence,
                    models.JudgmentKind.RECONSIDERED,
                )
                new_version = judgment.version

            case.status = models.CaseStatus.IN_ARGUMENT
            case.updated_at = models.utcnow()
            sess.add(case)
            argument_id = argument.id
            sess.commit()

        logger.info(
            f"Argument saved: case={case_id} seq={sequence_number} side={side.value}"
            + (f" revised judgment version={new_version}" if new_version else "")
        )
        return argument_id

    def get_arguments(self, case_id: str) -> List[models.ArgumentRead]:
        with self._session("reading arguments") as sess:
            self._require_case(sess, case_id)
            rows = sess.exec(
                select(models.Argument)
                .where(models.Argument.case_id == case_id)
                .order_by(models.Argument.sequence_number)
            ).all()
            return [models.ArgumentRead.model_validate(r) for r in rows]

    def get_argument_count(self, case_id: str) -> int:
        with self._session("counting arguments") as sess:
            self._require_case(sess, case_id)
            return self._count_arguments(sess, case_id)
