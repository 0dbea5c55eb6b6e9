"""
Judgment protocol
=================

Moves a case through its judgment stages:

    no judgment -> tentative -> reconsidered (once per persuasive argument) -> final

Each stage appends a judgment version in the store. Every operation on a
case, cache reads and writes included, runs under the store's per-case
lock, so the "read count, generate, write count + 1" sequence cannot
interleave and a cached judgment is never older than the stored one. The
cache is invalidated only after a durable write succeeds.
"""

import logging
from typing import List, Tuple

from . import prompts
from .cache import JudgmentCache
from .config import Settings
from .errors import NotFoundError, ValidationError
from .evaluation import ArgumentEvaluator, ArgumentDecision
from .generators import StructuredGeneration, TextGenerator
from .models import (
    ArgumentOutcome,
    ArgumentRead,
    JudgmentBase,
    JudgmentKind,
    JudgmentRead,
    JudgmentView,
    Side,
)
from .services import format_case_context
from .store import CaseStore
from .validation import JudgmentPayload, clamp, parse_judgment

logger = logging.getLogger(__name__)

TENTATIVE_BAND = (40, 70)
FINAL_BAND = (70, 95)
DEFAULT_CONFIDENCE = 50


def _band_confidence(payload: JudgmentPayload, band: Tuple[int, int], label: str) -> int:
    raw = payload.confidence if payload.confidence is not None else DEFAULT_CONFIDENCE
    confidence = clamp(raw, *band)
    if confidence != raw:
        logger.info(f"{label} confidence {raw} clamped to {confidence}")
    return confidence


def _view(judgment: JudgmentRead, cached: bool = False) -> JudgmentView:
    return JudgmentView(
        verdict=judgment.verdict,
        reasoning=judgment.reasoning,
        legal_basis=list(judgment.legal_basis),
        confidence=judgment.confidence,
        version=judgment.version,
        kind=judgment.kind,
        cached=cached,
    )


def _final_notes(arg: ArgumentRead) -> str:
    notes = []
    if arg.strengthens:
        notes.append(f"Strengthened: {arg.strengthens}")
    if arg.weakens:
        notes.append(f"Weakened: {arg.weakens}")
    if arg.uncertainty_remains:
        notes.append(f"Uncertainty: {arg.uncertainty_remains}")
    return "".join(f"\n   {n}" for n in notes)


class JudgmentProtocol:
    def __init__(self, store: CaseStore, cache: JudgmentCache, generator: TextGenerator, settings: Settings):
        self.store = store
        self.cache = cache
        self.settings = settings
        self.generation = StructuredGeneration.from_settings(generator, settings)
        self.evaluator = ArgumentEvaluator(self.generation)

    @property
    def max_arguments(self) -> int:
        return self.store.max_arguments

    def _cache_current(self, key: str, judgment: JudgmentRead) -> None:
        self.cache.set(key, _view(judgment).model_dump(mode="json"), self.settings.cache_ttl_seconds)

    # ---- Tentative judgment ----

    def generate_judgment(self, case_id: str) -> JudgmentView:
        key = self.cache.key_for(case_id)
        # cache access for a case is serialized with its writes
        with self.store.case_lock(case_id):
            cached = self.cache.get(key)
            if cached:
                logger.info(f"Returning cached judgment for case {case_id}")
                return JudgmentView(**{**cached, "cached": True})

            case = self.store.get_case(case_id)
            current = self.store.get_latest_judgment(case_id)
            if current is None:
                system = prompts.SYSTEM_TENTATIVE.format(jurisdiction=case.jurisdiction)
                user = prompts.TENTATIVE_PROMPT.format(context=format_case_context(case))
                payload = self.generation.run(system, user, parse_judgment, "judgment")
                self.store.save_judgment(
                    case_id,
                    payload.verdict,
                    payload.reasoning,
                    payload.legal_basis or [],
                    _band_confidence(payload, TENTATIVE_BAND, "Tentative"),
                    kind=JudgmentKind.TENTATIVE,
                )
                current = self.store.get_latest_judgment(case_id)
            else:
                logger.info(f"Case {case_id} already judged (version {current.version}); not regenerating")

            self._cache_current(key, current)
        return _view(current)

    # ---- Arguments ----

    def submit_argument(self, case_id: str, side: str, argument: str) -> ArgumentOutcome:
        try:
            side = Side(side)
        except ValueError:
            raise ValidationError("Invalid request. Side must be A or B") from None
        if not argument or not argument.strip():
            raise ValidationError("Argument text is required")

        with self.store.case_lock(case_id):
            case = self.store.get_case(case_id)
            count = self.store.get_argument_count(case_id)
            if count >= self.max_arguments:
                raise ValidationError(f"Maximum number of arguments ({self.max_arguments}) reached")

            current = self.store.get_latest_judgment(case_id)
            if current is None:
                raise NotFoundError("No judgment found for this case. Generate judgment first.")
            if current.kind == JudgmentKind.FINAL:
                raise ValidationError("A final verdict has been issued; the case is closed to further arguments")

            history = self.store.get_arguments(case_id)
            decision = self.evaluator.evaluate(case, current, history, side, argument)

            revision = None
            if decision.reconsidered:
                # The verdict label only changes at the final stage.
                revision = JudgmentBase(
                    verdict=current.verdict,
                    reasoning=decision.updated_reasoning,
                    legal_basis=list(current.legal_basis),
                    confidence=decision.confidence,
                )
            sequence_number = count + 1
            self.store.save_argument(
                case_id,
                side.value,
                argument,
                decision.response,
                decision.reconsidered,
                sequence_number,
                strengthens=decision.strengthens,
                weakens=decision.weakens,
                uncertainty=decision.uncertainty_remains,
                provisional_note=decision.provisional_note,
                revision=revision,
            )
            if decision.reconsidered:
                self.cache.delete(self.cache.key_for(case_id))

        return self._outcome(decision, sequence_number)

    def _outcome(self, decision: ArgumentDecision, sequence_number: int) -> ArgumentOutcome:
        return ArgumentOutcome(
            response=decision.response,
            strengthens=decision.strengthens,
            weakens=decision.weakens,
            uncertainty_remains=decision.uncertainty_remains,
            provisional_note=decision.provisional_note,
            reconsidered=decision.reconsidered,
            updated_reasoning=decision.updated_reasoning,
            confidence=decision.confidence,
            sequence_number=sequence_number,
            remaining_arguments=self.max_arguments - sequence_number,
        )

    def list_arguments(self, case_id: str) -> Tuple[List[ArgumentRead], int]:
        arguments = self.store.get_arguments(case_id)
        return arguments, max(0, self.max_arguments - len(arguments))

    def list_judgments(self, case_id: str) -> List[JudgmentRead]:
        return self.store.get_all_judgments(case_id)

    # ---- Final verdict ----

    def generate_final_verdict(self, case_id: str) -> JudgmentView:
        with self.store.case_lock(case_id):
            case = self.store.get_case(case_id)
            current = self.store.get_latest_judgment(case_id)
            if current is None:
                raise NotFoundError("No initial judgment found. Generate judgment first.")
            if current.kind == JudgmentKind.FINAL:
                raise ValidationError("A final verdict has already been issued for this case")

            history = self.store.get_arguments(case_id)
            system = prompts.SYSTEM_FINAL.format(jurisdiction=case.jurisdiction)
            user = prompts.FINAL_PROMPT.format(
                context=format_case_context(case),
                version=current.version,
                verdict=current.verdict,
                reasoning=current.reasoning,
                legal_basis=", ".join(current.legal_basis) or "None cited",
                confidence=current.confidence,
                arguments="\n\n---\n\n".join(
                    prompts.FINAL_ARGUMENT_ENTRY.format(
                        index=i,
                        side=arg.side.value,
                        argument=arg.argument,
                        response=arg.response,
                        notes=_final_notes(arg),
                    )
                    for i, arg in enumerate(history, start=1)
                ) or prompts.NO_ARGUMENTS,
            )
            payload = self.generation.run(system, user, parse_judgment, "final verdict")
            self.store.save_judgment(
                case_id,
                payload.verdict,
                payload.reasoning,
                payload.legal_basis or [],
                _band_confidence(payload, FINAL_BAND, "Final"),
                version=current.version + 1,
                kind=JudgmentKind.FINAL,
            )
            final = self.store.get_latest_judgment(case_id)
            self.cache.delete(self.cache.key_for(case_id))

        logger.info(f"Final verdict issued for case {case_id} (version {final.version}, {len(history)} arguments)")
        return _view(final)
