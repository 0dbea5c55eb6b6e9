"""
Argument evaluation: turn one submitted argument plus the case, the current
judgment and the argument history into a decision.

The evaluator only talks to the generation backend. Persisting the argument
and any judgment revision is the caller's job.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from . import prompts
from .generators import StructuredGeneration
from .models import ArgumentRead, CaseView, JudgmentBase
from .services import format_case_context
from .validation import ArgumentPayload, clamp, normalize_side, parse_argument

logger = logging.getLogger(__name__)

DEFAULT_PROVISIONAL_NOTE = "This does not constitute a final verdict. More arguments may change the conclusion."


@dataclass
class ArgumentDecision:
    response: str
    reconsidered: bool
    confidence: int
    strengthens: Optional[str] = None
    weakens: Optional[str] = None
    uncertainty_remains: Optional[str] = None
    updated_reasoning: Optional[str] = None
    provisional_note: Optional[str] = None


def build_history(history: Sequence[ArgumentRead]) -> str:
    if not history:
        return ""
    entries = "\n\n".join(
        prompts.HISTORY_ENTRY.format(
            index=i,
            side=_side_value(arg.side),
            argument=arg.argument,
            response=arg.response,
        )
        for i, arg in enumerate(history, start=1)
    )
    return prompts.HISTORY_BLOCK.format(entries=entries)


def _side_value(side) -> str:
    return getattr(side, "value", side)


def build_argument_prompts(case: CaseView, judgment: JudgmentBase, history: Sequence[ArgumentRead],
                           side: str, argument: str):
    system = prompts.SYSTEM_ARGUMENT.format(jurisdiction=case.jurisdiction)
    user = prompts.ARGUMENT_PROMPT.format(
        verdict=judgment.verdict,
        reasoning=judgment.reasoning,
        legal_basis=", ".join(judgment.legal_basis) or "None cited",
        confidence=judgment.confidence,
        context=format_case_context(case),
        history=build_history(history),
        side=_side_value(side),
        argument=argument,
    )
    return system, user


def interpret(payload: ArgumentPayload, judgment: JudgmentBase) -> ArgumentDecision:
    """Map a validated payload onto a decision relative to the current judgment."""
    reconsidered = bool(payload.reconsidered)
    if payload.confidence is not None:
        confidence = clamp(payload.confidence, 0, 100)
    else:
        confidence = judgment.confidence
    return ArgumentDecision(
        response=payload.response,
        reconsidered=reconsidered,
        confidence=confidence,
        strengthens=normalize_side(payload.strengthens),
        weakens=normalize_side(payload.weakens),
        uncertainty_remains=payload.uncertainty_remains,
        updated_reasoning=payload.updated_reasoning if reconsidered else None,
        provisional_note=payload.provisional_note or DEFAULT_PROVISIONAL_NOTE,
    )


class ArgumentEvaluator:
    def __init__(self, generation: StructuredGeneration):
        self.generation = generation

    def evaluate(self, case: CaseView, judgment: JudgmentBase, history: List[ArgumentRead],
                 side: str, argument: str) -> ArgumentDecision:
        system, user = build_argument_prompts(case, judgment, history, side, argument)
        logger.info(f"Evaluating argument from side {_side_value(side)} ({len(argument)} chars, {len(history)} prior)")
        payload = self.generation.run(system, user, parse_argument, "argument evaluation")
        decision = interpret(payload, judgment)
        logger.info(f"Argument evaluated: reconsidered={decision.reconsidered} confidence={decision.confidence}")
        return decision
