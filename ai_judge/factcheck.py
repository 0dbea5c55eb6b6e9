"""
Fact checking of arguments against facts extracted from case documents.
"""

import logging
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import prompts
from .generators import StructuredGeneration
from .validation import ResponseValidationError, extract_json_object

logger = logging.getLogger(__name__)

DOCUMENT_LIMIT = 3000
MAX_CLAIMS = 5
MIN_CLAIM_CHARS = 20
MIN_ARGUMENT_CHARS = 50
ISSUE_CONFIDENCE_THRESHOLD = 60


class DocumentFacts(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    dates: List[str] = []
    amounts: List[str] = []
    names: List[str] = []
    locations: List[str] = []
    raw_text: str = Field(default="", alias="rawText")


class FactCheckResult(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    claim: str = ""
    is_valid: bool = Field(default=True, alias="isValid")
    confidence: float = Field(default=50, ge=0, le=100)
    evidence: Optional[str] = None
    suggestion: Optional[str] = None
    category: Literal["factual_error", "inconsistency", "missing_evidence", "valid"] = "valid"


class ArgumentValidation(BaseModel):
    has_issues: bool
    issues: List[FactCheckResult]
    overall_score: int


def split_claims(argument: str) -> List[str]:
    """Split an argument into sentences long enough to be checkable."""
    sentences = [s.strip() for s in re.split(r"[.!?]+", argument)]
    return [s for s in sentences if len(s) > MIN_CLAIM_CHARS][:MAX_CLAIMS]


def _parse(model):
    def parse(text: str):
        data = extract_json_object(text)
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise ResponseValidationError(f"Invalid {model.__name__} schema: {e}") from e
    return parse


class FactCheckService:
    def __init__(self, generation: StructuredGeneration):
        self.generation = generation

    def extract_facts(self, document_text: str) -> DocumentFacts:
        user = prompts.FACT_EXTRACTION_PROMPT.format(document=document_text[:DOCUMENT_LIMIT])
        facts = self.generation.run(prompts.SYSTEM_FACT_CHECK, user, _parse(DocumentFacts), "fact extraction")
        if not facts.raw_text:
            facts.raw_text = document_text[:500]
        logger.info(
            f"Facts extracted: dates={len(facts.dates)} amounts={len(facts.amounts)} "
            f"names={len(facts.names)} locations={len(facts.locations)}"
        )
        return facts

    def check_claim(self, claim: str, facts: DocumentFacts) -> FactCheckResult:
        user = prompts.CLAIM_CHECK_PROMPT.format(
            claim=claim,
            dates=", ".join(facts.dates) or "None",
            amounts=", ".join(facts.amounts) or "None",
            names=", ".join(facts.names) or "None",
            locations=", ".join(facts.locations) or "None",
            summary=facts.raw_text,
        )
        result = self.generation.run(prompts.SYSTEM_FACT_CHECK, user, _parse(FactCheckResult), "claim check")
        result.claim = claim
        if not result.evidence:
            result.evidence = "No specific evidence found"
        logger.info(f"Claim checked: valid={result.is_valid} category={result.category}")
        return result

    def check_argument(self, argument: str, facts: DocumentFacts) -> List[FactCheckResult]:
        claims = split_claims(argument)
        logger.info(f"Checking {len(claims)} claims")
        return [self.check_claim(claim, facts) for claim in claims]

    def validate_argument(self, argument: str, facts: DocumentFacts) -> ArgumentValidation:
        if len(argument) < MIN_ARGUMENT_CHARS:
            return ArgumentValidation(has_issues=False, issues=[], overall_score=100)

        results = self.check_argument(argument, facts)
        issues = [r for r in results if not r.is_valid or r.confidence < ISSUE_CONFIDENCE_THRESHOLD]
        score = round(sum(r.confidence for r in results) / len(results)) if results else 100
        return ArgumentValidation(has_issues=bool(issues), issues=issues, overall_score=score)
