from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from pathlib import Path
from typing import List, Optional
import json
import logging
import uuid
import aiofiles

from ai_judge import models, services
from ai_judge.cache import JudgmentCache
from ai_judge.config import Settings
from ai_judge.errors import (
    ConcurrentModificationError,
    ConfigurationError,
    GenerationFailedError,
    JudgeError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from ai_judge.factcheck import DocumentFacts, FactCheckService
from ai_judge.generators import StructuredGeneration, build_generator
from ai_judge.judge import JudgmentProtocol
from ai_judge.store import CaseStore

settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

store = CaseStore(settings.database_url, max_arguments=settings.max_arguments)
cache = JudgmentCache(settings.redis_url, ttl_seconds=settings.cache_ttl_seconds)

app = FastAPI(title="AI Judge API")

# Directory for uploaded files
UPLOAD_DIR = Path(settings.upload_dir)
UPLOAD_CHUNK_SIZE = 64 * 1024

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

ERROR_STATUS = [
    (ConcurrentModificationError, 409),
    (ValidationError, 400),
    (NotFoundError, 404),
    (GenerationFailedError, 502),
    (StorageError, 500),
]


@app.exception_handler(JudgeError)
async def judge_error_handler(request: Request, exc: JudgeError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"error": exc.kind, "detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Generation backend is not configured: {exc}")
    return JSONResponse(status_code=503, content={"error": "configuration_error", "detail": str(exc)})


# ---- Dependencies ----

_protocol: Optional[JudgmentProtocol] = None
_fact_checker: Optional[FactCheckService] = None


def get_store() -> CaseStore:
    return store


def get_protocol() -> JudgmentProtocol:
    """Build the protocol on first use so the API can start without an LLM key."""
    global _protocol
    if _protocol is None:
        _protocol = JudgmentProtocol(store, cache, build_generator(settings), settings)
    return _protocol


def get_fact_checker() -> FactCheckService:
    global _fact_checker
    if _fact_checker is None:
        generation = StructuredGeneration.from_settings(build_generator(settings), settings)
        _fact_checker = FactCheckService(generation)
    return _fact_checker


@app.on_event("startup")
def on_startup():
    for warning in settings.validate():
        logger.warning(warning)
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    store.create_tables()
    logger.info(f"AI Judge API started (provider={settings.llm_provider}, cache={'on' if cache.enabled else 'off'})")


@app.on_event("shutdown")
def on_shutdown():
    cache.close()


# Root route
@app.get("/")
def read_root():
    return {"message": "Welcome to the AI Judge API"}


# Favicon handler
@app.get("/favicon.ico")
def favicon():
    return Response(status_code=204)


# ---- GET ALL CASES ----
@app.get("/cases")
def get_cases(store: CaseStore = Depends(get_store)):
    """Get all cases"""
    cases = store.list_cases()
    return {"cases": cases, "count": len(cases)}


# ---- CASE CREATION ----
@app.post("/cases", status_code=201)
def create_case(payload: models.CaseCreate, store: CaseStore = Depends(get_store)):
    """Create a new case from pre-extracted document text"""
    case_id = store.create_case(payload.case_type, payload.jurisdiction.value, payload.side_a, payload.side_b)
    return {"success": True, "case_id": case_id, "message": "Case created successfully"}


async def _extract_uploads(files: List[UploadFile]) -> List[str]:
    texts = []
    for file in files:
        if not file.filename:
            continue
        dest = UPLOAD_DIR / f"{uuid.uuid4().hex}_{Path(file.filename).name}"
        size = 0
        try:
            async with aiofiles.open(dest, "wb") as out:
                while True:
                    chunk = await file.read(UPLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > settings.max_file_size:
                        raise ValidationError(f"{file.filename} exceeds the {settings.max_file_size} byte limit")
                    await out.write(chunk)
            texts.append(services.extract_text_from_file(dest, file.content_type))
        finally:
            dest.unlink(missing_ok=True)
    return texts


def _evidence_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        raise ValidationError("Evidence must be a JSON list of strings") from None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError("Evidence must be a JSON list of strings")
    return value


# ---- CASE CREATION WITH DOCUMENT UPLOAD ----
@app.post("/cases/upload", status_code=201)
async def create_case_with_documents(
    case_type: str = Form(...),
    jurisdiction: str = Form(...),
    side_a_summary: str = Form(...),
    side_b_summary: str = Form(...),
    side_a_evidence: Optional[str] = Form(None),
    side_b_evidence: Optional[str] = Form(None),
    side_a_docs: List[UploadFile] = File(default=[]),
    side_b_docs: List[UploadFile] = File(default=[]),
    store: CaseStore = Depends(get_store),
):
    """Create a case, extracting text from each side's uploaded documents"""
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    side_a = models.SideInput.model_construct(
        summary=side_a_summary,
        evidence=_evidence_list(side_a_evidence),
        documents=await _extract_uploads(side_a_docs),
    )
    side_b = models.SideInput.model_construct(
        summary=side_b_summary,
        evidence=_evidence_list(side_b_evidence),
        documents=await _extract_uploads(side_b_docs),
    )
    case_id = store.create_case(case_type, jurisdiction, side_a, side_b)
    return {"success": True, "case_id": case_id, "message": "Case created successfully"}


# ---- GET SINGLE CASE ----
@app.get("/cases/{case_id}", response_model=models.CaseView)
def get_case(case_id: str, store: CaseStore = Depends(get_store)):
    """Get a specific case with both sides"""
    return store.get_case(case_id)


# ---- JUDGMENT ----
@app.post("/cases/{case_id}/judgment", response_model=models.JudgmentView)
def generate_judgment(case_id: str, protocol: JudgmentProtocol = Depends(get_protocol)):
    """Generate (or return the current) tentative judgment"""
    return protocol.generate_judgment(case_id)


@app.get("/cases/{case_id}/judgments")
def get_judgments(case_id: str, protocol: JudgmentProtocol = Depends(get_protocol)):
    """Get the judgment version history of a case"""
    judgments = protocol.list_judgments(case_id)
    return {"judgments": judgments, "count": len(judgments)}


# ---- ARGUMENTS ----
@app.post("/cases/{case_id}/arguments", response_model=models.ArgumentOutcome)
def submit_argument(case_id: str, payload: models.ArgumentCreate, protocol: JudgmentProtocol = Depends(get_protocol)):
    """Submit an argument from side A or B"""
    return protocol.submit_argument(case_id, payload.side.value, payload.argument)


@app.get("/cases/{case_id}/arguments", response_model=models.ArgumentList)
def get_arguments(case_id: str, protocol: JudgmentProtocol = Depends(get_protocol)):
    """Get all arguments for a case"""
    arguments, remaining = protocol.list_arguments(case_id)
    return models.ArgumentList(arguments=arguments, count=len(arguments), remaining_arguments=remaining)


# ---- FINAL VERDICT ----
@app.post("/cases/{case_id}/final-verdict", response_model=models.JudgmentView)
def final_verdict(case_id: str, protocol: JudgmentProtocol = Depends(get_protocol)):
    """Generate the final verdict from the full argument history"""
    return protocol.generate_final_verdict(case_id)


# ---- FACT CHECK ----
class FactExtractRequest(BaseModel):
    document_text: str


class FactValidateRequest(BaseModel):
    argument: str
    document_facts: DocumentFacts


class ClaimCheckRequest(BaseModel):
    claim: str
    document_facts: DocumentFacts


@app.post("/fact-check/extract")
def extract_facts(payload: FactExtractRequest, checker: FactCheckService = Depends(get_fact_checker)):
    if not payload.document_text.strip():
        raise ValidationError("Document text is required")
    return {"success": True, "facts": checker.extract_facts(payload.document_text)}


@app.post("/fact-check/validate")
def validate_argument(payload: FactValidateRequest, checker: FactCheckService = Depends(get_fact_checker)):
    return {"success": True, "validation": checker.validate_argument(payload.argument, payload.document_facts)}


@app.post("/fact-check/claim")
def check_claim(payload: ClaimCheckRequest, checker: FactCheckService = Depends(get_fact_checker)):
    return {"success": True, "result": checker.check_claim(payload.claim, payload.document_facts)}


# ---- HEALTH CHECK ----
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "AI Judge API", "cache": cache.enabled}
