import logging

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from .config import Settings, configure_logging
from .errors import ErrorKind, GenerationServiceError, InputRejected, SessionNotFound, StoreError, UploadError
from .models import (
    ComplianceSession, DepartmentsResponse, GenerateReportRequest, GenerateReportResponse,
    ResponseData, ResponseSaved, SessionCreated, SessionUpdate, TailorQuestionsRequest,
    TailorQuestionsResponse, UploadResult,
)
from .ollama_client import OllamaClient
from .prompts import NEPRA_DEPARTMENTS, POLICY_AREAS
from .question_generator import QuestionGenerator
from .report_generator import ReportGenerator
from .store import build_store
from .uploads import LocalReportStorage, content_type_for, default_report_name, safe_name

# ── configurable via .env ──
settings = Settings.load()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

store = build_store(settings)
report_storage = LocalReportStorage(settings.reports_dir, settings.public_base_url)
ollama = OllamaClient(model=settings.ollama_model)
question_generator = QuestionGenerator(ollama, max_questions=settings.max_questions)
report_generator = ReportGenerator(ollama)

app = FastAPI(title="NEPRA Compliance Agent", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins, allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)


@app.exception_handler(GenerationServiceError)
async def generation_error(request: Request, exc: GenerationServiceError):
    status = 503 if exc.kind == ErrorKind.OVERLOADED else 502
    logger.warning("Generation failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "kind": exc.kind.value})


@app.exception_handler(SessionNotFound)
async def session_not_found(request: Request, exc: SessionNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error(request: Request, exc: StoreError):
    logger.warning("Store error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(InputRejected)
async def input_rejected(request: Request, exc: InputRejected):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "ollama_model": settings.ollama_model,
        "session_store": store.backend,
        "store_ok": store.ping(),
    }


@app.get("/departments", response_model=DepartmentsResponse)
async def departments():
    return DepartmentsResponse(departments=sorted(NEPRA_DEPARTMENTS), policy_areas=POLICY_AREAS)


# ============== Generation ==============

@app.post("/questions", response_model=TailorQuestionsResponse)
def tailor_questions(req: TailorQuestionsRequest):
    questions = question_generator.generate(req.department, req.role)
    return TailorQuestionsResponse(questions=questions)


@app.post("/report", response_model=GenerateReportResponse)
def generate_report(req: GenerateReportRequest):
    return GenerateReportResponse(report_content=report_generator.generate(req))


# ============== Sessions ==============

@app.post("/sessions", response_model=SessionCreated, status_code=201)
def create_session(session: ComplianceSession):
    return SessionCreated(session_id=store.create_session(session))


@app.get("/sessions/{session_id}", response_model=ComplianceSession)
def get_session(session_id: str):
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found.")
    return session


@app.patch("/sessions/{session_id}", response_model=SessionCreated)
def update_session(session_id: str, update: SessionUpdate):
    store.update_session(session_id, update)
    return SessionCreated(session_id=session_id)


@app.put("/sessions/{session_id}/responses/{question_id}", response_model=ResponseSaved)
def save_response(session_id: str, question_id: str, response: ResponseData):
    if response.question_id != question_id:
        raise HTTPException(status_code=400, detail="Question ID in path and body differ.")
    key = store.add_response(session_id, response)
    return ResponseSaved(session_id=session_id, response_key=key)


# ============== Reports ==============

@app.post("/sessions/{session_id}/reports", response_model=UploadResult, status_code=201)
async def upload_report(session_id: str, file: UploadFile = File(...)):
    data = await file.read()
    try:
        name = safe_name(file.filename or default_report_name(session_id, data))
        url = report_storage.upload(session_id, data, name)
    except UploadError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return UploadResult(session_id=session_id, name=name, url=url)


@app.get("/reports/{session_id}/{name}")
def download_report(session_id: str, name: str):
    try:
        path = report_storage.open(session_id, name)
    except UploadError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return FileResponse(path, media_type=content_type_for(path.name), filename=path.name)
