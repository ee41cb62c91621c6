import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
import os

from shared.log import setup_logging
from services.exam_management.engine.errors import (
    AuthError,
    ConfigInvalid,
    ExamEngineError,
    GradingSystemInvalid,
    InvalidTransition,
    NotFound,
    ResultsFrozen,
    RowRejected,
    UnknownCapability,
    UnknownGate,
)
from services.user_management.controllers.school_service import router as school_router
from services.exam_management.controllers.exam_service import router as exam_router
from services.exam_management.controllers.result_service import router as result_router
from services.exam_management.controllers.grading_service import router as grading_router
from services.exam_management.controllers.assignment_service import router as assignment_router
from services.exam_management.controllers.gate_service import router as gate_router

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="SchoolMate Exams Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# First match wins, so subclasses come before their bases
ERROR_STATUS = {
    AuthError: 403,
    NotFound: 404,
    InvalidTransition: 409,
    ConfigInvalid: 422,
    GradingSystemInvalid: 422,
    RowRejected: 422,
    ResultsFrozen: 423,
    UnknownCapability: 400,
    UnknownGate: 400,
}


@app.exception_handler(ExamEngineError)
async def exam_engine_error_handler(request: Request, exc: ExamEngineError):
    status_code = 400
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    if isinstance(exc, AuthError):
        logger.warning("%s %s denied: %s", request.method, request.url.path, exc.reason.value)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/")
def health_check():
    return {"status": "SchoolMate Exams Backend is running ✅"}


app.include_router(school_router)
app.include_router(exam_router)
app.include_router(result_router)
app.include_router(grading_router)
app.include_router(assignment_router)
app.include_router(gate_router)
