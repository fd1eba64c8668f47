from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import init_db
from .errors import AppError
from .settings import settings
from .routers import auth
from .routers import courses
from .routers import enrollments
from .routers import exams
from .routers import lessons
from .routers import questions
from .routers import rubrics

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	# Initialize DB schema
	init_db()
	logger.info("database ready")
	yield


app = FastAPI(title="English Hub API", lifespan=lifespan)
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origin_list,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(auth.router)
app.include_router(courses.router)
app.include_router(enrollments.router)
app.include_router(lessons.router)
app.include_router(questions.router)
app.include_router(rubrics.router)
app.include_router(exams.router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
	return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health")
def health():
	return {"status": "ok"}
