import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import Base, engine
from .errors import DefinitionError, GradingError
from .settings import settings
from .routers import health
from .routers import auth
from .routers import validate
from .routers import progress

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("taskgrader")

app = FastAPI(title="Task Validation API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(validate.router)
app.include_router(progress.router)

_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
	CORSMiddleware,
	allow_origins=_origins,
	allow_methods=["GET", "POST", "OPTIONS"],
	allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.exception_handler(GradingError)
async def grading_error_handler(request: Request, exc: GradingError):
	if isinstance(exc, DefinitionError):
		logger.warning("Definition error on %s: %s", request.url.path, exc)
	elif exc.status_code >= 500:
		logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
	else:
		logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
	return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
	# The body is decoded before dependencies run, so authenticate here first
	try:
		auth.user_from_authorization(request.headers.get("Authorization"))
	except HTTPException as e:
		return JSONResponse(status_code=e.status_code, content={"detail": e.detail}, headers=e.headers)
	logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
	return JSONResponse(status_code=400, content={"detail": "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
	logger.exception("Critical error while handling %s", request.url.path)
	return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
async def startup_event():
	# Tables are normally owned by the content side; create them for local runs
	Base.metadata.create_all(bind=engine)
