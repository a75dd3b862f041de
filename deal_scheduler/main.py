import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .database import Base, engine
from .domain.jobs.queue import get_job_queue
from .domain.recurring.router import router as recurring_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("arq").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield

    await get_job_queue().close()
    logger.info("Application shutting down...")


app = FastAPI(title="Deal Scheduler API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Missing Authorization header becomes 401; every other validation
    failure is a bad request naming the offending field
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    errors = exc.errors()
    logger.warning(f"Validation error for {request.url.path}: {errors}")
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    # Pydantic prefixes messages raised from validators with "Value error, "
    message = message.removeprefix("Value error, ")
    return JSONResponse(
        status_code=400,
        content={"detail": message, "errors": jsonable_errors(errors)},
    )


def jsonable_errors(errors) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in errors
    ]


app.include_router(recurring_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
