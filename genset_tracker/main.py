"""Main FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from genset_tracker.config import settings
from genset_tracker.database import engine, Base
from genset_tracker.api.routes import router
from genset_tracker.services.errors import GensetError, InternalError
# Import models to register them with SQLAlchemy Base
from genset_tracker.models.domain import Venue, User, Generator, VenueAttachment
from genset_tracker.models.audit import LogEntry

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("gensets.main")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Genset Fleet Tracker",
    description="Tracks backup generators across venues: power state, venue assignment and an audit trail.",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GensetError)
def genset_error_handler(request: Request, exc: GensetError):
    """Render every typed service failure as {"error", "code"} with its status."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})


@app.exception_handler(SQLAlchemyError)
def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return genset_error_handler(request, InternalError("Internal server error", code="INTERNAL"))


app.include_router(router, prefix="/api", tags=["Gensets"])


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Genset Fleet Tracker"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
