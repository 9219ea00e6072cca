"""FastAPI application for the passport-gated forum."""

import contextlib
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables from .env file
load_dotenv()

from ..domain.ports.entity_store import StoreUnavailableError
from ..domain.ports.identity_verifier import VerifierUnavailableError
from ..domain.services.publication_service import EntityNotFoundError, InvalidRequestError
from ..domain.services.verification_state import EntityAlreadyFinalizedError
from ..infrastructure.dependencies import get_service_container
from .endpoints import health, posts, verification

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the verifier on startup, release them on shutdown."""
    container = get_service_container()
    await container.startup()

    yield  # Application runs here

    await container.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Passport Forum API",
    description="Forum whose posts and comments are gated on passport proof verification",
    version="0.1.0",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_service_container().config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(posts.router)
app.include_router(verification.router)

# Set lifespan handler
app.router.lifespan_context = lifespan


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "result": False, "message": message},
    )


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(EntityNotFoundError)
async def not_found_handler(request: Request, exc: EntityNotFoundError) -> JSONResponse:
    return _error(404, str(exc))


@app.exception_handler(EntityAlreadyFinalizedError)
async def already_finalized_handler(request: Request, exc: EntityAlreadyFinalizedError) -> JSONResponse:
    logger.info(f"🔁 Rejected callback: {exc}")
    return _error(409, str(exc))


@app.exception_handler(VerifierUnavailableError)
async def verifier_unavailable_handler(request: Request, exc: VerifierUnavailableError) -> JSONResponse:
    logger.error(f"❌ Verifier unavailable: {exc}")
    return _error(502, "Identity verifier unavailable, please retry")


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error(f"❌ Store unavailable: {exc}", exc_info=True)
    return _error(503, "Service temporarily unavailable, please retry")
