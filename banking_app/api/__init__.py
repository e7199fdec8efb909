"""
Banking API Application Factory
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .accounts import router as accounts_router
from .auth import router as auth_router
from .transactions import router as transactions_router
from .. import __version__
from ..config import get_config
from ..errors import BankingError, ErrorKind, ValidationError, INVALID_AMOUNT, INVALID_INPUT
from ..logging_config import setup_logging, get_logger, log_action


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
    ErrorKind.VALIDATION: 400,
    ErrorKind.INSUFFICIENT_FUNDS: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.BACKEND_UNAVAILABLE: 503,
}

logger = get_logger("banking_app.api")


def request_validation_error(exc: RequestValidationError) -> ValidationError:
    """Malformed bodies are precondition failures like any other"""
    errors = exc.errors()
    if any(error.get("loc") and error["loc"][-1] == "amount" for error in errors):
        return ValidationError("Amount must be a positive integer", code=INVALID_AMOUNT)
    fields = sorted({str(error["loc"][-1]) for error in errors if error.get("loc")})
    return ValidationError(f"Invalid request: {', '.join(fields) or 'body'}", code=INVALID_INPUT)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, fmt=config.log_format)

    app = FastAPI(
        title=config.api_title,
        description="Account management and money movement: withdraw, deposit, send money",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        status_code = STATUS_BY_KIND.get(exc.kind, 400)
        log_action(
            logger, "error" if status_code >= 500 else "info",
            f"{request.method} {request.url.path} -> {status_code}: {exc.message}",
            correlation_id=getattr(request.state, "correlation_id", None),
            action="request_failed", resource=request.url.path,
            extra={"code": exc.code}
        )
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return await banking_error_handler(request, request_validation_error(exc))

    # Include routers
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/accounts", tags=["Money Movement"])
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "banking_app_api",
            "version": __version__
        }

    return app


# Run server function
def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "banking_app.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
