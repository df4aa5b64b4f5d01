"""
Benetrip Flight Search API - FastAPI Application
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

import httpx
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import LogLevel, Settings, get_global_settings
from app.core.error_handler import ErrorCode, error_handler
from app.core.exceptions import FlightSearchError, SearchValidationError
from app.models.requests import RedirectRequest
from app.models.responses import (
    Place,
    PollTimeoutReport,
    RedirectDescriptor,
    SearchHandle,
    SearchResults,
)
from app.services.autocomplete import PlaceAutocomplete
from app.services.executor import RetryExecutor, RetryPolicy
from app.services.flight_search import FlightSearchService
from app.services.http_client import AsyncHttpClient
from app.services.redirect_cache import RedirectLinkCache
from app.services.redirect_resolver import RedirectResolver
from app.services.travelpayouts_client import TravelpayoutsClient

settings = get_global_settings()

# Configure logging
logging.basicConfig(level=LogLevel(settings.LOG_LEVEL).value)
logger = logging.getLogger(__name__)


class ServiceContainer:
    """Wires the services together from one Settings instance."""

    def __init__(self, config: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = config
        self.http_client = AsyncHttpClient(timeout=config.REQUEST_TIMEOUT, transport=transport)
        self.gateway = TravelpayoutsClient(
            self.http_client,
            marker=config.AVIASALES_MARKER,
            token=config.AVIASALES_TOKEN,
            base_url=config.TRAVELPAYOUTS_BASE_URL,
            autocomplete_url=config.AUTOCOMPLETE_URL,
            host=config.SEARCH_HOST,
            locale=config.SEARCH_LOCALE
        )
        self.executor = RetryExecutor(RetryPolicy(**config.get_executor_config()))
        self.redirect_cache = RedirectLinkCache(**config.get_cache_config())
        self.redirect_resolver = RedirectResolver(
            self.gateway,
            self.redirect_cache,
            self.executor,
            policy=RetryPolicy(**config.get_redirect_config()),
            currency=config.DEFAULT_CURRENCY,
            language=config.SEARCH_LOCALE,
            redirect_page_template=config.REDIRECT_PAGE_TEMPLATE
        )
        poll_config = config.get_poll_config()
        self.flight_search = FlightSearchService(
            self.gateway,
            self.executor,
            self.redirect_resolver,
            self.redirect_cache,
            search_policy=self.executor.default_policy,
            poll_interval=poll_config['interval'],
            poll_max_attempts=poll_config['max_attempts']
        )
        self.autocomplete = PlaceAutocomplete(
            self.gateway,
            self.executor,
            policy=RetryPolicy(timeout=config.AUTOCOMPLETE_TIMEOUT, max_retries=0),
            locale=config.SEARCH_LOCALE
        )

    async def close(self) -> None:
        await self.http_client.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Benetrip Flight Search API ({settings.ENVIRONMENT})")
    logger.debug(f"Configuration: {settings.mask_sensitive_data()}")
    container = ServiceContainer(settings)
    app.state.container = container
    try:
        yield
    finally:
        await container.close()
        logger.info("Benetrip Flight Search API stopped")


# Create FastAPI application instance
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description="Flight search orchestration and partner redirect API",
    lifespan=lifespan
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency injection
def get_container(request: Request) -> ServiceContainer:
    """Dependency to provide the application's ServiceContainer."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=500, detail="Services not initialized")
    return container


def get_configured_container(container: ServiceContainer = Depends(get_container)) -> ServiceContainer:
    """Container whose partner credentials are present; required for live searches."""
    try:
        container.settings.validate_required_settings()
    except ValueError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Flight search is not configured")
    return container


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


# Global exception handlers
@app.exception_handler(FlightSearchError)
async def flight_search_exception_handler(request: Request, exc: FlightSearchError):
    """Handle service failures with consistent error response format."""
    error_code, message = error_handler.handle_flight_search_error(exc, request)
    return error_handler.create_json_response(error_code, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent error response format."""
    try:
        error_code = ErrorCode(f"HTTP_{exc.status_code}")
    except ValueError:
        error_code = ErrorCode.INTERNAL_SERVER_ERROR if exc.status_code >= 500 else ErrorCode.HTTP_400
    error_handler.log_error(error_code, str(exc.detail), request=request)

    response = error_handler.create_json_response(error_code, str(exc.detail))
    response.status_code = exc.status_code
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors with consistent error response format."""
    message = f"Request validation failed: {exc.errors()}"
    error_handler.log_error(ErrorCode.VALIDATION_ERROR, message, request=request)
    return error_handler.create_json_response(ErrorCode.VALIDATION_ERROR, message)


@app.exception_handler(ValidationError)
async def pydantic_validation_exception_handler(request: Request, exc: ValidationError):
    """Handle Pydantic validation errors with consistent error response format."""
    return error_handler.handle_validation_error(exc, request)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions with consistent error response format."""
    error_handler.log_error(
        ErrorCode.INTERNAL_SERVER_ERROR,
        f"Unhandled {type(exc).__name__}: {exc}",
        request=request,
        exception=exc
    )
    return error_handler.create_json_response(ErrorCode.INTERNAL_SERVER_ERROR)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "benetrip-flights"}


@app.post("/api/flight-search", response_model=SearchHandle)
async def start_flight_search(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    container: ServiceContainer = Depends(get_configured_container)
):
    """
    Start a flight search and return its handle.

    Invalid parameters are rejected with 422 before the partner API is called.
    """
    handle = await container.flight_search.start_search(payload, user_ip=get_client_ip(request))
    logger.info(f"Search handle issued: {handle.search_id}")
    return handle


@app.get("/api/flight-results")
async def get_flight_results(
    uuid: Optional[str] = Query(default=None),
    search_id: Optional[str] = Query(default=None),
    searchId: Optional[str] = Query(default=None),
    container: ServiceContainer = Depends(get_configured_container)
):
    """
    Fetch the results currently available for a search.

    An empty ``proposals`` list means the search is still running.
    """
    handle_id = uuid or search_id or searchId
    if not handle_id:
        raise SearchValidationError("uuid (search_id) is required", field="uuid")
    return await container.flight_search.fetch_results_once(handle_id)


@app.post("/api/flights/search", response_model=Union[SearchResults, PollTimeoutReport])
async def search_flights(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    container: ServiceContainer = Depends(get_configured_container)
):
    """
    Run a full search: initiate, poll until proposals arrive, normalize.

    Returns:
        SearchResults, or a report with ``success: false`` when no results
        arrived within the allowed poll attempts
    """
    return await container.flight_search.search(payload, user_ip=get_client_ip(request))


@app.get("/api/flight-redirect", response_model=RedirectDescriptor)
async def get_flight_redirect(
    search_id: Optional[str] = Query(default=None),
    term_url: Optional[str] = Query(default=None),
    marker: Optional[str] = Query(default=None),
    offer_id: Optional[str] = Query(default=None),
    gate_id: Optional[str] = Query(default=None),
    gate_label: Optional[str] = Query(default=None),
    container: ServiceContainer = Depends(get_configured_container)
):
    """
    Resolve the partner booking link for an offer.

    The affiliate marker must match the configured one.
    """
    if marker is not None and str(marker) != container.settings.AVIASALES_MARKER:
        logger.warning("Redirect requested with a foreign affiliate marker")
        raise HTTPException(status_code=403, detail="Invalid affiliate marker")

    ref = RedirectRequest(
        offer_id=offer_id or f"{search_id}:{term_url}",
        search_id=search_id,
        term_url=term_url,
        gate_id=gate_id,
        gate_label=gate_label
    )
    return await container.flight_search.resolve_redirect(ref)


@app.get("/api/autocomplete", response_model=List[Place])
async def autocomplete(
    term: Optional[str] = Query(default=None),
    container: ServiceContainer = Depends(get_container)
):
    """City and airport suggestions; falls back to a static list on failure."""
    return await container.autocomplete.suggest(term)
