import inspect
import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from openai import AsyncOpenAI

from dal.generation_dal import GenerationDAL
from routes.account_route import router as account_router
from routes.generation_route import router as generation_router
from routes.generation_ws import router as generation_ws_router
from services.credits.credit_ledger import CreditLedger
from services.generation.gateway import GenerationGateway
from services.generation.orchestrator import GenerationOrchestrator
from services.generation.request_builder import GenerationRequestBuilder
from services.generation.retry import RetryPolicy
from services.generation.session_store import SessionStore
from services.generation.transports import HttpBackendTransport, OpenAIImageTransport
from services.image_normalizer import ImageNormalizer
from utils.database_init import AsyncDatabaseInitializer

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def _build_transport(http_client: httpx.AsyncClient, app: FastAPI):
    """Pick the generation backend from GENERATION_BACKEND / GENERATION_BACKEND_URL."""
    backend_url = os.getenv("GENERATION_BACKEND_URL")
    backend = (os.getenv("GENERATION_BACKEND") or ("http" if backend_url else "openai")).lower()

    if backend == "http":
        if not backend_url:
            raise RuntimeError("GENERATION_BACKEND_URL environment variable is not set")
        return HttpBackendTransport(http_client, backend_url, token=os.getenv("GENERATION_BACKEND_TOKEN"))

    if backend == "openai":
        if not os.getenv("OPENAI_API_KEY"):
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")
        try:
            openai_client = AsyncOpenAI()
        except Exception as exc:
            raise RuntimeError("Failed to initialize OpenAI Async client") from exc
        app.state.openai_client = openai_client
        return OpenAIImageTransport(openai_client)

    raise RuntimeError(f"Unsupported GENERATION_BACKEND: {backend!r}")


async def _close_client(client) -> None:
    """Close a client exposing aclose/close, sync or async."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception:
        # Shutdown errors must not mask more important issues.
        LOGGER.warning("Error while closing %s", type(client).__name__, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite history database (at DATABASE_DIR/app.db)
      - the shared httpx client, generation transport and credit ledger
      - the session store that creates one orchestrator per UI session
    and attach them to `app.state`.
    """
    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    http_client = httpx.AsyncClient(follow_redirects=True)
    app.state.http_client = http_client
    app.state.openai_client = None

    try:
        transport = _build_transport(http_client, app)

        balance_url = os.getenv("CREDIT_BALANCE_URL")
        credit_ledger = None
        if balance_url:
            credit_ledger = CreditLedger(http_client, balance_url, token=os.getenv("GENERATION_BACKEND_TOKEN"))
        else:
            LOGGER.warning("CREDIT_BALANCE_URL not set; local credit precheck is disabled")
        app.state.credit_ledger = credit_ledger

        retry_policy = RetryPolicy(
            max_attempts=int(os.getenv("GENERATION_MAX_ATTEMPTS", "3")),
            base_delay_s=float(os.getenv("GENERATION_BASE_DELAY_S", "2.0")),
        )
        gateway = GenerationGateway(transport, retry_policy)
        builder = GenerationRequestBuilder(ImageNormalizer(http_client))
        history = GenerationDAL(db_initializer)
        timeout_s = float(os.getenv("GENERATION_TIMEOUT_S", "420"))

        def orchestrator_factory() -> GenerationOrchestrator:
            return GenerationOrchestrator(
                builder,
                gateway,
                credit_ledger,
                history=history,
                timeout_s=timeout_s,
            )

        app.state.session_store = SessionStore(orchestrator_factory)
        yield
    finally:
        await _close_client(getattr(app.state, "openai_client", None))
        await _close_client(http_client)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports which collaborators are configured.
        """
        state = request.app.state
        return {
            "ok": True,
            "db_initialized": getattr(state, "db_initializer", None) is not None,
            "sessions_available": getattr(state, "session_store", None) is not None,
            "credit_ledger_configured": getattr(state, "credit_ledger", None) is not None,
        }

    app.include_router(generation_router)
    app.include_router(generation_ws_router)
    app.include_router(account_router)

    return app


app = create_app()
