import inspect
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from openai import AsyncOpenAI

from routes.game_play_route import router as game_play_router
from routes.game_route import router as game_router
from routes.payment_route import router as payment_router
from routes.session_route import router as session_router
from services.openai.story_generator import OpenAIStoryGenerator
from services.payments.transaction_verifier import TransactionVerifier
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import EngineSettings

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - engine settings from the environment
      - the SQLite database (schema ensured at DATABASE_DIR/app.db, rows kept)
      - the OpenAI async client and the story generator built on it
      - the payment transaction verifier
    and attach them to `app.state`. A story generator already present on
    `app.state` is kept as-is.
    """
    settings = EngineSettings.from_env()
    app.state.settings = settings

    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    openai_client = None
    if getattr(app.state, "story_generator", None) is None:
        if not os.getenv("OPENAI_API_KEY"):
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")
        try:
            openai_client = AsyncOpenAI()
        except Exception as exc:
            raise RuntimeError("Failed to initialize OpenAI Async client") from exc
        app.state.story_generator = OpenAIStoryGenerator(openai_client, default_model=settings.default_story_model)
    app.state.openai_client = openai_client

    if getattr(app.state, "payment_verifier", None) is None:
        app.state.payment_verifier = TransactionVerifier(
            settings.base_rpc_url, contract_address=settings.payment_contract_address
        )

    LOGGER.info(
        "Narrative engine ready (max_panels=%d, context_limit=%d, db=%s)",
        settings.max_panels,
        settings.context_limit,
        db_initializer.db_path,
    )
    try:
        yield
    finally:
        # Gracefully close the OpenAI client if it exposes a close/aclose method.
        if openai_client is not None:
            aclose = getattr(openai_client, "aclose", None) or getattr(openai_client, "close", None)
            if aclose is not None:
                try:
                    if inspect.iscoroutinefunction(aclose):
                        await aclose()
                    else:
                        result = aclose()
                        if inspect.isawaitable(result):
                            await result
                except Exception as exc:
                    LOGGER.warning("OpenAI client shutdown failed: %s", exc)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies DB initializer and generator presence.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        has_generator = getattr(request.app.state, "story_generator", None) is not None
        return {"ok": True, "db_initialized": has_db, "generator_available": has_generator}

    # Register application routers
    app.include_router(game_play_router)
    app.include_router(game_router)
    app.include_router(session_router)
    app.include_router(payment_router)

    return app


app = create_app()
