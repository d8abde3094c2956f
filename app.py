from fastapi import FastAPI, HTTPException, Query, Request
from typing import List
import asyncio
import logging
from contextlib import asynccontextmanager
from keyfetch.background import BackgroundKeyFetchJob
from keyfetch.config import ConfigurationError, load_config
from keyfetch.http_client import TransportError
from keyfetch.key_manager import create_key_manager
from keyfetch.models import EncryptionKey, KeyType

config = load_config()

logging.basicConfig(
    level=config.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler - runs on startup and shutdown."""
    # Startup: one key manager for the whole process
    key_manager = create_key_manager(config)
    app.state.key_manager = key_manager

    fetch_task = None
    if config.background_key_fetch_enabled:
        job = BackgroundKeyFetchJob(key_manager, config.encryption_key_fetch_period_seconds)
        fetch_task = asyncio.create_task(job.run_forever())
    else:
        logger.info("Background encryption key fetch is disabled.")

    yield

    # Shutdown: stop the scheduled fetch and release the manager
    if fetch_task is not None:
        fetch_task.cancel()
        try:
            await fetch_task
        except asyncio.CancelledError:
            pass
    key_manager.close()


app = FastAPI(
    title="keyfetch",
    description="Encryption key fetch-and-cache service",
    version="0.1.0",
    lifespan=lifespan
)


@app.get("/")
def read_root():
    return {
        "message": "keyfetch API",
        "docs": "/docs",
        "endpoints": {
            "keys": "/keys?count={n}",
            "fetch": "/keys/_fetch",
        }
    }


@app.get("/keys")
def get_active_keys(
    request: Request,
    count: int = Query(1, ge=1, description="Maximum number of keys to return")
) -> List[EncryptionKey]:
    """
    Get active encryption keys, fetching from the key server on a cache miss.

    Args:
        count: Maximum number of keys to return

    Returns:
        Active keys, furthest expiry first (may be empty)
    """
    return request.app.state.key_manager.get_or_fetch_active_keys(KeyType.ENCRYPTION, count)


@app.post("/keys/_fetch")
async def fetch_keys(request: Request) -> List[EncryptionKey]:
    """
    Fetch keys from the key server now and persist them.

    Returns:
        Freshly fetched keys

    Raises:
        HTTPException: On configuration or key server errors
    """
    key_manager = request.app.state.key_manager
    try:
        return await asyncio.wrap_future(
            key_manager.fetch_and_persist_active_keys(KeyType.ENCRYPTION, is_scheduled_job=False)
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=f"Key fetch misconfigured: {str(e)}")
    except TransportError as e:
        raise HTTPException(status_code=502, detail=f"Key server error: {str(e)}")
