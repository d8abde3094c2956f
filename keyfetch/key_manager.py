"""
Encryption key manager: fetch, persist, evict and serve cached keys.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import List, Optional

from keyfetch.clock import Clock, current_time_millis
from keyfetch.config import KeyManagerConfig
from keyfetch.database import create_db_engine, create_session_factory, init_db
from keyfetch.futures import transform
from keyfetch.http_client import HttpClient
from keyfetch.key_fetcher import KeyFetcher
from keyfetch.key_store import KeyStore, SqlKeyStore
from keyfetch.models import EncryptionKey, KeyType

logger = logging.getLogger(__name__)

FORCED_FETCH_TIMEOUT_SECONDS = 5.0


class EncryptionKeyManager:
    """
    Read-through cache of encryption keys in front of the key server.

    Construct one instance per process and share it. Concurrent fetches
    are not serialized; the store's upsert by key identifier keeps them
    safe.
    """

    def __init__(
        self,
        clock: Clock,
        key_store: KeyStore,
        config: KeyManagerConfig,
        key_fetcher: KeyFetcher,
        executor: Executor,
        forced_fetch_timeout_seconds: float = FORCED_FETCH_TIMEOUT_SECONDS
    ):
        """
        Initialize key manager.

        Args:
            clock: Returns the current time in epoch millis
            key_store: Persistent key store
            config: Key manager configuration
            key_fetcher: Key fetch pipeline
            executor: Background executor for persistence stages
            forced_fetch_timeout_seconds: How long a cache miss waits for a fetch
        """
        self.clock = clock
        self.key_store = key_store
        self.config = config
        self.key_fetcher = key_fetcher
        self.executor = executor
        self.forced_fetch_timeout_seconds = forced_fetch_timeout_seconds

    def close(self):
        """Close the HTTP client and stop accepting background work."""
        self.key_fetcher.http_client.close()
        self.executor.shutdown(wait=False)

    def fetch_and_persist_active_keys(self, key_type: KeyType, is_scheduled_job: bool) -> Future:
        """
        Fetch active keys, persist them and, for scheduled runs, delete expired keys.

        Args:
            key_type: Type of the keys to fetch
            is_scheduled_job: Whether this is the periodic background refresh

        Returns:
            Future resolving to the fetched keys. Fails with
            ConfigurationError or TransportError.
        """
        fetched = self.key_fetcher.fetch_keys_async(
            self.config.encryption_key_fetch_url, key_type, self.clock()
        )
        return transform(
            fetched,
            lambda keys: self._persist(keys, is_scheduled_job),
            self.executor,
        )

    def _persist(self, keys: List[EncryptionKey], is_scheduled_job: bool) -> List[EncryptionKey]:
        for key in keys:
            self.key_store.insert(key)
        if is_scheduled_job:
            # Only the background job evicts; on-demand fetches just refresh.
            try:
                self.key_store.delete_expired_keys()
            except Exception as e:
                logger.warning("Failed to delete expired encryption keys: %s", e)
        return keys

    def get_or_fetch_active_keys(self, key_type: KeyType, key_count: int) -> List[EncryptionKey]:
        """
        Get active keys, forcing a fetch from the key server when none are cached.

        On a cache miss the caller waits at most forced_fetch_timeout_seconds.
        A timeout only stops the wait: the fetch keeps running and its keys
        are persisted when it completes. Errors are logged, never raised.

        Args:
            key_type: Type of the keys to fetch on a miss
            key_count: Maximum number of keys to return

        Returns:
            Up to key_count active keys, furthest expiry first; possibly empty
        """
        active_keys = self.key_store.get_latest_expiry_n_keys(key_count)
        if active_keys:
            logger.debug("Existing active keys present, number of keys: %d", len(active_keys))
            return active_keys

        logger.debug("No existing active keys present, fetching new encryption keys.")
        try:
            self.fetch_and_persist_active_keys(key_type, is_scheduled_job=False).result(
                timeout=self.forced_fetch_timeout_seconds
            )
            active_keys = self.key_store.get_latest_expiry_n_keys(key_count)
        except FutureTimeoutError:
            logger.warning(
                "Time out after %ss when forcing encryption key fetch",
                self.forced_fetch_timeout_seconds
            )
        except Exception as e:
            logger.warning("Exception encountered when forcing encryption key fetch: %s", e)
        return active_keys


def create_key_manager(
    config: KeyManagerConfig,
    executor: Optional[Executor] = None,
    clock: Clock = current_time_millis
) -> EncryptionKeyManager:
    """
    Build a key manager and its collaborators from config.

    Args:
        config: Key manager configuration
        executor: Background executor (a thread pool is created when omitted)
        clock: Returns the current time in epoch millis

    Returns:
        EncryptionKeyManager backed by SqlKeyStore on config.database_url
    """
    if executor is None:
        executor = ThreadPoolExecutor(
            max_workers=config.background_executor_workers,
            thread_name_prefix="keyfetch",
        )

    engine = create_db_engine(config.database_url)
    init_db(engine)
    key_store = SqlKeyStore(create_session_factory(engine), clock)

    http_client = HttpClient(config.http_request_retry_limit, executor)
    key_fetcher = KeyFetcher(http_client, config.encryption_key_max_age_seconds, executor)

    return EncryptionKeyManager(clock, key_store, config, key_fetcher, executor)
