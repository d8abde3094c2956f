"""
Periodic background refresh of the encryption key cache.
"""

import asyncio
import logging
from concurrent.futures import Future

from keyfetch.key_manager import EncryptionKeyManager
from keyfetch.models import KeyType

logger = logging.getLogger(__name__)


class BackgroundKeyFetchJob:
    """
    Scheduled key fetch: refreshes the cache and evicts expired keys.

    A failed run is logged and left alone; the next period tries again.
    """

    def __init__(
        self,
        key_manager: EncryptionKeyManager,
        period_seconds: int,
        key_type: KeyType = KeyType.ENCRYPTION
    ):
        self.key_manager = key_manager
        self.period_seconds = period_seconds
        self.key_type = key_type
        self.runs = 0

    def run_once(self) -> Future:
        """
        Start one scheduled fetch.

        Returns:
            Future of the fetched keys, with logging attached
        """
        self.runs += 1
        run_id = self.runs
        logger.debug("BackgroundKeyFetchJob run %d started", run_id)

        future = self.key_manager.fetch_and_persist_active_keys(
            self.key_type, is_scheduled_job=True
        )

        def _log_result(done: Future):
            if done.cancelled():
                logger.error("BackgroundKeyFetchJob run %d was cancelled", run_id)
                return
            error = done.exception()
            if error is not None:
                logger.error(
                    "Failed to run job %d to fetch key and delete expired keys: %s",
                    run_id, error
                )
                return
            logger.info("BackgroundKeyFetchJob run %d is done, fetched %d keys", run_id, len(done.result()))

        future.add_done_callback(_log_result)
        return future

    async def run_forever(self):
        """Run the job every period_seconds until cancelled."""
        while True:
            try:
                await asyncio.wrap_future(self.run_once())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("Next scheduled key fetch in %ds after failure: %s", self.period_seconds, e)
            await asyncio.sleep(self.period_seconds)
