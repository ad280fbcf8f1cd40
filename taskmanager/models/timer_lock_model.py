"""Per-owner mutex stored in the ``timer_locks`` collection."""
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timedelta

from pymongo.errors import DuplicateKeyError, PyMongoError

from ..utils.errors import ConflictError, PersistenceError
from ..utils.validators import Helpers

logger = logging.getLogger(__name__)


class TimerLock:
    """Serializes timer starts of one owner across processes.

    The lock document uses the owner id as ``_id``, so at most one holder
    exists at a time. A lock left behind by a crashed holder expires after
    ``ttl_seconds`` and may then be taken over.
    """

    def __init__(self, db, ttl_seconds: int = 30, retries: int = 20, retry_delay: float = 0.05):
        self.collection = db.timer_locks
        self.ttl_seconds = ttl_seconds
        self.retries = retries
        self.retry_delay = retry_delay

    def acquire(self, owner_id: str, now: datetime = None) -> str:
        """Take the owner's lock, returning the holder token.

        Raises ConflictError when the lock stays held through every retry.
        """
        token = Helpers.generate_id()

        for attempt in range(self.retries + 1):
            current = Helpers.to_storage(now or Helpers.get_current_timestamp())
            expires_at = current + timedelta(seconds=self.ttl_seconds)
            try:
                if self._try_acquire(owner_id, token, current, expires_at):
                    return token
            except PyMongoError as e:
                raise PersistenceError(f"Failed to acquire timer lock: {str(e)}")

            if attempt < self.retries:
                time.sleep(self.retry_delay)

        raise ConflictError('Another timer operation is in progress, please retry')

    def _try_acquire(self, owner_id, token, current, expires_at) -> bool:
        try:
            self.collection.insert_one({'_id': owner_id, 'token': token, 'expires_at': expires_at})
            return True
        except DuplicateKeyError:
            pass

        taken = self.collection.find_one_and_update(
            {'_id': owner_id, 'expires_at': {'$lt': current}},
            {'$set': {'token': token, 'expires_at': expires_at}},
        )
        if taken is not None:
            logger.warning(f"Took over expired timer lock for user {owner_id}")
            return True
        return False

    def release(self, owner_id: str, token: str) -> None:
        try:
            self.collection.delete_one({'_id': owner_id, 'token': token})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to release timer lock: {str(e)}")

    @contextmanager
    def hold(self, owner_id: str, now: datetime = None):
        token = self.acquire(owner_id, now)
        try:
            yield token
        except Exception:
            # the body's error wins; an unreleased lock expires after ttl_seconds
            try:
                self.release(owner_id, token)
            except PersistenceError as e:
                logger.error(f"Failed to release timer lock for user {owner_id}: {e.message}")
            raise
        self.release(owner_id, token)
