"""
Persistent store for fetched encryption keys.
"""

import logging
from typing import List, Protocol

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import sessionmaker

from keyfetch.clock import Clock, current_time_millis
from keyfetch.database import session_scope
from keyfetch.db_models import EncryptionKeyRow
from keyfetch.models import EncryptionKey, KeyType

logger = logging.getLogger(__name__)


class KeyStore(Protocol):
    """Operations the key manager needs from its persistent store."""

    def insert(self, key: EncryptionKey) -> bool:
        ...

    def get_latest_expiry_n_keys(self, count: int) -> List[EncryptionKey]:
        ...

    def delete_expired_keys(self) -> int:
        ...


def _to_key(row: EncryptionKeyRow) -> EncryptionKey:
    return EncryptionKey(
        key_identifier=row.key_identifier,
        public_key=row.public_key,
        key_type=KeyType(row.key_type),
        creation_time=row.creation_time,
        expiry_time=row.expiry_time,
    )


class SqlKeyStore:
    """
    SQLAlchemy-backed key store on the encryption_keys table.

    Every operation runs in its own transaction. Inserts replace any
    existing row with the same key identifier.
    """

    def __init__(self, session_factory: sessionmaker, clock: Clock = current_time_millis):
        """
        Initialize key store.

        Args:
            session_factory: Session factory bound to an initialized database
            clock: Returns the current time in epoch millis
        """
        self.session_factory = session_factory
        self.clock = clock

    def insert(self, key: EncryptionKey) -> bool:
        """
        Insert or replace a key.

        Args:
            key: Key to persist

        Returns:
            True once the row is written
        """
        values = {
            "key_identifier": key.key_identifier,
            "public_key": key.public_key,
            "key_type": int(key.key_type),
            "creation_time": key.creation_time,
            "expiry_time": key.expiry_time,
        }
        with session_scope(self.session_factory) as db:
            dialect = db.get_bind().dialect.name
            if dialect in ("sqlite", "postgresql"):
                dialect_insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = dialect_insert(EncryptionKeyRow).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[EncryptionKeyRow.key_identifier],
                    set_={
                        name: value for name, value in values.items()
                        if name != "key_identifier"
                    },
                )
                db.execute(stmt)
            else:
                db.merge(EncryptionKeyRow(**values))
        return True

    def get_latest_expiry_n_keys(self, count: int) -> List[EncryptionKey]:
        """
        Get unexpired keys, furthest expiry first.

        Args:
            count: Maximum number of keys to return

        Returns:
            Up to count keys with expiry_time in the future
        """
        now = self.clock()
        with session_scope(self.session_factory) as db:
            rows = db.scalars(
                select(EncryptionKeyRow)
                .where(EncryptionKeyRow.expiry_time > now)
                .order_by(EncryptionKeyRow.expiry_time.desc())
                .limit(count)
            ).all()
            return [_to_key(row) for row in rows]

    def read_keys(self) -> List[EncryptionKey]:
        """Get every stored key regardless of expiry, ordered by identifier."""
        with session_scope(self.session_factory) as db:
            rows = db.scalars(
                select(EncryptionKeyRow).order_by(EncryptionKeyRow.key_identifier)
            ).all()
            return [_to_key(row) for row in rows]

    def delete_expired_keys(self) -> int:
        """
        Delete keys whose expiry time has passed.

        Returns:
            Number of keys deleted
        """
        now = self.clock()
        with session_scope(self.session_factory) as db:
            result = db.execute(
                delete(EncryptionKeyRow).where(EncryptionKeyRow.expiry_time < now)
            )
            deleted = result.rowcount
        logger.debug("Deleted %s expired keys from database", deleted)
        return deleted

    def delete_all_keys(self) -> int:
        """Delete every key regardless of expiry."""
        with session_scope(self.session_factory) as db:
            deleted = db.execute(delete(EncryptionKeyRow)).rowcount
        logger.debug("Force deleted %s keys from database", deleted)
        return deleted
