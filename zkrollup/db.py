"""
Database wrapper with batch writes and a journaled write buffer.
"""
import plyvel
import logging
from typing import Optional
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 64 * 1024 * 1024,  # 64MB
                 max_open_files: int = 1000,
                 compression: Optional[str] = 'snappy'):
        """
        Initialize database.

        Args:
            db_path: Path to database directory
            create_if_missing: Create database if it doesn't exist
            write_buffer_size: Size of write buffer
            max_open_files: Maximum number of open files
            compression: LevelDB block compression ('snappy' or None)
        """
        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
                compression=compression,
            )
            self._closed = False
            logger.info(f"Database opened at {db_path}")
        except Exception as e:
            logger.error(f"Failed to open database at {db_path}: {e}")
            raise

    def get(self, key: bytes) -> Optional[bytes]:
        """
        Get value by key.

        Returns None if key doesn't exist.
        """
        if self._closed:
            raise RuntimeError("Database is closed")

        try:
            return self._db.get(key)
        except Exception as e:
            logger.error(f"Error getting key {key.hex()[:16]}: {e}")
            raise

    def put(self, key: bytes, value: bytes):
        """Put a key-value pair."""
        if self._closed:
            raise RuntimeError("Database is closed")

        try:
            self._db.put(key, value)
        except Exception as e:
            logger.error(f"Error putting key {key.hex()[:16]}: {e}")
            raise

    @contextmanager
    def write_batch(self):
        """
        Context manager for batch writes.

        Example:
            with db.write_batch() as batch:
                batch.put(b'key1', b'value1')
                batch.put(b'key2', b'value2')
        """
        if self._closed:
            raise RuntimeError("Database is closed")

        batch = self._db.write_batch()
        try:
            yield batch
            batch.write()
        except Exception as e:
            logger.error(f"Error in batch write: {e}")
            raise
        finally:
            batch.clear()

    def close(self):
        """Close the database."""
        if not self._closed:
            try:
                self._db.close()
                self._closed = True
                logger.info("Database closed")
            except Exception as e:
                logger.error(f"Error closing database: {e}")
                raise


class JournaledDB:
    """
    Buffers writes in memory on top of a DB.

    Reads see buffered writes first. Nothing reaches the underlying store
    until commit(), which flushes the whole journal in one write batch.
    """

    def __init__(self, db: DB):
        self.db = db
        self._pending: dict[bytes, bytes] = {}

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._pending:
            return self._pending[key]
        return self.db.get(key)

    def put(self, key: bytes, value: bytes):
        self._pending[key] = value

    def commit(self):
        """Flush every buffered write atomically."""
        if not self._pending:
            return
        with self.db.write_batch() as batch:
            for key, value in self._pending.items():
                batch.put(key, value)
        logger.debug(f"Committed {len(self._pending)} journaled writes")
        self._pending.clear()

    def discard(self):
        """Drop every buffered write."""
        self._pending.clear()

    @contextmanager
    def atomic(self):
        """Revert writes made inside the block if it raises."""
        saved = dict(self._pending)
        try:
            yield self
        except Exception:
            self._pending = saved
            raise

    @contextmanager
    def dry_run(self):
        """Revert writes made inside the block unconditionally."""
        saved = dict(self._pending)
        try:
            yield self
        finally:
            self._pending = saved
