"""
Session Store
=============
Durable, TTL-bound, per-session message logs.

Backends:
- RedisSessionStore: JSON record per session with a sliding TTL, plus a
  set of known session ids. Writes are optimistic WATCH/MULTI
  check-and-set transactions, retried on conflict.
- InMemorySessionStore: same record format kept in process memory; the
  sliding TTL is applied on read.

Both backends serialize read-modify-write cycles per session id inside the
process, so concurrent appends for one session never lose a message while
different sessions proceed independently.

Key layout:
- 'agent:session:{session_id}' -> JSON session record
- 'agent:sessions'             -> set of session ids

Author: Context Agent
"""

import json
import asyncio
import logging
import weakref
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from .config import AgentSettings
from .errors import CorruptStateError, DependencyUnavailableError
from .models import Message, Session, utcnow

logger = logging.getLogger(__name__)

SessionUpdater = Callable[[Session], None]


# =============================================================================
# KEY NAMESPACE
# =============================================================================

class SessionNamespace:
    """Helper class for session key namespacing"""

    TTL_SESSION = 86400        # 24 hours, refreshed on every write
    INDEX = "agent:sessions"

    @staticmethod
    def session(session_id: str) -> str:
        """Generate key for a session record"""
        return f"agent:session:{session_id}"


# =============================================================================
# BASE STORE
# =============================================================================

class SessionStore:
    """
    Base class for session stores.

    Subclasses implement update_session, get_session, delete_session,
    list_sessions and cleanup; the message-level helpers are shared.
    """

    def __init__(
        self,
        ttl_seconds: int = SessionNamespace.TTL_SESSION,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._key_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._key_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[session_id] = lock
        return lock

    # =========================================================================
    # CONNECTION
    # =========================================================================

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    def is_connected(self) -> bool:
        return True

    # =========================================================================
    # RECORD CODEC
    # =========================================================================

    def _decode(self, session_id: str, raw: Optional[str]) -> Optional[Session]:
        """Decode a stored record. Corrupt records count as lost."""
        if raw is None:
            return None
        try:
            return Session.from_dict(json.loads(raw))
        except (json.JSONDecodeError, CorruptStateError) as e:
            logger.error(f"❌ Corrupt session record for {session_id}, treating it as lost: {e}")
            return None

    def _new_session(self, session_id: str) -> Session:
        now = self.clock()
        return Session(
            session_id=session_id,
            created_at=now,
            last_active=now,
            metadata={"message_count": 0},
        )

    def _apply(self, session_id: str, raw: Optional[str], updater: SessionUpdater) -> Session:
        session = self._decode(session_id, raw) or self._new_session(session_id)
        updater(session)
        session.last_active = self.clock()
        session.metadata["message_count"] = len(session.messages)
        return session

    def _is_stale(self, session: Session, max_age_seconds: float) -> bool:
        return self.clock() - session.last_active > timedelta(seconds=max_age_seconds)

    # =========================================================================
    # ABSTRACT OPERATIONS
    # =========================================================================

    async def get_session(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    async def update_session(self, session_id: str, updater: SessionUpdater) -> Session:
        """
        Atomically read, modify and persist a session.

        Creates the session if it does not exist and refreshes last_active.

        Raises:
            DependencyUnavailableError: If the write could not be persisted
        """
        raise NotImplementedError

    async def delete_session(self, session_id: str) -> bool:
        raise NotImplementedError

    async def list_sessions(self) -> List[str]:
        raise NotImplementedError

    async def cleanup(self, max_age_seconds: Optional[float] = None) -> int:
        """
        Delete sessions idle for longer than max_age_seconds.

        Returns:
            Number of sessions reclaimed
        """
        raise NotImplementedError

    # =========================================================================
    # MESSAGE OPERATIONS
    # =========================================================================

    async def add_message(self, session_id: str, message: Message) -> Session:
        """Append a message to a session, creating the session if needed"""
        return await self.update_session(session_id, lambda session: session.append(message))

    async def set_summary(self, session_id: str, summary: str) -> Session:
        """Store a rolling conversation summary in the session metadata"""
        def _update(session: Session):
            session.metadata["conversation_summary"] = summary
        return await self.update_session(session_id, _update)

    async def get_recent_messages(self, session_id: str, limit: int = 10) -> List[Message]:
        """
        Last `limit` messages, oldest first.

        Returns:
            [] for an unknown session or a non-positive limit
        """
        if limit <= 0:
            return []
        session = await self.get_session(session_id)
        if not session:
            return []
        return session.messages[-limit:]


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class InMemorySessionStore(SessionStore):
    """Process-local session store for development and tests"""

    def __init__(
        self,
        ttl_seconds: int = SessionNamespace.TTL_SESSION,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(ttl_seconds, clock)
        self._records: Dict[str, str] = {}
        logger.info("InMemorySessionStore initialized")

    def _read(self, session_id: str) -> Optional[str]:
        raw = self._records.get(session_id)
        if raw is None:
            return None

        session = self._decode(session_id, raw)
        if session and self._is_stale(session, self.ttl_seconds):
            del self._records[session_id]
            logger.debug(f"Session expired: {session_id}")
            return None
        return raw

    async def get_session(self, session_id: str) -> Optional[Session]:
        return self._decode(session_id, self._read(session_id))

    async def update_session(self, session_id: str, updater: SessionUpdater) -> Session:
        async with self._lock_for(session_id):
            session = self._apply(session_id, self._read(session_id), updater)
            self._records[session_id] = json.dumps(session.to_dict())
            return session

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock_for(session_id):
            return self._records.pop(session_id, None) is not None

    async def list_sessions(self) -> List[str]:
        return sorted(sid for sid in list(self._records) if self._read(sid) is not None)

    async def cleanup(self, max_age_seconds: Optional[float] = None) -> int:
        max_age = self.ttl_seconds if max_age_seconds is None else max_age_seconds
        cleaned = 0
        total = len(self._records)

        for session_id in list(self._records):
            async with self._lock_for(session_id):
                raw = self._records.get(session_id)
                session = self._decode(session_id, raw)
                if session is None:
                    self._records.pop(session_id, None)
                elif self._is_stale(session, max_age):
                    del self._records[session_id]
                    cleaned += 1

        logger.info(f"🧹 Session cleanup completed: {cleaned} of {total} sessions removed")
        return cleaned


# =============================================================================
# REDIS STORE
# =============================================================================

class RedisSessionStore(SessionStore):
    """
    Redis-backed session store.

    Features:
    - Sliding TTL refreshed on every write
    - Optimistic WATCH/MULTI transactions for read-modify-write
    - Session index set for cleanup and listing
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        ttl_seconds: int = SessionNamespace.TTL_SESSION,
        max_retries: int = 50,
        client: Optional[aioredis.Redis] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize Redis session store

        Args:
            url: Redis connection URL
            ttl_seconds: Sliding expiration applied on every write
            max_retries: Conflicting transactions retried before giving up
            client: Pre-built async Redis client (tests, shared pools)
            clock: Time source
        """
        super().__init__(ttl_seconds, clock)
        self.url = url
        self.max_retries = max_retries
        self.redis: Optional[aioredis.Redis] = client
        self._connected = False

    async def connect(self):
        """
        Connect and verify the server answers.

        Raises:
            DependencyUnavailableError: If Redis is unreachable
        """
        if self._connected:
            return

        if self.redis is None:
            self.redis = aioredis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )

        try:
            await self.redis.ping()
        except (RedisError, OSError) as e:
            logger.error(f"❌ Failed to connect to Redis at {self.url}: {e}")
            raise DependencyUnavailableError(f"Redis connection failed: {e}") from e

        self._connected = True
        logger.info(f"✅ Redis session store connected: {self.url}")

    async def disconnect(self):
        if self.redis is not None and self._connected:
            await self.redis.aclose()
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    async def get_session(self, session_id: str) -> Optional[Session]:
        try:
            raw = await self.redis.get(SessionNamespace.session(session_id))
        except RedisError as e:
            logger.error(f"❌ Failed to read session {session_id}: {e}")
            raise DependencyUnavailableError(f"Session read failed: {e}") from e
        return self._decode(session_id, raw)

    async def update_session(self, session_id: str, updater: SessionUpdater) -> Session:
        key = SessionNamespace.session(session_id)

        async with self._lock_for(session_id):
            for attempt in range(1, self.max_retries + 1):
                try:
                    async with self.redis.pipeline(transaction=True) as pipe:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        session = self._apply(session_id, raw, updater)

                        pipe.multi()
                        pipe.set(key, json.dumps(session.to_dict()), ex=self.ttl_seconds)
                        pipe.sadd(SessionNamespace.INDEX, session_id)
                        await pipe.execute()
                    return session
                except WatchError:
                    logger.debug(f"Session {session_id} changed during update, retry {attempt}")
                except RedisError as e:
                    logger.error(f"❌ Failed to update session {session_id}: {e}")
                    raise DependencyUnavailableError(f"Session write failed: {e}") from e

        logger.error(f"❌ Gave up updating session {session_id} after {self.max_retries} conflicts")
        raise DependencyUnavailableError(f"Session write conflicted {self.max_retries} times")

    async def delete_session(self, session_id: str) -> bool:
        try:
            async with self._lock_for(session_id):
                async with self.redis.pipeline(transaction=True) as pipe:
                    pipe.delete(SessionNamespace.session(session_id))
                    pipe.srem(SessionNamespace.INDEX, session_id)
                    deleted, _ = await pipe.execute()
        except RedisError as e:
            logger.error(f"❌ Failed to delete session {session_id}: {e}")
            raise DependencyUnavailableError(f"Session delete failed: {e}") from e
        return bool(deleted)

    async def list_sessions(self) -> List[str]:
        try:
            members = await self.redis.smembers(SessionNamespace.INDEX)
        except RedisError as e:
            logger.error(f"❌ Failed to list sessions: {e}")
            raise DependencyUnavailableError(f"Session listing failed: {e}") from e
        return sorted(members)

    async def _delete_if_stale(self, session_id: str, max_age: float) -> Optional[bool]:
        """
        Remove a session if it is still idle at commit time.

        Returns:
            True if a stale session was deleted, False if it is live,
            None if only a dangling index entry was removed
        """
        key = SessionNamespace.session(session_id)
        async with self._lock_for(session_id):
            async with self.redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                session = self._decode(session_id, await pipe.get(key))
                if session is not None and not self._is_stale(session, max_age):
                    return False

                pipe.multi()
                pipe.delete(key)
                pipe.srem(SessionNamespace.INDEX, session_id)
                await pipe.execute()
                return True if session is not None else None

    async def cleanup(self, max_age_seconds: Optional[float] = None) -> int:
        max_age = self.ttl_seconds if max_age_seconds is None else max_age_seconds
        session_ids = await self.list_sessions()
        cleaned = 0

        for session_id in session_ids:
            try:
                if await self._delete_if_stale(session_id, max_age):
                    cleaned += 1
            except WatchError:
                logger.debug(f"Session {session_id} was written during cleanup, keeping it")
            except RedisError as e:
                logger.error(f"❌ Session cleanup failed at {session_id}: {e}")
                raise DependencyUnavailableError(f"Session cleanup failed: {e}") from e

        logger.info(f"🧹 Session cleanup completed: {cleaned} of {len(session_ids)} sessions removed")
        return cleaned


# =============================================================================
# FACTORY
# =============================================================================

async def create_session_store(settings: AgentSettings) -> SessionStore:
    """
    Build and connect the configured session store.

    Raises:
        DependencyUnavailableError: If the backend cannot be reached
        ValueError: If SESSION_BACKEND names an unknown backend
    """
    if settings.session_backend == "memory":
        store = InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
    elif settings.session_backend == "redis":
        logger.info(f"Connecting to Redis session store at {settings.redis_url}...")
        store = RedisSessionStore(
            url=settings.redis_url,
            ttl_seconds=settings.session_ttl_seconds,
            max_retries=settings.session_max_retries,
        )
    else:
        raise ValueError(f"Unknown session backend: {settings.session_backend}")

    await store.connect()
    return store
