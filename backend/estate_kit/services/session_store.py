"""
Session storage backends.

Both backends keep one record per session and a per-user index ordered by
creation. Creating a session and trimming the user's index down to the cap
happen as one atomic step per user, so concurrent logins cannot leave a user
above the configured maximum.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import redis.asyncio as redis

from estate_kit.schemas.session import SessionRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore(ABC):
    """Storage contract used by the session manager"""

    @abstractmethod
    async def create(self, record: SessionRecord, ttl: int, max_sessions: int) -> List[str]:
        """Persist a new session and return the ids evicted to respect the cap"""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    async def touch(self, record: SessionRecord, ttl: int) -> None:
        """Overwrite an existing record and restart its TTL"""

    @abstractmethod
    async def delete(self, session_id: str) -> Optional[SessionRecord]:
        """Remove a session and its index entry; returns the removed record if any"""

    @abstractmethod
    async def count_user_sessions(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def list_user_sessions(self, user_id: str) -> List[SessionRecord]:
        """Live sessions of a user, oldest first"""

    @abstractmethod
    async def purge_expired(self, cutoff: datetime) -> List[str]:
        """Remove sessions last accessed before ``cutoff`` and any dangling index entries"""

    async def close(self) -> None:
        return None


# Prune dangling index members, store the record, index it, then pop the
# oldest entries while the index is above the cap. The index and its
# sequence counter expire together with the newest session.
CREATE_AND_TRIM_SCRIPT = """
local members = redis.call('ZRANGE', KEYS[2], 0, -1)
for _, member in ipairs(members) do
  if redis.call('EXISTS', ARGV[5] .. member) == 0 then
    redis.call('ZREM', KEYS[2], member)
  end
end
local seq = redis.call('INCR', KEYS[3])
redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
redis.call('ZADD', KEYS[2], seq, ARGV[1])
redis.call('EXPIRE', KEYS[2], tonumber(ARGV[3]))
redis.call('EXPIRE', KEYS[3], tonumber(ARGV[3]))
local evicted = {}
local cap = tonumber(ARGV[4])
while redis.call('ZCARD', KEYS[2]) > cap do
  local popped = redis.call('ZPOPMIN', KEYS[2])
  redis.call('DEL', ARGV[5] .. popped[1])
  table.insert(evicted, popped[1])
end
return evicted
"""


class RedisSessionStore(SessionStore):
    """
    Redis layout:
        session:{id}            JSON record with TTL
        user-sessions:{user}    sorted set of session ids scored by creation sequence
        user-sessions-seq:{user} monotonic counter feeding the scores
    """

    SESSION_PREFIX = "session:"
    INDEX_PREFIX = "user-sessions:"
    SEQUENCE_PREFIX = "user-sessions-seq:"

    def __init__(self, client: redis.Redis):
        self.client = client
        self._create_and_trim = client.register_script(CREATE_AND_TRIM_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionStore":
        return cls(redis.from_url(url, decode_responses=True))

    def _session_key(self, session_id: str) -> str:
        return f"{self.SESSION_PREFIX}{session_id}"

    def _index_key(self, user_id: str) -> str:
        return f"{self.INDEX_PREFIX}{user_id}"

    def _sequence_key(self, user_id: str) -> str:
        return f"{self.SEQUENCE_PREFIX}{user_id}"

    @staticmethod
    def _decode(raw) -> Optional[SessionRecord]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return SessionRecord.model_validate_json(raw)

    async def create(self, record: SessionRecord, ttl: int, max_sessions: int) -> List[str]:
        evicted = await self._create_and_trim(
            keys=[
                self._session_key(record.session_id),
                self._index_key(record.user_id),
                self._sequence_key(record.user_id),
            ],
            args=[record.session_id, record.model_dump_json(), ttl, max_sessions, self.SESSION_PREFIX],
        )
        return [e.decode("utf-8") if isinstance(e, bytes) else e for e in (evicted or [])]

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._decode(await self.client.get(self._session_key(session_id)))

    async def touch(self, record: SessionRecord, ttl: int) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(self._session_key(record.session_id), record.model_dump_json(), ex=ttl, xx=True)
            pipe.expire(self._index_key(record.user_id), ttl)
            pipe.expire(self._sequence_key(record.user_id), ttl)
            await pipe.execute()

    async def delete(self, session_id: str) -> Optional[SessionRecord]:
        record = await self.get(session_id)
        if record is None:
            return None
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(self._session_key(session_id))
            pipe.zrem(self._index_key(record.user_id), session_id)
            await pipe.execute()
        return record

    async def _live_members(self, user_id: str) -> List[str]:
        """Index members whose record still exists; dangling ones are removed"""
        index_key = self._index_key(user_id)
        members = await self.client.zrange(index_key, 0, -1)
        if not members:
            return []
        members = [m.decode("utf-8") if isinstance(m, bytes) else m for m in members]
        async with self.client.pipeline(transaction=False) as pipe:
            for member in members:
                pipe.exists(self._session_key(member))
            exists = await pipe.execute()

        dangling = [m for m, present in zip(members, exists) if not present]
        if dangling:
            await self.client.zrem(index_key, *dangling)
        return [m for m, present in zip(members, exists) if present]

    async def count_user_sessions(self, user_id: str) -> int:
        return len(await self._live_members(user_id))

    async def list_user_sessions(self, user_id: str) -> List[SessionRecord]:
        members = await self._live_members(user_id)
        if not members:
            return []
        raw_records = await self.client.mget([self._session_key(m) for m in members])
        return [r for r in (self._decode(raw) for raw in raw_records) if r is not None]

    async def purge_expired(self, cutoff: datetime) -> List[str]:
        removed: List[str] = []
        async for index_key in self.client.scan_iter(match=f"{self.INDEX_PREFIX}*"):
            if isinstance(index_key, bytes):
                index_key = index_key.decode("utf-8")
            members = await self.client.zrange(index_key, 0, -1)
            for member in members:
                if isinstance(member, bytes):
                    member = member.decode("utf-8")
                record = await self.get(member)
                if record is not None and record.last_accessed_at >= cutoff:
                    continue
                # ZREM of a single member leaves concurrent additions untouched
                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.delete(self._session_key(member))
                    pipe.zrem(index_key, member)
                    await pipe.execute()
                removed.append(member)
        if removed:
            logger.info(f"Purged {len(removed)} expired sessions")
        return removed

    async def close(self) -> None:
        await self.client.aclose()


class InMemorySessionStore(SessionStore):
    """
    Process-local store for development and tests. Index mutations for a
    user run under that user's asyncio.Lock.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or _utcnow
        self._records: Dict[str, SessionRecord] = {}
        self._deadlines: Dict[str, datetime] = {}
        self._index: Dict[str, List[str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def _is_live(self, session_id: str) -> bool:
        deadline = self._deadlines.get(session_id)
        return deadline is not None and self.clock() < deadline

    def _drop(self, session_id: str) -> Optional[SessionRecord]:
        record = self._records.pop(session_id, None)
        self._deadlines.pop(session_id, None)
        if record is not None:
            members = self._index.get(record.user_id, [])
            if session_id in members:
                members.remove(session_id)
        return record

    def _prune(self, user_id: str) -> List[str]:
        members = self._index.setdefault(user_id, [])
        for session_id in [m for m in members if not self._is_live(m)]:
            self._drop(session_id)
            if session_id in members:
                members.remove(session_id)
        return members

    async def create(self, record: SessionRecord, ttl: int, max_sessions: int) -> List[str]:
        async with self._lock(record.user_id):
            members = self._prune(record.user_id)
            self._records[record.session_id] = record
            self._deadlines[record.session_id] = self.clock() + timedelta(seconds=ttl)
            members.append(record.session_id)

            evicted = []
            while len(members) > max_sessions:
                oldest = members[0]
                self._drop(oldest)
                if members and members[0] == oldest:
                    members.pop(0)
                evicted.append(oldest)
            return evicted

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        if not self._is_live(session_id):
            return None
        return self._records.get(session_id)

    async def touch(self, record: SessionRecord, ttl: int) -> None:
        async with self._lock(record.user_id):
            if record.session_id not in self._records:
                return
            self._records[record.session_id] = record
            self._deadlines[record.session_id] = self.clock() + timedelta(seconds=ttl)

    async def delete(self, session_id: str) -> Optional[SessionRecord]:
        record = self._records.get(session_id)
        if record is None:
            return None
        async with self._lock(record.user_id):
            return self._drop(session_id)

    async def count_user_sessions(self, user_id: str) -> int:
        async with self._lock(user_id):
            return len(self._prune(user_id))

    async def list_user_sessions(self, user_id: str) -> List[SessionRecord]:
        async with self._lock(user_id):
            return [self._records[m] for m in self._prune(user_id)]

    async def purge_expired(self, cutoff: datetime) -> List[str]:
        removed = []
        for user_id in list(self._index):
            async with self._lock(user_id):
                for session_id in list(self._index.get(user_id, [])):
                    record = self._records.get(session_id)
                    if record is None or not self._is_live(session_id) or record.last_accessed_at < cutoff:
                        self._drop(session_id)
                        if session_id in self._index.get(user_id, []):
                            self._index[user_id].remove(session_id)
                        removed.append(session_id)
        return removed
