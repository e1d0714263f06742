"""Session document store.

A session is one document plus an ordered sub-collection of responses keyed by
question id. Both writes are upserts, so replaying a save is harmless.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional, Protocol

import orjson
import redis
from redis import Redis
from redis.exceptions import RedisError

from .config import Settings
from .errors import InputRejected, SessionNotFound, StoreError
from .models import ComplianceSession, ResponseData, SessionUpdate, utcnow

logger = logging.getLogger(__name__)

SESSION_TIME_FIELDS = ("start_time", "last_saved_time", "completed_time")


class SessionStore(Protocol):
    backend: str

    def create_session(self, session: ComplianceSession) -> str: ...

    def update_session(self, session_id: str, fields: SessionUpdate | dict) -> None: ...

    def get_session(self, session_id: str) -> Optional[ComplianceSession]: ...

    def add_response(self, session_id: str, response: ResponseData) -> str: ...

    def ping(self) -> bool: ...


def _changes(fields: SessionUpdate | dict) -> dict:
    if isinstance(fields, dict):
        fields = SessionUpdate.model_validate(fields)
    return fields.model_dump(exclude_unset=True)


def _require_id(session_id: str) -> None:
    if not session_id:
        raise StoreError("Session ID is required.")


def _require_known_question(doc: dict, session_id: str, question_id: str) -> None:
    ids = {q["id"] for q in doc.get("questions") or []}
    if ids and question_id not in ids:
        raise InputRejected(f"Question {question_id} does not belong to session {session_id}.")


class InMemorySessionStore:
    backend = "memory"

    def __init__(self):
        self._docs: dict[str, dict] = {}
        self._responses: dict[str, dict[str, ResponseData]] = {}
        self._lock = threading.RLock()

    def create_session(self, session: ComplianceSession) -> str:
        _require_id(session.session_id)
        doc = session.model_dump(exclude={"responses"})
        doc["last_saved_time"] = doc["last_saved_time"] or utcnow()
        with self._lock:
            self._docs[session.session_id] = doc
            self._responses[session.session_id] = {
                qid: r.model_copy() for qid, r in session.responses.items()
            }
        return session.session_id

    def update_session(self, session_id: str, fields: SessionUpdate | dict) -> None:
        changes = _changes(fields)
        with self._lock:
            doc = self._docs.get(session_id)
            if doc is None:
                raise SessionNotFound(f"Session {session_id} does not exist.")
            doc.update(changes)
            doc["last_saved_time"] = utcnow()

    def get_session(self, session_id: str) -> Optional[ComplianceSession]:
        if not session_id:
            return None
        with self._lock:
            doc = self._docs.get(session_id)
            if doc is None:
                return None
            responses = {qid: r.model_copy() for qid, r in self._responses[session_id].items()}
        return ComplianceSession.model_validate({**doc, "responses": responses})

    def add_response(self, session_id: str, response: ResponseData) -> str:
        with self._lock:
            if session_id not in self._docs:
                raise SessionNotFound(f"Session {session_id} does not exist.")
            _require_known_question(self._docs[session_id], session_id, response.question_id)
            # Re-assigning an existing key keeps its original position
            self._responses[session_id][response.question_id] = response.model_copy()
            self._docs[session_id]["last_saved_time"] = utcnow()
        return response.question_id

    def ping(self) -> bool:
        return True


def _to_epoch(value):
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value.timestamp()


def _from_epoch(value):
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


class RedisSessionStore:
    """Sessions as JSON documents; responses in a hash ordered by a sorted set."""

    backend = "redis"

    def __init__(self, url: str | None = None, client: Redis | None = None, prefix: str = "session"):
        if client is None and not url:
            raise StoreError("A Redis URL or client is required.")
        self._client = client or redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def _doc_key(self, session_id: str) -> str:
        return f"{self._prefix}:{session_id}"

    def _responses_key(self, session_id: str) -> str:
        return f"{self._prefix}:{session_id}:responses"

    def _order_key(self, session_id: str) -> str:
        return f"{self._prefix}:{session_id}:responses:order"

    def _write_doc(self, session_id: str, doc: dict) -> None:
        doc = dict(doc)
        for name in SESSION_TIME_FIELDS:
            doc[name] = _to_epoch(doc.get(name))
        self._client.set(self._doc_key(session_id), orjson.dumps(doc))

    def _read_doc(self, session_id: str) -> Optional[dict]:
        raw = self._client.get(self._doc_key(session_id))
        if raw is None:
            return None
        doc = orjson.loads(raw)
        for name in SESSION_TIME_FIELDS:
            doc[name] = _from_epoch(doc.get(name))
        return doc

    def _write_response(self, session_id: str, response: ResponseData) -> None:
        record = response.model_dump(mode="json")
        record["timestamp"] = _to_epoch(response.timestamp)
        self._client.hset(self._responses_key(session_id), response.question_id, orjson.dumps(record))
        # nx keeps the first-save position for overwritten answers
        self._client.zadd(self._order_key(session_id), {response.question_id: time.time()}, nx=True)

    def create_session(self, session: ComplianceSession) -> str:
        _require_id(session.session_id)
        doc = session.model_dump(mode="json", exclude={"responses"})
        doc["last_saved_time"] = doc["last_saved_time"] or utcnow()
        try:
            self._write_doc(session.session_id, doc)
            for response in session.responses.values():
                self._write_response(session.session_id, response)
        except RedisError as exc:
            logger.warning("Redis create failed for %s: %s", session.session_id, exc)
            raise StoreError(f"Could not create session {session.session_id}: {exc}") from exc
        return session.session_id

    def update_session(self, session_id: str, fields: SessionUpdate | dict) -> None:
        changes = SessionUpdate.model_validate(_changes(fields)).model_dump(mode="json", exclude_unset=True)
        try:
            doc = self._read_doc(session_id)
            if doc is None:
                raise SessionNotFound(f"Session {session_id} does not exist.")
            doc.update(changes)
            doc["last_saved_time"] = utcnow()
            self._write_doc(session_id, doc)
        except RedisError as exc:
            logger.warning("Redis update failed for %s: %s", session_id, exc)
            raise StoreError(f"Could not update session {session_id}: {exc}") from exc

    def get_session(self, session_id: str) -> Optional[ComplianceSession]:
        if not session_id:
            return None
        try:
            doc = self._read_doc(session_id)
            if doc is None:
                return None
            order = self._client.zrange(self._order_key(session_id), 0, -1)
            raw_responses = self._client.hmget(self._responses_key(session_id), order) if order else []
        except RedisError as exc:
            logger.warning("Redis read failed for %s: %s", session_id, exc)
            raise StoreError(f"Could not load session {session_id}: {exc}") from exc

        responses = {}
        for raw in raw_responses:
            if raw is None:
                continue
            record = orjson.loads(raw)
            record["timestamp"] = _from_epoch(record.get("timestamp"))
            response = ResponseData.model_validate(record)
            responses[response.question_id] = response
        return ComplianceSession.model_validate({**doc, "responses": responses})

    def add_response(self, session_id: str, response: ResponseData) -> str:
        try:
            doc = self._read_doc(session_id)
            if doc is None:
                raise SessionNotFound(f"Session {session_id} does not exist.")
            _require_known_question(doc, session_id, response.question_id)
            self._write_response(session_id, response)
        except RedisError as exc:
            logger.warning("Redis response save failed for %s/%s: %s", session_id, response.question_id, exc)
            raise StoreError(f"Could not save response {response.question_id}: {exc}") from exc
        self.update_session(session_id, {})
        return response.question_id

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False


def build_store(settings: Settings) -> SessionStore:
    if settings.session_store == "redis":
        logger.info("Using Redis session store at %s", settings.redis_url)
        return RedisSessionStore(settings.redis_url)
    logger.info("Using in-memory session store")
    return InMemorySessionStore()
