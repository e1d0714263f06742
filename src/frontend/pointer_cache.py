"""Small on-disk cache of resume hints (last profile, active session pointer).

The session store stays authoritative; everything read from here is checked
against it before use.
"""
import logging
import os
from pathlib import Path

import orjson
from pydantic import ValidationError

from backend.questionnaire.models import CachedPointers, SessionPointer, UserProfile

logger = logging.getLogger(__name__)

DEFAULT_PATH = Path(".nepra_agent") / "pointers.json"


class PointerCache:
    def __init__(self, path: Path | str | None = None):
        self.path = Path(path or os.getenv("POINTER_CACHE_PATH", str(DEFAULT_PATH)))

    def load(self) -> CachedPointers:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return CachedPointers()
        except OSError as exc:
            logger.warning("Could not read pointer cache %s: %s", self.path, exc)
            return CachedPointers()
        try:
            return CachedPointers.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as exc:
            logger.warning("Ignoring corrupt pointer cache %s: %s", self.path, exc)
            return CachedPointers()

    def _write(self, pointers: CachedPointers) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(orjson.dumps(pointers.model_dump(mode="json"), option=orjson.OPT_INDENT_2))
            tmp.replace(self.path)
        except OSError as exc:
            logger.warning("Could not write pointer cache %s: %s", self.path, exc)

    def load_profile(self) -> UserProfile | None:
        return self.load().last_profile

    def save_profile(self, profile: UserProfile) -> None:
        pointers = self.load()
        pointers.last_profile = profile
        self._write(pointers)

    def load_active(self) -> SessionPointer | None:
        return self.load().active

    def save_active(self, pointer: SessionPointer) -> None:
        pointers = self.load()
        pointers.active = pointer
        self._write(pointers)

    def clear_active(self) -> None:
        pointers = self.load()
        if pointers.active is None:
            return
        pointers.active = None
        self._write(pointers)
