"""
Debounced, validated, retried autosave for the form editor

The coordinator is owned by one editor session and runs on a single asyncio
event loop. Local data changes immediately on update(); persistence happens
after `debounce_ms` of inactivity, and a newer update replaces the pending
timer so bursts collapse into one save carrying the latest data. Saves are
serialized: at most one is in flight at any time.

    coordinator = AutosaveCoordinator(data, save=client.save, validate=validate_booking_flow)
    coordinator.update(new_data)
    await coordinator.save_now()
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..config import (
    AUTOSAVE_DEBOUNCE_MS,
    AUTOSAVE_MAX_RETRIES,
    AUTOSAVE_MAX_RETRY_DELAY_MS,
    AUTOSAVE_RETRY_DELAY_MS,
)

logger = logging.getLogger(__name__)


class SaveStatus(str, Enum):
    IDLE = "idle"
    PENDING_SAVE = "pending_save"
    SAVING = "saving"
    ERROR = "error"


@dataclass
class AutosaveOptions:
    debounce_ms: int = AUTOSAVE_DEBOUNCE_MS
    max_retries: int = AUTOSAVE_MAX_RETRIES  # total attempts per save cycle
    retry_delay_ms: int = AUTOSAVE_RETRY_DELAY_MS
    max_retry_delay_ms: int = AUTOSAVE_MAX_RETRY_DELAY_MS
    enabled: bool = True

    def backoff_seconds(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (1-based): doubles each time, capped"""
        delay_ms = self.retry_delay_ms * (2 ** (attempt - 1))
        return min(delay_ms, self.max_retry_delay_ms) / 1000


@dataclass(frozen=True)
class AutosaveState:
    status: SaveStatus = SaveStatus.IDLE
    is_dirty: bool = False
    last_saved: Optional[datetime] = None
    errors: tuple = field(default_factory=tuple)
    retry_count: int = 0

    @property
    def is_saving(self) -> bool:
        return self.status == SaveStatus.SAVING

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "isSaving": self.is_saving,
            "isDirty": self.is_dirty,
            "lastSaved": self.last_saved.isoformat() if self.last_saved else None,
            "errors": list(self.errors),
            "retryCount": self.retry_count,
        }


def default_fingerprint(data: Any) -> str:
    """Content hash of the document, ignoring its id"""
    if hasattr(data, "model_dump"):
        payload = data.model_dump(mode="json", exclude_none=True)
    else:
        payload = data
    if isinstance(payload, dict):
        payload = {key: value for key, value in payload.items() if key != "id"}
    serialized = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()


def _validation_messages(result: Any) -> list[str]:
    """Accepts a ValidationResult or a {"isValid": ..., "errors": [...]} mapping"""
    if isinstance(result, dict):
        if result.get("isValid", True):
            return []
        messages = [
            str(error.get("message", error)) if isinstance(error, dict) else str(error)
            for error in result.get("errors", [])
        ]
        return messages or ["Validation failed"]
    if getattr(result, "is_valid", True):
        return []
    return list(getattr(result, "messages", [])) or ["Validation failed"]


class AutosaveCoordinator:
    def __init__(
        self,
        initial_data: Any,
        save: Callable[[Any], Awaitable[Any]],
        validate: Optional[Callable[[Any], Any]] = None,
        options: Optional[AutosaveOptions] = None,
        on_change: Optional[Callable[[AutosaveState], None]] = None,
        fingerprint: Callable[[Any], str] = default_fingerprint,
    ):
        self._data = initial_data
        self._save = save
        self._validate = validate
        self.options = options or AutosaveOptions()
        self._on_change = on_change
        self._fingerprint = fingerprint

        self._saved_fingerprint: Optional[str] = fingerprint(initial_data)
        self._status = SaveStatus.IDLE
        self._last_saved: Optional[datetime] = None
        self._errors: list[str] = []
        self._retry_count = 0

        self._timer: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._closed = False

    # ------------------------------------------------------------------ state

    @property
    def data(self) -> Any:
        return self._data

    @property
    def is_dirty(self) -> bool:
        return self._fingerprint(self._data) != self._saved_fingerprint

    @property
    def state(self) -> AutosaveState:
        return AutosaveState(
            status=self._status,
            is_dirty=self.is_dirty,
            last_saved=self._last_saved,
            errors=tuple(self._errors),
            retry_count=self._retry_count,
        )

    def _set_status(self, status: SaveStatus):
        self._status = status
        self._notify()

    def _notify(self):
        if self._on_change is not None:
            self._on_change(self.state)

    # ---------------------------------------------------------------- editing

    def update(self, data: Any):
        """Replace local data and schedule a debounced save if it differs from the saved copy"""
        self._data = data
        if self._closed:
            return

        if not self.is_dirty:
            # Edited back to the saved content; nothing left to persist
            self._cancel_timer()
            if self._status == SaveStatus.PENDING_SAVE:
                self._status = SaveStatus.IDLE
            self._notify()
            return

        if not self.options.enabled:
            self._notify()
            return

        self._schedule()

    def _schedule(self):
        self._cancel_timer()
        task = asyncio.get_running_loop().create_task(self._debounced_save())
        self._timer = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        if self._status != SaveStatus.SAVING:
            self._set_status(SaveStatus.PENDING_SAVE)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _debounced_save(self):
        await asyncio.sleep(self.options.debounce_ms / 1000)
        # Past the debounce point this task is a save, not a timer; newer edits must not cancel it
        if self._timer is asyncio.current_task():
            self._timer = None
        await self._persist()

    # ----------------------------------------------------------------- saving

    async def save_now(self) -> bool:
        """
        Skip the debounce and persist immediately; returns True when the data is saved

        A manual save is attempted once. A failure is reported in the state
        instead of being retried, so the caller decides whether to try again.
        """
        self._cancel_timer()
        if not self.options.enabled or self._closed:
            return False
        return await self._persist(retry=False)

    async def _persist(self, retry: bool = True) -> bool:
        max_attempts = self.options.max_retries if retry else 1
        async with self._lock:
            attempt = 0
            while True:
                data = self._data
                snapshot = self._fingerprint(data)
                if snapshot == self._saved_fingerprint:
                    if self._status != SaveStatus.ERROR:
                        self._set_status(SaveStatus.PENDING_SAVE if self._timer else SaveStatus.IDLE)
                    return True

                if self._validate is not None:
                    messages = self._run_validation(data)
                    if messages:
                        logger.warning(f"⚠️ Autosave blocked by validation: {messages[0]}")
                        self._errors = messages
                        self._set_status(SaveStatus.ERROR)
                        return False

                attempt += 1
                self._set_status(SaveStatus.SAVING)
                try:
                    await self._save(data)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._retry_count = attempt
                    if attempt >= max_attempts:
                        logger.error(f"❌ Autosave failed after {attempt} attempt(s): {e}")
                        self._errors = [f"Failed to save changes: {e}"]
                        self._set_status(SaveStatus.ERROR)
                        return False
                    delay = self.options.backoff_seconds(attempt)
                    logger.warning(f"⚠️ Autosave attempt {attempt} failed ({e}), retrying in {delay:.2f}s")
                    self._notify()
                    await asyncio.sleep(delay)
                    continue

                self._saved_fingerprint = snapshot
                self._last_saved = datetime.now(timezone.utc)
                self._errors = []
                self._retry_count = 0
                logger.info(f"✅ Autosave completed after {attempt} attempt(s)")
                self._set_status(SaveStatus.PENDING_SAVE if self._timer else SaveStatus.IDLE)
                return True

    def _run_validation(self, data: Any) -> list[str]:
        try:
            return _validation_messages(self._validate(data))
        except Exception as e:
            logger.error(f"❌ Validation raised: {e}")
            return [f"Validation error: {e}"]

    # --------------------------------------------------------------- controls

    def reset_errors(self):
        self._errors = []
        self._retry_count = 0
        if self._status == SaveStatus.ERROR:
            self._status = SaveStatus.PENDING_SAVE if self._timer else SaveStatus.IDLE
        self._notify()

    def mark_clean(self):
        """Treat the current local data as saved (e.g. after an external save)"""
        self._cancel_timer()
        self._saved_fingerprint = self._fingerprint(self._data)
        if self._status in (SaveStatus.PENDING_SAVE, SaveStatus.ERROR):
            self._status = SaveStatus.IDLE
        self._errors = []
        self._notify()

    def mark_dirty(self):
        """Force the next save to persist even if the content hash matches"""
        self._saved_fingerprint = None
        self._notify()

    async def wait_idle(self):
        """Wait until no timer is pending and no save is running"""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def close(self, flush: bool = False):
        """Stop autosaving; optionally persist outstanding edits first"""
        if flush and self.options.enabled and not self._closed:
            await self.save_now()
        self._closed = True
        self._cancel_timer()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.wait(set(self._tasks))
