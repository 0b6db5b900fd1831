"""Tests for the autosave coordinator."""

import asyncio

from booking_app.domain.forms.schemas import create_default_form_data
from booking_app.domain.forms.validation import validate_booking_flow
from booking_app.editor.autosave import AutosaveCoordinator, AutosaveOptions, SaveStatus

FAST = AutosaveOptions(debounce_ms=20, max_retries=3, retry_delay_ms=1, max_retry_delay_ms=5)


class RecordingSaver:
    """Save callable that records payloads and can fail a number of times first"""

    def __init__(self, failures: int = 0, delay: float = 0):
        self.failures = failures
        self.delay = delay
        self.calls: list = []
        self.saved: list = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, data):
        self.calls.append(data)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.failures > 0:
                self.failures -= 1
                raise RuntimeError("server unavailable")
            self.saved.append(data)
        finally:
            self.in_flight -= 1


class TestAutosaveOptions:
    def test_backoff_doubles_and_caps(self):
        options = AutosaveOptions(retry_delay_ms=1000, max_retry_delay_ms=10000)
        assert [options.backoff_seconds(n) for n in range(1, 6)] == [1, 2, 4, 8, 10]


class TestAutosaveCoordinator:
    async def test_burst_of_edits_is_one_save_with_latest_data(self):
        saver = RecordingSaver()
        coordinator = AutosaveCoordinator({"name": "v0"}, save=saver, options=FAST)

        for version in range(1, 6):
            coordinator.update({"name": f"v{version}"})
            await asyncio.sleep(0)
        assert coordinator.state.status == SaveStatus.PENDING_SAVE
        assert coordinator.state.is_dirty

        await coordinator.wait_idle()

        assert saver.saved == [{"name": "v5"}]
        state = coordinator.state
        assert state.status == SaveStatus.IDLE
        assert not state.is_dirty
        assert state.last_saved is not None

    async def test_no_save_when_content_unchanged(self):
        saver = RecordingSaver()
        coordinator = AutosaveCoordinator({"name": "same"}, save=saver, options=FAST)

        coordinator.update({"name": "same"})
        await coordinator.wait_idle()

        assert saver.calls == []
        assert coordinator.state.status == SaveStatus.IDLE

    async def test_reverting_edit_cancels_pending_save(self):
        saver = RecordingSaver()
        coordinator = AutosaveCoordinator({"name": "original"}, save=saver, options=FAST)

        coordinator.update({"name": "changed"})
        coordinator.update({"name": "original"})
        await coordinator.wait_idle()

        assert saver.calls == []
        assert not coordinator.is_dirty

    async def test_validation_failure_blocks_save(self):
        saver = RecordingSaver()
        initial = create_default_form_data("f1", "Valid", "valid")
        coordinator = AutosaveCoordinator(initial, save=saver, validate=validate_booking_flow, options=FAST)

        invalid = initial.model_copy(update={"internalName": ""})
        coordinator.update(invalid)
        await coordinator.wait_idle()

        assert saver.calls == []
        state = coordinator.state
        assert state.status == SaveStatus.ERROR
        assert state.errors == ("Form name is required",)
        assert state.is_dirty
        # Local edits are kept even though they were not persisted
        assert coordinator.data is invalid

    async def test_transient_failures_are_retried(self):
        saver = RecordingSaver(failures=2)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=FAST)

        coordinator.update({"n": 1})
        await coordinator.wait_idle()

        assert len(saver.calls) == 3
        assert saver.saved == [{"n": 1}]
        state = coordinator.state
        assert state.status == SaveStatus.IDLE
        assert state.retry_count == 0
        assert state.errors == ()

    async def test_gives_up_after_max_retries(self):
        saver = RecordingSaver(failures=10)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=FAST)

        coordinator.update({"n": 1})
        await coordinator.wait_idle()

        assert len(saver.calls) == FAST.max_retries
        state = coordinator.state
        assert state.status == SaveStatus.ERROR
        assert state.retry_count == FAST.max_retries
        assert state.errors == ("Failed to save changes: server unavailable",)
        assert state.is_dirty
        assert coordinator.data == {"n": 1}

    async def test_save_now_skips_debounce(self):
        saver = RecordingSaver()
        options = AutosaveOptions(debounce_ms=60_000, max_retries=1, retry_delay_ms=1, max_retry_delay_ms=1)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=options)

        coordinator.update({"n": 1})
        assert await coordinator.save_now() is True

        assert saver.saved == [{"n": 1}]
        assert coordinator.state.status == SaveStatus.IDLE
        await coordinator.close()

    async def test_save_now_is_not_retried(self):
        saver = RecordingSaver(failures=1)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=FAST)
        coordinator.update({"n": 1})

        assert await coordinator.save_now() is False

        assert len(saver.calls) == 1
        state = coordinator.state
        assert state.status == SaveStatus.ERROR
        assert state.errors == ("Failed to save changes: server unavailable",)
        assert await coordinator.save_now() is True
        assert saver.saved == [{"n": 1}]

    async def test_edit_during_save_is_saved_afterwards(self):
        saver = RecordingSaver(delay=0.05)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=FAST)

        coordinator.update({"n": 1})
        await asyncio.sleep(0.04)  # debounce elapsed, first save in flight
        assert coordinator.state.is_saving
        coordinator.update({"n": 2})
        await coordinator.wait_idle()

        assert saver.saved == [{"n": 1}, {"n": 2}]
        assert saver.max_in_flight == 1
        assert not coordinator.is_dirty

    async def test_reset_errors_and_mark_dirty(self):
        saver = RecordingSaver(failures=3)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=FAST)
        coordinator.update({"n": 1})
        await coordinator.wait_idle()
        assert coordinator.state.status == SaveStatus.ERROR

        coordinator.reset_errors()
        assert coordinator.state.status == SaveStatus.IDLE
        assert coordinator.state.errors == ()

        assert await coordinator.save_now() is True
        assert saver.saved == [{"n": 1}]

        coordinator.mark_dirty()
        assert coordinator.is_dirty
        assert await coordinator.save_now() is True
        assert saver.saved == [{"n": 1}, {"n": 1}]

    async def test_mark_clean_drops_pending_save(self):
        saver = RecordingSaver()
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=FAST)
        coordinator.update({"n": 1})
        assert coordinator.is_dirty

        coordinator.mark_clean()
        await coordinator.wait_idle()

        assert saver.calls == []
        assert coordinator.state.status == SaveStatus.IDLE
        assert not coordinator.is_dirty

    async def test_close_with_flush_persists_pending_edit(self):
        saver = RecordingSaver()
        options = AutosaveOptions(debounce_ms=60_000, max_retries=1, retry_delay_ms=1, max_retry_delay_ms=1)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=options)

        coordinator.update({"n": 7})
        await coordinator.close(flush=True)

        assert saver.saved == [{"n": 7}]
        coordinator.update({"n": 8})
        assert saver.calls == [{"n": 7}]

    async def test_on_change_receives_state_snapshots(self):
        seen = []
        coordinator = AutosaveCoordinator(
            {"n": 0}, save=RecordingSaver(), options=FAST, on_change=lambda s: seen.append(s.status)
        )
        coordinator.update({"n": 1})
        await coordinator.wait_idle()

        assert seen[0] == SaveStatus.PENDING_SAVE
        assert SaveStatus.SAVING in seen
        assert seen[-1] == SaveStatus.IDLE

    async def test_disabled_coordinator_never_saves(self):
        saver = RecordingSaver()
        options = AutosaveOptions(debounce_ms=1, enabled=False)
        coordinator = AutosaveCoordinator({"n": 0}, save=saver, options=options)

        coordinator.update({"n": 1})
        await asyncio.sleep(0.01)

        assert saver.calls == []
        assert coordinator.is_dirty
        assert await coordinator.save_now() is False
