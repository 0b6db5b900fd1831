"""
Form editor session: editor state reducer + autosave, bound to one form

    async with FormsApiClient(api_url, token, org_id) as client:
        session = FormEditorSession(client, form_id)
        await session.load()
        session.dispatch({"type": "ADD_NODE", "parentId": "root", "node": {...}})
        await session.close(flush=True)
"""

import logging
from typing import Optional

from ..domain.forms.reducer import (
    FormDataUpdated,
    FormEditorState,
    FormLoaded,
    FormLoadError,
    ResetToLoading,
    parse_action,
    reduce_editor_state,
)
from ..domain.forms.schemas import BookingFlowData
from ..domain.forms.validation import validate_booking_flow
from .autosave import AutosaveCoordinator, AutosaveOptions, AutosaveState
from .client import FormsApiClient

logger = logging.getLogger(__name__)


class FormEditorSession:
    def __init__(self, client: FormsApiClient, form_id: str, options: Optional[AutosaveOptions] = None):
        self.client = client
        self.form_id = form_id
        self.options = options or AutosaveOptions()
        self.state = FormEditorState()
        self.autosave: Optional[AutosaveCoordinator] = None

    @property
    def data(self) -> Optional[BookingFlowData]:
        return self.state.data

    @property
    def save_state(self) -> Optional[AutosaveState]:
        return self.autosave.state if self.autosave else None

    async def load(self) -> FormEditorState:
        """Fetch the form and start autosaving from the loaded document"""
        if self.autosave is not None:
            await self.autosave.close()
            self.autosave = None
        self.state = reduce_editor_state(self.state, ResetToLoading())

        try:
            data = await self.client.get_booking_flow(self.form_id)
        except Exception as e:
            logger.error(f"❌ Failed to load form {self.form_id}: {e}")
            self.state = reduce_editor_state(self.state, FormLoadError(error=str(e)))
            return self.state

        self.state = reduce_editor_state(self.state, FormLoaded(data=data))
        self.autosave = AutosaveCoordinator(
            data,
            save=self._save,
            validate=validate_booking_flow,
            options=self.options,
        )
        logger.info(f"📝 Editor session ready for form {self.form_id}")
        return self.state

    def dispatch(self, action) -> FormEditorState:
        """Apply a data action; the autosave coordinator picks up any change"""
        if isinstance(action, dict):
            action = parse_action(action)
        previous = self.state.data
        self.state = reduce_editor_state(self.state, FormDataUpdated(action=action))
        if self.autosave is not None and self.state.data is not previous:
            self.autosave.update(self.state.data)
        return self.state

    async def _save(self, data: BookingFlowData) -> BookingFlowData:
        return await self.client.save_booking_flow(self.form_id, data)

    async def save_now(self) -> bool:
        if self.autosave is None:
            return False
        return await self.autosave.save_now()

    async def close(self, flush: bool = True):
        if self.autosave is not None:
            await self.autosave.close(flush=flush)
