"""
Form editor reducers

reduce_form_data applies one typed action to a BookingFlowData value and
returns the next value. Unknown node or parent ids, and actions that would
break the tree shape, leave the document untouched (the same object is
returned). reduce_editor_state wraps the document in the editor's
loading/loaded/error lifecycle.
"""

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from . import tree as tree_ops
from .schemas import BookingFlowData, FlowNode, FormFieldConfig, Theme

logger = logging.getLogger(__name__)


# ============================================================================
# DATA ACTIONS
# ============================================================================


class FormSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    internalName: Optional[str] = None
    slug: Optional[str] = None
    theme: Optional[Theme] = None
    primaryColor: Optional[str] = None


class UpdateFormSettings(BaseModel):
    type: Literal["UPDATE_FORM_SETTINGS"] = "UPDATE_FORM_SETTINGS"
    settings: FormSettings


class UpdateNode(BaseModel):
    type: Literal["UPDATE_NODE"] = "UPDATE_NODE"
    nodeId: str
    updates: dict


class AddNode(BaseModel):
    type: Literal["ADD_NODE"] = "ADD_NODE"
    parentId: str
    node: FlowNode


class ReorderNodes(BaseModel):
    type: Literal["REORDER_NODES"] = "REORDER_NODES"
    parentId: str
    newOrder: list[Union[str, FlowNode]]


class UpdateBaseQuestions(BaseModel):
    type: Literal["UPDATE_BASE_QUESTIONS"] = "UPDATE_BASE_QUESTIONS"
    questions: list[FormFieldConfig]


class RemoveNode(BaseModel):
    type: Literal["REMOVE_NODE"] = "REMOVE_NODE"
    nodeId: str


class MoveNode(BaseModel):
    type: Literal["MOVE_NODE"] = "MOVE_NODE"
    nodeId: str
    newParentId: str


class InitializeData(BaseModel):
    type: Literal["INITIALIZE_DATA"] = "INITIALIZE_DATA"
    data: BookingFlowData


FormDataAction = Annotated[
    Union[
        UpdateFormSettings,
        UpdateNode,
        AddNode,
        ReorderNodes,
        UpdateBaseQuestions,
        RemoveNode,
        MoveNode,
        InitializeData,
    ],
    Field(discriminator="type"),
]

_action_adapter = TypeAdapter(FormDataAction)


def parse_action(payload: dict):
    """Validate a JSON action payload into its action model"""
    return _action_adapter.validate_python(payload)


def _with_tree(data: BookingFlowData, new_tree: FlowNode, action_type: str) -> BookingFlowData:
    if new_tree is data.serviceTree:
        return data
    errors = tree_ops.structural_errors(new_tree)
    if errors and not tree_ops.structural_errors(data.serviceTree):
        logger.warning(f"⚠️ {action_type} ignored, it would break the service tree: {errors[0]}")
        return data
    return data.model_copy(update={"serviceTree": new_tree})


def reduce_form_data(data: BookingFlowData, action) -> BookingFlowData:
    """Apply one action; returns `data` itself when the action changes nothing"""
    if isinstance(action, dict):
        action = parse_action(action)

    if isinstance(action, InitializeData):
        return action.data

    if isinstance(action, UpdateFormSettings):
        changes = {
            key: value
            for key, value in action.settings.model_dump(exclude_none=True).items()
            if getattr(data, key) != value
        }
        if not changes:
            return data
        return data.model_copy(update=changes)

    if isinstance(action, UpdateNode):
        new_tree = tree_ops.update_node(data.serviceTree, action.nodeId, action.updates)
        return _with_tree(data, new_tree, action.type)

    if isinstance(action, AddNode):
        new_tree = tree_ops.add_child(data.serviceTree, action.parentId, action.node)
        return _with_tree(data, new_tree, action.type)

    if isinstance(action, ReorderNodes):
        new_tree = tree_ops.reorder_children(data.serviceTree, action.parentId, action.newOrder)
        return _with_tree(data, new_tree, action.type)

    if isinstance(action, RemoveNode):
        new_tree = tree_ops.remove_node(data.serviceTree, action.nodeId)
        return _with_tree(data, new_tree, action.type)

    if isinstance(action, MoveNode):
        if not tree_ops.node_exists(data.serviceTree, action.nodeId):
            return data
        new_tree = tree_ops.move_node(data.serviceTree, action.nodeId, action.newParentId)
        return _with_tree(data, new_tree, action.type)

    if isinstance(action, UpdateBaseQuestions):
        questions = list(action.questions)
        if questions == list(data.baseQuestions):
            return data
        return data.model_copy(update={"baseQuestions": questions})

    logger.warning(f"⚠️ Unknown form action: {action!r}")
    return data


# ============================================================================
# EDITOR STATE
# ============================================================================

EditorStatus = Literal["loading", "loaded", "error"]


class FormEditorState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: EditorStatus = "loading"
    data: Optional[BookingFlowData] = None
    error: Optional[str] = None


class FormLoaded(BaseModel):
    type: Literal["FORM_LOADED"] = "FORM_LOADED"
    data: BookingFlowData


class FormLoadError(BaseModel):
    type: Literal["FORM_LOAD_ERROR"] = "FORM_LOAD_ERROR"
    error: str


class FormDataUpdated(BaseModel):
    type: Literal["FORM_DATA_UPDATED"] = "FORM_DATA_UPDATED"
    action: FormDataAction


class ResetToLoading(BaseModel):
    type: Literal["RESET_TO_LOADING"] = "RESET_TO_LOADING"


def reduce_editor_state(state: FormEditorState, action) -> FormEditorState:
    if isinstance(action, FormLoaded):
        return FormEditorState(status="loaded", data=action.data)

    if isinstance(action, FormLoadError):
        return FormEditorState(status="error", error=action.error)

    if isinstance(action, ResetToLoading):
        return FormEditorState()

    if isinstance(action, FormDataUpdated):
        if state.status != "loaded" or state.data is None:
            logger.warning(f"⚠️ Ignoring {action.action.type} while editor is {state.status}")
            return state
        new_data = reduce_form_data(state.data, action.action)
        if new_data is state.data:
            return state
        return state.model_copy(update={"data": new_data})

    logger.warning(f"⚠️ Unknown editor action: {action!r}")
    return state
