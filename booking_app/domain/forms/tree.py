"""
Immutable operations on the FlowNode service tree

Every function returns a tree; subtrees that were not touched are the very same
objects as in the input, and when nothing changes the input tree itself is
returned. Lookups are depth-first.
"""

import logging
from collections.abc import Iterator, Sequence
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .schemas import FlowNode, NodeType

logger = logging.getLogger(__name__)


def iter_nodes(tree: FlowNode) -> Iterator[FlowNode]:
    """Depth-first, pre-order walk"""
    yield tree
    for child in tree.children or []:
        yield from iter_nodes(child)


def find_node(tree: FlowNode, node_id: str) -> Optional[FlowNode]:
    for node in iter_nodes(tree):
        if node.id == node_id:
            return node
    return None


def find_parent(tree: FlowNode, node_id: str) -> Optional[FlowNode]:
    for node in iter_nodes(tree):
        for child in node.children or []:
            if child.id == node_id:
                return node
    return None


def node_exists(tree: FlowNode, node_id: str) -> bool:
    return find_node(tree, node_id) is not None


def nodes_by_type(tree: FlowNode, node_type: NodeType) -> list[FlowNode]:
    return [node for node in iter_nodes(tree) if node.type == node_type]


def leaf_nodes(tree: FlowNode) -> list[FlowNode]:
    if not tree.children:
        return [tree]
    leaves = []
    for child in tree.children:
        leaves.extend(leaf_nodes(child))
    return leaves


def extract_services(tree: FlowNode) -> list[FlowNode]:
    return nodes_by_type(tree, "service")


def node_depth(tree: FlowNode, node_id: str, depth: int = 0) -> Optional[int]:
    if tree.id == node_id:
        return depth
    for child in tree.children or []:
        found = node_depth(child, node_id, depth + 1)
        if found is not None:
            return found
    return None


def get_path(tree: FlowNode, node_id: str) -> Optional[list[str]]:
    """Labels from the root down to the node"""
    if tree.id == node_id:
        return [tree.label]
    for child in tree.children or []:
        path = get_path(child, node_id)
        if path is not None:
            return [tree.label] + path
    return None


def structural_errors(tree: FlowNode) -> list[str]:
    """Violations of the tree shape rules (single start root, leaf services, unique ids)"""
    errors = []
    if tree.type != "start":
        errors.append(f"Root node {tree.id} must be of type 'start'")

    seen: set[str] = set()

    def visit(node: FlowNode, is_root: bool):
        if node.id in seen:
            errors.append(f"Duplicate node id: {node.id}")
        seen.add(node.id)
        if node.type == "start" and not is_root:
            errors.append(f"Node {node.id}: only the root may be of type 'start'")
        if node.type == "service" and node.children:
            errors.append(f"Service node {node.id} cannot have children")
        for child in node.children or []:
            visit(child, False)

    visit(tree, True)
    return errors


def _replace_children(node: FlowNode, children: list[FlowNode]) -> FlowNode:
    return node.model_copy(update={"children": children})


def _map_subtree(tree: FlowNode, node_id: str, transform) -> FlowNode:
    """Rebuild only the path from the root to node_id, applying transform to that node"""
    if tree.id == node_id:
        return transform(tree)
    if not tree.children:
        return tree

    new_children = []
    changed = False
    for child in tree.children:
        new_child = _map_subtree(child, node_id, transform)
        changed = changed or new_child is not child
        new_children.append(new_child)

    if not changed:
        return tree
    return _replace_children(tree, new_children)


def merge_node_updates(node: FlowNode, updates: dict[str, Any]) -> FlowNode:
    """
    Node with the updates applied; the id is never changed

    Raises:
        pydantic.ValidationError: If an updated field has the wrong type
    """
    fields = node.shallow_fields()
    fields.update({key: value for key, value in updates.items() if key != "id"})
    return FlowNode.model_validate(fields)


def update_node(tree: FlowNode, node_id: str, updates: dict[str, Any]) -> FlowNode:
    """Merge field updates into one node; updates that do not fit the node schema are ignored"""

    def apply(node: FlowNode) -> FlowNode:
        try:
            updated = merge_node_updates(node, updates)
        except PydanticValidationError as e:
            logger.warning(f"⚠️ Ignoring update of node {node_id}: {e.error_count()} invalid field(s)")
            return node
        if updated == node:
            return node
        return updated

    return _map_subtree(tree, node_id, apply)


def add_child(tree: FlowNode, parent_id: str, child: FlowNode) -> FlowNode:
    """Append child under parent_id; adding under a service or reusing an id is refused"""
    parent = find_node(tree, parent_id)
    if parent is None:
        return tree
    if not parent.is_container:
        logger.warning(f"⚠️ Refusing to add node {child.id} under service node {parent_id}")
        return tree
    if child.type == "start":
        logger.warning(f"⚠️ Refusing to add a second start node ({child.id})")
        return tree
    existing_ids = {node.id for node in iter_nodes(tree)}
    if any(node.id in existing_ids for node in iter_nodes(child)):
        logger.warning(f"⚠️ Refusing to add node {child.id}: id already present in tree")
        return tree

    return _map_subtree(tree, parent_id, lambda node: _replace_children(node, node.child_list() + [child]))


def remove_node(tree: FlowNode, node_id: str) -> FlowNode:
    """Drop a node and its subtree; the root itself cannot be removed"""
    if tree.id == node_id:
        logger.warning("⚠️ Refusing to remove the root node")
        return tree
    parent = find_parent(tree, node_id)
    if parent is None:
        return tree

    return _map_subtree(
        tree,
        parent.id,
        lambda node: _replace_children(node, [c for c in node.child_list() if c.id != node_id]),
    )


def reorder_children(
    tree: FlowNode, parent_id: str, new_order: Sequence[Union[FlowNode, dict, str]]
) -> FlowNode:
    """
    Put parent's children in the given order.

    new_order may hold nodes, node dicts or bare ids; it must name exactly the
    current children. The existing child objects are reused, so only their
    positions change.
    """
    parent = find_node(tree, parent_id)
    if parent is None or not parent.children:
        return tree

    ordered_ids = [_node_id(item) for item in new_order]
    current = {child.id: child for child in parent.children}
    if len(ordered_ids) != len(current) or set(ordered_ids) != set(current):
        logger.warning(f"⚠️ Ignoring reorder of {parent_id}: new order is not a permutation of its children")
        return tree
    if ordered_ids == [child.id for child in parent.children]:
        return tree

    return _map_subtree(
        tree, parent_id, lambda node: _replace_children(node, [current[i] for i in ordered_ids])
    )


def move_node(tree: FlowNode, node_id: str, new_parent_id: str) -> FlowNode:
    """Detach a subtree and append it under another container"""
    node = find_node(tree, node_id)
    target = find_node(tree, new_parent_id)
    if node is None or target is None or node is tree:
        return tree
    if not target.is_container or find_node(node, new_parent_id) is not None:
        # Cannot move under a service or into its own subtree
        return tree
    parent = find_parent(tree, node_id)
    if parent is not None and parent.id == new_parent_id:
        return tree
    return add_child(remove_node(tree, node_id), new_parent_id, node)


def _node_id(item: Union[FlowNode, dict, str]) -> str:
    if isinstance(item, FlowNode):
        return item.id
    if isinstance(item, dict):
        return item["id"]
    return item
