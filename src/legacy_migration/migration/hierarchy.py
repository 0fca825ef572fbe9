"""Category hierarchy builder.

The legacy store has no category table below the root level: each item
carries its own path as `category`, `subCategory` and a ">"-delimited
`subSubCategories` string. This module reconstructs the tree from those flat
paths, merging nodes by exact name within one parent, and assigns every node
an order key that sorts after its previously discovered siblings.

Nodes live in an arena (`CategoryHierarchy.nodes`) and refer to each other by
index, so paths are rebuilt by walking `parent_index` up to the root.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from legacy_migration.client.records import LegacyCategoryConfig, RawSourceItem
from legacy_migration.migration.ordering import generate_key_between

PATH_SEPARATOR = ">"

ROOT_PARENT = -1


class CategoryType(str, Enum):
    """Display behaviour of a price guide category."""

    DEFAULT = "default"
    DETAIL = "detail"
    DEEP_DRILL_DOWN = "deep_drill_down"


def map_category_type(legacy_type: str | None) -> CategoryType:
    """Map a legacy category type string, defaulting unknown values to DEFAULT."""
    if legacy_type == "detail":
        return CategoryType.DETAIL
    if legacy_type == "deep_drill_down":
        return CategoryType.DEEP_DRILL_DOWN
    return CategoryType.DEFAULT


@dataclass
class CategoryNode:
    """One category in the arena."""

    index: int
    name: str
    category_type: CategoryType
    sort_order: str
    depth: int
    parent_index: int = ROOT_PARENT
    source_id: str | None = None
    children: dict[str, int] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent_index == ROOT_PARENT


@dataclass
class FlattenedCategory:
    """A category in pre-order with its full name path."""

    name: str
    category_type: CategoryType
    sort_order: str
    depth: int
    source_id: str | None
    path: list[str]

    @property
    def path_key(self) -> tuple[str, ...]:
        return tuple(self.path)


@dataclass
class CategoryHierarchy:
    """Arena of category nodes plus the root lookup by name."""

    nodes: list[CategoryNode] = field(default_factory=list)
    roots: dict[str, int] = field(default_factory=dict)

    def add_node(
        self,
        name: str,
        category_type: CategoryType,
        sort_order: str,
        parent_index: int = ROOT_PARENT,
        source_id: str | None = None,
    ) -> CategoryNode:
        depth = 0 if parent_index == ROOT_PARENT else self.nodes[parent_index].depth + 1
        node = CategoryNode(
            index=len(self.nodes),
            name=name,
            category_type=category_type,
            sort_order=sort_order,
            depth=depth,
            parent_index=parent_index,
            source_id=source_id,
        )
        self.nodes.append(node)
        if parent_index == ROOT_PARENT:
            self.roots[name] = node.index
        else:
            self.nodes[parent_index].children[name] = node.index
        return node

    def child(self, parent_index: int, name: str) -> CategoryNode | None:
        siblings = self.roots if parent_index == ROOT_PARENT else self.nodes[parent_index].children
        index = siblings.get(name)
        return self.nodes[index] if index is not None else None

    def path(self, index: int) -> list[str]:
        """Names from the root down to the node at index."""
        names: list[str] = []
        current = index
        while current != ROOT_PARENT:
            node = self.nodes[current]
            names.append(node.name)
            current = node.parent_index
        names.reverse()
        return names

    def sorted_children(self, parent_index: int) -> list[CategoryNode]:
        siblings = self.roots if parent_index == ROOT_PARENT else self.nodes[parent_index].children
        return sorted((self.nodes[i] for i in siblings.values()), key=lambda n: n.sort_order)

    def __len__(self) -> int:
        return len(self.nodes)


def get_category_path(record: RawSourceItem) -> list[str]:
    """Return the category path of an item: category, sub-category, then sub-sub segments.

    Segments are trimmed and blank segments are dropped. `sub_sub_categories`
    is only considered when a sub-category is present.
    """
    category = (record.category or "").strip()
    if not category:
        return []

    path = [category]
    sub_category = (record.sub_category or "").strip()
    if not sub_category:
        return path

    path.append(sub_category)
    if record.sub_sub_categories:
        for part in record.sub_sub_categories.split(PATH_SEPARATOR):
            trimmed = part.strip()
            if trimmed:
                path.append(trimmed)
    return path


def count_unique_category_paths(records: Iterable[RawSourceItem]) -> int:
    """Count distinct category paths, including every prefix of every item's path."""
    paths: set[tuple[str, ...]] = set()
    for record in records:
        path = get_category_path(record)
        for end in range(1, len(path) + 1):
            paths.add(tuple(path[:end]))
    return len(paths)


def build_category_hierarchy(
    root_configs: Iterable[LegacyCategoryConfig],
    records: Iterable[RawSourceItem],
) -> CategoryHierarchy:
    """Build the category tree from declared roots and item paths.

    Declared roots are added first in ascending `order`. Every item path is
    then walked from its root, creating missing nodes; a new node's key is
    generated after the last key handed out under the same parent, so sibling
    keys follow discovery order and never collide with declared roots.

    Args:
        root_configs: Root categories from the company configuration
        records: Items whose paths extend the tree

    Returns:
        CategoryHierarchy: The reconstructed tree
    """
    hierarchy = CategoryHierarchy()
    last_key: dict[int, str] = {}

    for config in sorted(root_configs, key=lambda c: c.order):
        if config.name in hierarchy.roots:
            continue
        sort_order = generate_key_between(last_key.get(ROOT_PARENT), None)
        last_key[ROOT_PARENT] = sort_order
        hierarchy.add_node(
            name=config.name,
            category_type=map_category_type(config.type),
            sort_order=sort_order,
            source_id=config.object_id,
        )

    for record in records:
        parent_index = ROOT_PARENT
        for name in get_category_path(record):
            node = hierarchy.child(parent_index, name)
            if node is None:
                sort_order = generate_key_between(last_key.get(parent_index), None)
                last_key[parent_index] = sort_order
                node = hierarchy.add_node(
                    name=name,
                    category_type=CategoryType.DEFAULT,
                    sort_order=sort_order,
                    parent_index=parent_index,
                )
            parent_index = node.index

    return hierarchy


def flatten_category_hierarchy(hierarchy: CategoryHierarchy) -> list[FlattenedCategory]:
    """Flatten the tree depth-first in pre-order, each level in ascending key order.

    Parents always precede their children in the result.
    """
    result: list[FlattenedCategory] = []
    stack = list(reversed(hierarchy.sorted_children(ROOT_PARENT)))

    while stack:
        node = stack.pop()
        result.append(
            FlattenedCategory(
                name=node.name,
                category_type=node.category_type,
                sort_order=node.sort_order,
                depth=node.depth,
                source_id=node.source_id,
                path=hierarchy.path(node.index),
            )
        )
        stack.extend(reversed(hierarchy.sorted_children(node.index)))

    return result
