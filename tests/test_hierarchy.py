"""
Tests for the category hierarchy builder.
"""

from legacy_migration.client.records import LegacyCategoryConfig, RawSourceItem
from legacy_migration.migration.hierarchy import (
    ROOT_PARENT,
    CategoryType,
    build_category_hierarchy,
    count_unique_category_paths,
    flatten_category_hierarchy,
    get_category_path,
    map_category_type,
)


def item(object_id: str, category=None, sub_category=None, sub_sub=None) -> RawSourceItem:
    return RawSourceItem(
        object_id=object_id,
        category=category,
        sub_category=sub_category,
        sub_sub_categories=sub_sub,
    )


# =============================================================================
# Paths
# =============================================================================


class TestGetCategoryPath:
    def test_full_path(self):
        record = item("i1", "Roofing", "Shingles", "Premium>Architectural")
        assert get_category_path(record) == ["Roofing", "Shingles", "Premium", "Architectural"]

    def test_segments_are_trimmed_and_blank_segments_dropped(self):
        record = item("i1", " Roofing ", " Shingles", " Premium >  > Dark ")
        assert get_category_path(record) == ["Roofing", "Shingles", "Premium", "Dark"]

    def test_no_category(self):
        assert get_category_path(item("i1")) == []
        assert get_category_path(item("i1", "   ", "Shingles")) == []

    def test_sub_sub_categories_need_a_sub_category(self):
        assert get_category_path(item("i1", "Roofing", "", "Premium")) == ["Roofing"]

    def test_count_unique_paths_includes_prefixes(self):
        records = [
            item("i1", "Roofing", "Shingles", "Premium"),
            item("i2", "Roofing", "Shingles"),
            item("i3", "Windows"),
            item("i4"),
        ]
        # Roofing, Roofing>Shingles, Roofing>Shingles>Premium, Windows
        assert count_unique_category_paths(records) == 4


class TestMapCategoryType:
    def test_known_types(self):
        assert map_category_type("detail") == CategoryType.DETAIL
        assert map_category_type("deep_drill_down") == CategoryType.DEEP_DRILL_DOWN
        assert map_category_type("default") == CategoryType.DEFAULT

    def test_unknown_type_is_default(self):
        assert map_category_type("grid") == CategoryType.DEFAULT
        assert map_category_type(None) == CategoryType.DEFAULT


# =============================================================================
# Building and flattening
# =============================================================================


class TestBuildCategoryHierarchy:
    def test_declared_roots_come_first_in_order(self):
        configs = [
            LegacyCategoryConfig(name="Windows", order=2, type="detail"),
            LegacyCategoryConfig(name="Roofing", order=1),
        ]
        hierarchy = build_category_hierarchy(configs, [item("i1", "Siding")])

        roots = [node.name for node in hierarchy.sorted_children(ROOT_PARENT)]
        assert roots == ["Roofing", "Windows", "Siding"]
        assert hierarchy.nodes[hierarchy.roots["Windows"]].category_type == CategoryType.DETAIL

    def test_duplicate_declared_roots_are_ignored(self):
        configs = [
            LegacyCategoryConfig(name="Roofing", order=1, object_id="c1"),
            LegacyCategoryConfig(name="Roofing", order=2, object_id="c2"),
        ]
        hierarchy = build_category_hierarchy(configs, [])

        assert len(hierarchy) == 1
        assert hierarchy.nodes[0].source_id == "c1"

    def test_nodes_merge_by_name_within_parent(self):
        records = [
            item("i1", "Roofing", "Shingles"),
            item("i2", "Roofing", "Shingles", "Premium"),
            item("i3", "Windows", "Shingles"),
        ]
        hierarchy = build_category_hierarchy([], records)

        # Roofing, Shingles, Premium, Windows, Shingles (under Windows)
        assert len(hierarchy) == 5
        roofing = hierarchy.roots["Roofing"]
        shingles = hierarchy.child(roofing, "Shingles")
        assert shingles is not None
        assert hierarchy.child(shingles.index, "Premium").depth == 2

    def test_sibling_keys_follow_discovery_order(self):
        records = [
            item("i1", "Roofing", "Zinc"),
            item("i2", "Roofing", "Asphalt"),
            item("i3", "Roofing", "Metal"),
        ]
        hierarchy = build_category_hierarchy([], records)

        children = hierarchy.sorted_children(hierarchy.roots["Roofing"])
        keys = [child.sort_order for child in children]
        assert [child.name for child in children] == ["Zinc", "Asphalt", "Metal"]
        assert len(set(keys)) == len(keys)
        assert keys == sorted(keys)

    def test_many_siblings_keep_distinct_ordered_keys(self):
        records = [item(f"i{n}", "Roofing", f"Sub {n}") for n in range(100)]
        hierarchy = build_category_hierarchy([], records)

        children = hierarchy.sorted_children(hierarchy.roots["Roofing"])
        assert [child.name for child in children] == [f"Sub {n}" for n in range(100)]

    def test_path_walks_to_root(self):
        hierarchy = build_category_hierarchy([], [item("i1", "A", "B", "C>D")])
        deepest = max(hierarchy.nodes, key=lambda node: node.depth)
        assert hierarchy.path(deepest.index) == ["A", "B", "C", "D"]


class TestFlattenCategoryHierarchy:
    def test_path_length_matches_depth(self):
        records = [
            item("i1", "Roofing", "Shingles", "Premium>Dark"),
            item("i2", "Windows", "Vinyl"),
            item("i3", "Gutters"),
        ]
        flattened = flatten_category_hierarchy(build_category_hierarchy([], records))

        for category in flattened:
            assert len(category.path) == category.depth + 1
            assert category.path[-1] == category.name

    def test_parents_precede_children(self):
        records = [
            item("i1", "Roofing", "Shingles", "Premium"),
            item("i2", "Windows", "Vinyl"),
            item("i3", "Roofing", "Metal"),
        ]
        flattened = flatten_category_hierarchy(build_category_hierarchy([], records))

        seen: set[tuple[str, ...]] = set()
        for category in flattened:
            if category.depth > 0:
                assert category.path_key[:-1] in seen
            seen.add(category.path_key)

    def test_pre_order(self):
        records = [
            item("i1", "Roofing", "Shingles"),
            item("i2", "Windows"),
            item("i3", "Roofing", "Metal"),
        ]
        flattened = flatten_category_hierarchy(build_category_hierarchy([], records))

        assert [">".join(c.path) for c in flattened] == [
            "Roofing",
            "Roofing>Shingles",
            "Roofing>Metal",
            "Windows",
        ]

    def test_empty_hierarchy(self):
        assert flatten_category_hierarchy(build_category_hierarchy([], [])) == []
