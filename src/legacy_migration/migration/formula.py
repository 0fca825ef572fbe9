"""Formula reference resolution.

Quantity formulas reference other items as `[identifier]`, where the
identifier is a legacy formula id or object id. Migration rewrites every
reference to the new item id, reports references that do not resolve, and
detects reference cycles. Formulas are never evaluated here.
"""

import re
from collections import deque
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

REFERENCE_PATTERN = re.compile(r"\[([^\]]+)\]")

_CONSECUTIVE_OPERATORS = re.compile(r"[+\-*/]{2,}")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class FormulaItem:
    """An item as seen by the dependency graph."""

    id: str
    formula: str | None = None


@dataclass
class FormulaTransformResult:
    """Rewritten formula plus the references that could not be mapped."""

    formula: str
    unresolved_refs: list[str] = field(default_factory=list)


@dataclass
class FormulaValidation:
    is_valid: bool
    error: str | None = None


@dataclass
class CircularDependency:
    """A reference cycle found during traversal from item_id.

    `cycle` lists the nodes on the cycle and repeats the first one at the end.
    """

    item_id: str
    cycle: list[str]


def extract_references(formula: str | None) -> list[str]:
    """Return unique references in first-seen order."""
    if not formula:
        return []
    seen: dict[str, None] = {}
    for match in REFERENCE_PATTERN.finditer(formula):
        seen.setdefault(match.group(1), None)
    return list(seen)


def transform_formula(formula: str, id_map: Mapping[str, str]) -> FormulaTransformResult:
    """Rewrite mapped references to their new ids.

    Unmapped references are left verbatim and reported once per occurrence.

    Args:
        formula: Legacy formula text
        id_map: Legacy identifier to new id

    Returns:
        FormulaTransformResult: The rewritten formula and unresolved references
    """
    unresolved: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        ref = match.group(1)
        new_id = id_map.get(ref)
        if new_id is None:
            unresolved.append(ref)
            return match.group(0)
        return f"[{new_id}]"

    return FormulaTransformResult(
        formula=REFERENCE_PATTERN.sub(_replace, formula),
        unresolved_refs=unresolved,
    )


def validate_formula_syntax(formula: str | None) -> FormulaValidation:
    """Check bracket balance and operator placement.

    Nested brackets are accepted as long as they balance.
    """
    if not formula or not formula.strip():
        return FormulaValidation(False, "Formula cannot be empty")

    depth = 0
    for char in formula:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth < 0:
                return FormulaValidation(False, "Unmatched closing bracket")
    if depth != 0:
        return FormulaValidation(False, "Unmatched opening bracket")

    if "[]" in formula:
        return FormulaValidation(False, "Empty bracket reference")

    if _CONSECUTIVE_OPERATORS.search(_WHITESPACE.sub("", formula)):
        return FormulaValidation(False, "Consecutive operators")

    return FormulaValidation(True)


def _dependency_graph(items: Iterable[FormulaItem]) -> dict[str, list[str]]:
    """Edges u -> v for every reference from u to a known item v."""
    formulas = {item.id: item.formula for item in items}
    return {
        item_id: [ref for ref in extract_references(formula) if ref in formulas]
        for item_id, formula in formulas.items()
    }


def detect_circular_dependencies(items: Iterable[FormulaItem]) -> list[CircularDependency]:
    """Find reference cycles with an iterative depth-first search.

    Each back edge found produces one CircularDependency. References to
    unknown ids are ignored; an item referencing itself is a cycle.
    """
    graph = _dependency_graph(items)
    visited: set[str] = set()
    cycles: list[CircularDependency] = []

    for root in graph:
        if root in visited:
            continue

        path: list[str] = [root]
        on_path: set[str] = {root}
        stack: list[tuple[str, Iterator[str]]] = [(root, iter(graph[root]))]
        visited.add(root)

        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                path.pop()
                on_path.discard(node)
                continue
            if child in on_path:
                start = path.index(child)
                cycles.append(CircularDependency(item_id=root, cycle=path[start:] + [child]))
            elif child not in visited:
                visited.add(child)
                path.append(child)
                on_path.add(child)
                stack.append((child, iter(graph[child])))

    return cycles


def get_dependents(target_id: str, items: Iterable[FormulaItem]) -> set[str]:
    """Return every item that references target_id directly or transitively.

    The target itself is never included, even when it sits on a cycle.
    """
    reverse: dict[str, list[str]] = {}
    for item_id, refs in _dependency_graph(items).items():
        for ref in refs:
            reverse.setdefault(ref, []).append(item_id)

    dependents: set[str] = set()
    queue = deque([target_id])
    while queue:
        current = queue.popleft()
        for dependent in reverse.get(current, []):
            if dependent != target_id and dependent not in dependents:
                dependents.add(dependent)
                queue.append(dependent)
    return dependents


def build_formula_id_mapping(items: Iterable[Any]) -> dict[str, str]:
    """Map legacy formula ids and source ids of persisted items to their new ids.

    Items are read duck-typed through `id`, `formula_id` and `source_id`;
    later items win on key collisions.
    """
    mapping: dict[str, str] = {}
    for item in items:
        formula_id = getattr(item, "formula_id", None)
        source_id = getattr(item, "source_id", None)
        if formula_id:
            mapping[formula_id] = item.id
        if source_id:
            mapping[source_id] = item.id
    return mapping
