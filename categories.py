from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Iterator, Mapping, Optional

from domain import Category
from errors import (
    CategoryArchived,
    CategoryHasChildren,
    CycleDetected,
    UnknownReference,
)
from money import Money


class CategorySnapshot:
    """Read-only view of the category arena at one point in time."""

    def __init__(self, nodes: Mapping[int, Category]) -> None:
        self._nodes = nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, category_id: int) -> bool:
        return category_id in self._nodes

    def __iter__(self) -> Iterator[Category]:
        return iter(sorted(self._nodes.values(), key=lambda c: c.id))

    def get(self, category_id: int) -> Category:
        category = self._nodes.get(category_id)
        if category is None:
            raise UnknownReference("category", category_id)
        return category

    def children(self, category_id: Optional[int], *, include_archived: bool = True) -> list[Category]:
        found = [
            c for c in self._nodes.values()
            if c.parent_id == category_id and (include_archived or not c.archived)
        ]
        return sorted(found, key=lambda c: (c.name.lower(), c.id))

    def roots(self, *, include_archived: bool = True) -> list[Category]:
        return self.children(None, include_archived=include_archived)

    def ancestors(self, category_id: int) -> list[Category]:
        """Parents of ``category_id``, nearest first."""
        chain: list[Category] = []
        current = self.get(category_id)
        for _ in range(len(self._nodes)):
            if current.parent_id is None:
                return chain
            current = self.get(current.parent_id)
            chain.append(current)
        raise CycleDetected(category_id, current.id)

    def effective_limit(self, category_id: int) -> Optional[Money]:
        category = self.get(category_id)
        if category.monthly_limit is not None:
            return category.monthly_limit
        for ancestor in self.ancestors(category_id):
            if ancestor.monthly_limit is not None:
                return ancestor.monthly_limit
        return None

    def walk(self, *, include_archived: bool = True) -> Iterator[tuple[int, Category]]:
        """Depth-first ``(depth, category)`` pairs, siblings ordered by name."""
        stack = [(0, c) for c in reversed(self.roots(include_archived=include_archived))]
        while stack:
            depth, category = stack.pop()
            yield depth, category
            kids = self.children(category.id, include_archived=include_archived)
            stack.extend((depth + 1, c) for c in reversed(kids))

    def require_open(self, category_id: int) -> Category:
        category = self.get(category_id)
        if category.archived:
            raise CategoryArchived(category_id)
        return category

    def next_id(self) -> int:
        return max(self._nodes, default=0) + 1


class CategoryTree:
    """Hierarchical budget categories stored as an arena keyed by id.

    Mutations are serialized by a lock and publish a fresh mapping, so
    readers holding a snapshot never see a partially applied change.
    """

    def __init__(self, categories: Iterable[Category] = ()) -> None:
        self._lock = threading.RLock()
        self._nodes: Mapping[int, Category] = {}
        self.load(categories)

    def snapshot(self) -> CategorySnapshot:
        return CategorySnapshot(self._nodes)

    def restore(self, snapshot: CategorySnapshot) -> None:
        with self._lock:
            self._nodes = snapshot._nodes

    def load(self, categories: Iterable[Category]) -> None:
        nodes = {c.id: c for c in categories}
        view = CategorySnapshot(nodes)
        for category in nodes.values():
            if category.parent_id is not None and category.parent_id not in nodes:
                raise UnknownReference("category", category.parent_id)
            view.ancestors(category.id)
        with self._lock:
            self._nodes = nodes

    # Reads delegate to the current snapshot.

    def get(self, category_id: int) -> Category:
        return self.snapshot().get(category_id)

    def children(self, category_id: Optional[int], *, include_archived: bool = True) -> list[Category]:
        return self.snapshot().children(category_id, include_archived=include_archived)

    def ancestors(self, category_id: int) -> list[Category]:
        return self.snapshot().ancestors(category_id)

    def effective_limit(self, category_id: int) -> Optional[Money]:
        return self.snapshot().effective_limit(category_id)

    def require_open(self, category_id: int) -> Category:
        return self.snapshot().require_open(category_id)

    def walk(self, *, include_archived: bool = True) -> Iterator[tuple[int, Category]]:
        return self.snapshot().walk(include_archived=include_archived)

    # Mutations.

    def insert(self, category: Category) -> Category:
        """Insert ``category`` or replace the node with the same id."""
        with self._lock:
            nodes = self._nodes
            if category.monthly_limit is not None and category.monthly_limit.is_negative():
                raise ValueError("Monthly limit cannot be negative")
            name = category.name.strip()
            if not name:
                raise ValueError("Category name cannot be empty")
            if category.parent_id is not None:
                parent = nodes.get(category.parent_id)
                if parent is None:
                    raise UnknownReference("category", category.parent_id)
                self._check_acyclic(nodes, category.id, category.parent_id)
                if parent.archived and not category.archived:
                    raise CategoryArchived(parent.id)
            for sibling in nodes.values():
                if (
                    sibling.id != category.id
                    and sibling.parent_id == category.parent_id
                    and sibling.name.lower() == name.lower()
                ):
                    raise ValueError("Category with this name already exists")
            category = replace(category, name=name)
            updated = dict(nodes)
            updated[category.id] = category
            self._nodes = updated
            return category

    def create(
        self,
        name: str,
        *,
        parent_id: Optional[int] = None,
        monthly_limit: Optional[Money] = None,
    ) -> Category:
        with self._lock:
            category = Category(
                id=self.snapshot().next_id(),
                name=name,
                parent_id=parent_id,
                monthly_limit=monthly_limit,
            )
            return self.insert(category)

    def rename(self, category_id: int, name: str) -> Category:
        with self._lock:
            return self.insert(replace(self.get(category_id), name=name))

    def set_limit(self, category_id: int, monthly_limit: Optional[Money]) -> Category:
        with self._lock:
            return self.insert(replace(self.get(category_id), monthly_limit=monthly_limit))

    def move(self, category_id: int, parent_id: Optional[int]) -> Category:
        with self._lock:
            return self.insert(replace(self.get(category_id), parent_id=parent_id))

    def archive(self, category_id: int, *, at: datetime) -> Category:
        with self._lock:
            view = self.snapshot()
            category = view.get(category_id)
            if category.archived:
                return category
            live = view.children(category_id, include_archived=False)
            if live:
                raise CategoryHasChildren(category_id, tuple(c.id for c in live))
            return self.insert(replace(category, archived_at=at))

    def restore_category(self, category_id: int) -> Category:
        with self._lock:
            return self.insert(replace(self.get(category_id), archived_at=None))

    @staticmethod
    def _check_acyclic(nodes: Mapping[int, Category], category_id: int, parent_id: int) -> None:
        current: Optional[int] = parent_id
        # A valid chain visits each node at most once.
        for _ in range(len(nodes) + 1):
            if current is None:
                return
            if current == category_id:
                raise CycleDetected(category_id, parent_id)
            node = nodes.get(current)
            current = node.parent_id if node else None
        raise CycleDetected(category_id, parent_id)
