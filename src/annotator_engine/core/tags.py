"""Label search and management through host-provided async capabilities."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, List, Mapping, Optional, Protocol, Sequence

from .models import Label

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
DEBOUNCE_MS = 300


@dataclass(frozen=True)
class TagSearchParams:
    query: str
    page: int
    limit: int


@dataclass(frozen=True)
class TagSearchResult:
    labels: List[Label] = field(default_factory=list)
    total: int = 0
    has_more: bool = False


class TagSearchFn(Protocol):
    def __call__(self, params: TagSearchParams) -> Awaitable[TagSearchResult]: ...


class TagCreateFn(Protocol):
    def __call__(self, name: str, color: Optional[str] = None) -> Awaitable[Label]: ...


class TagDeleteFn(Protocol):
    def __call__(self, label_id: str) -> Awaitable[None]: ...


class TagUpdateFn(Protocol):
    def __call__(self, label_id: str, updates: Mapping[str, str]) -> Awaitable[Label]: ...


class TagManager:
    """
    Label list with optional remote search and CRUD.

    Without a search capability, searching filters the local labels by a
    case-insensitive name match. With one, results are paged: the first
    page replaces the results and later pages append to them.
    """

    def __init__(
        self,
        labels: Optional[Sequence[Label]] = None,
        search: Optional[TagSearchFn] = None,
        create: Optional[TagCreateFn] = None,
        delete: Optional[TagDeleteFn] = None,
        update: Optional[TagUpdateFn] = None,
        limit: int = SEARCH_LIMIT,
        debounce_ms: int = DEBOUNCE_MS
    ) -> None:
        """
        Initialize the manager.

        Args:
            labels: Local labels
            search: Remote search capability
            create: Remote create capability
            delete: Remote delete capability
            update: Remote update capability
            limit: Page size for remote search
            debounce_ms: Delay applied by search_debounced
        """
        self._labels: List[Label] = list(labels or [])
        self._search = search
        self._create = create
        self._delete = delete
        self._update = update
        self.limit = limit
        self.debounce_ms = debounce_ms

        self.query = ""
        self.page = 1
        self.has_more = False
        self.loading = False
        self.results: List[Label] = list(self._labels)
        self._generation = 0

    @property
    def labels(self) -> List[Label]:
        """Local label list."""
        return list(self._labels)

    def set_labels(self, labels: Sequence[Label]) -> None:
        self._labels = list(labels)
        if self._search is None:
            self.results = self._filter_local(self.query)

    def _filter_local(self, query: str) -> List[Label]:
        needle = query.lower()
        return [label for label in self._labels if needle in label.name.lower()]

    async def search(self, query: str) -> List[Label]:
        """Search from the first page."""
        self.query = query
        self.page = 1
        return await self._run_search(query, 1)

    async def search_debounced(self, query: str) -> Optional[List[Label]]:
        """
        Search after ``debounce_ms`` unless a newer call supersedes this one.

        Returns:
            The results, or None if the call was superseded
        """
        self._generation += 1
        generation = self._generation
        await asyncio.sleep(self.debounce_ms / 1000)
        if generation != self._generation:
            return None
        return await self.search(query)

    async def load_more(self) -> List[Label]:
        """Fetch the next page when more results exist and no search is running."""
        if not self.has_more or self.loading:
            return self.results
        self.page += 1
        return await self._run_search(self.query, self.page)

    async def _run_search(self, query: str, page: int) -> List[Label]:
        if self._search is None:
            self.results = self._filter_local(query)
            self.has_more = False
            return self.results

        self.loading = True
        try:
            result = await self._search(TagSearchParams(query=query, page=page, limit=self.limit))
        except Exception as e:
            logger.error(f"Tag search failed for {query!r}: {e}")
            raise
        finally:
            self.loading = False

        self.results = list(result.labels) if page == 1 else [*self.results, *result.labels]
        self.has_more = result.has_more
        return self.results

    async def create_tag(self, name: str, color: Optional[str] = None) -> Label:
        if self._create is None:
            raise RuntimeError("No tag create capability configured")
        try:
            label = await self._create(name, color)
        except Exception as e:
            logger.error(f"Failed to create tag {name!r}: {e}")
            raise
        self._labels.append(label)
        logger.info(f"Created tag {label.name} ({label.id})")
        return label

    async def delete_tag(self, label_id: str) -> None:
        if self._delete is None:
            raise RuntimeError("No tag delete capability configured")
        try:
            await self._delete(label_id)
        except Exception as e:
            logger.error(f"Failed to delete tag {label_id}: {e}")
            raise
        self._labels = [label for label in self._labels if label.id != label_id]
        self.results = [label for label in self.results if label.id != label_id]
        logger.info(f"Deleted tag {label_id}")

    async def update_tag(self, label_id: str, updates: Mapping[str, str]) -> Label:
        """
        Rename or recolour a tag.

        Args:
            label_id: Tag to update
            updates: ``name`` and/or ``color``
        """
        if self._update is None:
            raise RuntimeError("No tag update capability configured")
        unknown = set(updates) - {"name", "color"}
        if unknown:
            raise ValueError(f"Unsupported tag fields: {sorted(unknown)}")
        try:
            label = await self._update(label_id, dict(updates))
        except Exception as e:
            logger.error(f"Failed to update tag {label_id}: {e}")
            raise

        self._labels = [label if existing.id == label_id else existing for existing in self._labels]
        self.results = [label if existing.id == label_id else existing for existing in self.results]
        return label
