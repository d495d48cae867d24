"""
Module: commerce_kernel.selectors.base
Responsibility: Base class for read-only query selectors and the shared
    pagination envelope.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/dtos.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, flush, delete or commit.
    - Selectors return DTOs, never ORM instances.
    - The caller owns the session and its transaction scope.
"""

from __future__ import annotations

import math
from abc import ABC
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from commerce_kernel.db.base import Base
from commerce_kernel.exceptions import InvalidInputError

ModelType = TypeVar("ModelType", bound=Base)
ItemT = TypeVar("ItemT")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Page(Generic[ItemT]):
    """One page of results plus the numbers a caller needs to page through."""

    items: tuple[ItemT, ...]
    total: int
    pages: int
    page: int
    limit: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: list[ItemT], total: int, page: int, limit: int) -> Page[ItemT]:
        pages = math.ceil(total / limit) if total else 0
        return cls(
            items=tuple(items),
            total=total,
            pages=pages,
            page=page,
            limit=limit,
            has_next=page < pages,
            has_prev=page > 1,
        )


def resolve_paging(
    page: int,
    limit: int | None,
    default_limit: int = DEFAULT_PAGE_SIZE,
    max_limit: int = MAX_PAGE_SIZE,
) -> tuple[int, int]:
    """
    Validate ``page``/``limit`` and return ``(page, limit)``.

    A missing limit takes the default; a limit above ``max_limit`` is
    clamped to it.
    """
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise InvalidInputError(f"page must be a positive integer, got {page!r}", field="page")
    if limit is None:
        limit = default_limit
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidInputError(
            f"limit must be a positive integer, got {limit!r}", field="limit"
        )
    return page, min(limit, max_limit)


class BaseSelector(ABC, Generic[ModelType]):
    """Selectors accept a Session from the caller and only read from it."""

    def __init__(self, session: Session):
        self.session = session
