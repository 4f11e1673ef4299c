# universo/utils/pagination.py
from dataclasses import dataclass, field
from typing import Any, List, Optional

from universo.services.exceptions import ValidationError

MAX_PAGE_VALUE = 2 ** 31 - 1


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    per_page: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


@dataclass
class Page:
    items: List[Any] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 20

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def _positive_int(name: str, raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be a positive integer.")
    if value < 1 or value > MAX_PAGE_VALUE:
        raise ValidationError(f"'{name}' must be an integer between 1 and {MAX_PAGE_VALUE}.")
    return value


def parse_page_request(page: Optional[str], per_page: Optional[str], default_per_page: int = 20, max_per_page: int = 100) -> PageRequest:
    """
    쿼리 문자열의 page/per_page 값을 검증하여 PageRequest를 만듭니다.
    per_page는 max_per_page를 넘지 않도록 잘라냅니다.

    Raises:
        ValidationError: 정수가 아니거나 1..MAX_PAGE_VALUE 범위를 벗어날 때.
    """
    page_number = _positive_int("page", page) or 1
    size = _positive_int("per_page", per_page) or default_per_page
    return PageRequest(page=page_number, per_page=min(size, max_per_page))
