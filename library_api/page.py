from dataclasses import dataclass
from typing import Any, Callable, List

# SQLite binds LIMIT/OFFSET as signed 64-bit integers
MAX_OFFSET = 2 ** 63 - 1


@dataclass(frozen=True)
class PageRequest:
    """Zero-based page number and page size."""
    page: int = 0
    size: int = 20

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("Page index must not be less than zero.")
        if self.size < 1:
            raise ValueError("Page size must not be less than one.")
        if self.size > MAX_OFFSET or self.page * self.size > MAX_OFFSET:
            raise ValueError("Page offset is too large.")

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass
class Page:
    content: List[Any]
    request: PageRequest
    total_elements: int = 0

    @property
    def total_pages(self) -> int:
        return (self.total_elements + self.request.size - 1) // self.request.size

    def map(self, func: Callable[[Any], Any]) -> "Page":
        return Page([func(item) for item in self.content], self.request, self.total_elements)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "page": self.request.page,
            "size": self.request.size,
            "total_elements": self.total_elements,
            "total_pages": self.total_pages,
        }
