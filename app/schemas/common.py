# app/schemas/common.py
from pydantic import BaseModel
from typing import Generic, List, TypeVar

DataType = TypeVar('DataType')

class PaginatedResponse(BaseModel, Generic[DataType]):
    """
    Универсальная Pydantic-схема для пагинированных ответов.
    """
    total_items: int
    total_pages: int
    current_page: int
    size: int
    items: List[DataType]


def total_pages(total_items: int, size: int) -> int:
    return (total_items + size - 1) // size if size > 0 else 0

