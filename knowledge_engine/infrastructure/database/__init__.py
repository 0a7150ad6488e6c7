from .base import Base
from .session import Database, get_async_url

__all__ = [
    "Base",
    "Database",
    "get_async_url",
]
