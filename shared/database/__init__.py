from .session import (
    engine,
    SessionLocal,
    get_db,
    check_db,
    begin_snapshot,
    is_postgresql,
    init_db,
    close_db,
)
from .base import Base

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "check_db",
    "begin_snapshot",
    "is_postgresql",
    "init_db",
    "close_db",
    "Base",
]
