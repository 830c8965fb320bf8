from rendition_core.registry.sqlite_registry import PLATFORM_PREFERENCES, SqliteRegistry

__all__ = [
    "PLATFORM_PREFERENCES",
    "SqliteRegistry",
]
