from pagelm.db.preferences import (
    MemoryPreferenceStore,
    PreferenceStore,
    SQLitePreferenceStore,
)

__all__ = ["MemoryPreferenceStore", "PreferenceStore", "SQLitePreferenceStore"]
