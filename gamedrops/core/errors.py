# ===== EXCEPTIONS =====

class GameDropsError(Exception):
    """Base class for all pipeline errors."""


class ItemParseError(GameDropsError):
    """A single provider record could not be normalized. The record is skipped."""


class PersistenceError(GameDropsError):
    """The document store rejected a write. Nothing from the batch was committed."""
