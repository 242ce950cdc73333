# services/errors.py
from typing import Optional


class ImageSetError(Exception):
    """Base class for everything the image functions raise on purpose."""


class InvalidInput(ImageSetError): ...
class NotFound(ImageSetError): ...
class StoreUnavailable(ImageSetError): ...


class CorruptImageSet(ImageSetError):
    """Listing shows duplicate sequences or orphaned staging keys; run repair first."""


class EntityBusy(ImageSetError):
    """Another mutation for the same entity is still running in this worker."""


class StoreIOError(ImageSetError):
    def __init__(self, operation: str, key: str, cause: Optional[object] = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{operation} failed for '{key}'{detail}")


class PartialRenumber(StoreIOError):
    """
    A staging or promotion step failed after other objects were already moved.
    The set is left as-is; `repair` brings it back to 1..N.
    """
    def __init__(self, entity_id: str, phase: str, completed: int, error: StoreIOError):
        self.entity_id = entity_id
        self.phase = phase
        self.completed = completed
        super().__init__(error.operation, error.key, error.cause)
        self.args = (
            f"renumber of '{entity_id}' aborted in phase {phase} after {completed} step(s): {error}",
        )
