from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Failure categories reported on the command surface"""
    UNKNOWN_OBJECT = "unknown_object"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"


class GardenError(Exception):
    """Base class for recoverable garden errors"""

    code: ErrorCode

    def __init__(self, message: str, object_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.object_id = object_id


class UnknownObjectError(GardenError):
    """Object id has no definition in the catalog"""

    code = ErrorCode.UNKNOWN_OBJECT

    def __init__(self, object_id: str):
        super().__init__(f"Object {object_id} not found in catalog", object_id=object_id)


class ObjectNotFoundError(GardenError):
    """Object id is not currently placed in the garden"""

    code = ErrorCode.NOT_FOUND

    def __init__(self, object_id: str):
        super().__init__(f"Object {object_id} not found in garden", object_id=object_id)


class InvalidInputError(GardenError):
    """Malformed request rejected before reaching the engine"""

    code = ErrorCode.INVALID_INPUT
