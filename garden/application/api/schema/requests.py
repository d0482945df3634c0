from typing import List, Union
from pydantic import BaseModel, ConfigDict, Field
import structlog

from garden.domain.models.errors import InvalidInputError

logger = structlog.get_logger(__name__)


class SetGardenRequest(BaseModel):
    """Body of a batch placement request"""
    model_config = ConfigDict(populate_by_name=True)

    object_ids: List[Union[int, str]] = Field(alias="objectIds")
    clear_first: bool = Field(default=False, alias="clearFirst")


def normalize_object_ids(object_ids: List[Union[int, str]], max_capacity: int) -> List[str]:
    """
    Validate a batch of ids and drop repeats, keeping first occurrences.

    Raises:
        InvalidInputError: when the batch is empty or larger than the garden
    """

    if not object_ids:
        raise InvalidInputError("objectIds array cannot be empty")

    if len(object_ids) > max_capacity:
        raise InvalidInputError(
            f"objectIds array cannot contain more than {max_capacity} objects "
            f"(received {len(object_ids)})"
        )

    unique_ids = list(dict.fromkeys(str(object_id).strip() for object_id in object_ids))

    duplicates = len(object_ids) - len(unique_ids)
    if duplicates:
        logger.info("Removed duplicate ids from batch", duplicates=duplicates, unique=len(unique_ids))

    return unique_ids
