"""
Module for choosing the part size of a multipart upload.
"""
from .config import ClientConfig, MAX_PARTS_COUNT, MIB
from .errors import InvalidArgument

PART_SIZE_STEP = 16 * MIB


def calculate_part_size(total_size: int, config: ClientConfig) -> int:
    """Pick a part size that keeps the upload within the part count limit.

    An explicitly configured part size is returned as is. Otherwise the
    default part size grows in 16 MiB steps (64, 80, 96 MiB, ...) until
    10000 parts can hold the whole object.

    Args:
        total_size: Size of the object in bytes
        config: Client configuration

    Returns:
        Part size in bytes

    Raises:
        InvalidArgument: If the size is negative or above the maximum object size
    """
    if not isinstance(total_size, int) or isinstance(total_size, bool):
        raise InvalidArgument(f"size should be an integer, got {type(total_size).__name__}")
    if total_size < 0:
        raise InvalidArgument(f"size cannot be negative, given size: {total_size}")
    if total_size > config.max_object_size:
        raise InvalidArgument(f"size should not be more than {config.max_object_size}")

    if config.part_size_overridden:
        return config.part_size

    part_size = config.effective_part_size
    while part_size * MAX_PARTS_COUNT <= total_size:
        part_size += PART_SIZE_STEP
    return part_size
