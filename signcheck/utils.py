"""Low-level helpers shared by the PE and Mach-O locators."""

import os
import struct

from .errors import LimitExceededError, MalformedContainerError


# === SAFETY CONSTANTS ===
MAX_FILE_SIZE = 1024 * 1024 * 1024  # 1GB limit


def validate_file_path(file_path):
    """Validate file path and return absolute path."""
    if not file_path:
        raise ValueError("File path cannot be empty")

    abs_path = os.path.abspath(file_path)
    if not os.path.exists(abs_path):
        raise FileNotFoundError(f"File not found: {abs_path}")
    if os.path.isdir(abs_path):
        raise IsADirectoryError(f"Not a file: {abs_path}")

    return abs_path

def read_file_data(file_path):
    """Read a whole file into memory, enforcing the size limit.

    The handle is scoped to this call so that every format attempt releases
    it before the next one starts.
    """
    with open(file_path, "rb") as fh:
        file_size = os.fstat(fh.fileno()).st_size
        if file_size > MAX_FILE_SIZE:
            raise LimitExceededError(f"File too large: {file_size} bytes (limit: {MAX_FILE_SIZE})")
        return fh.read()

def safe_unpack(fmt, data, offset=0, data_name="data"):
    """Unpack struct data from a buffer with bounds checking."""
    size = struct.calcsize(fmt)
    if offset < 0 or offset + size > len(data):
        available = max(0, len(data) - offset)
        raise MalformedContainerError(f"Insufficient {data_name}: expected {size} bytes, got {available}")
    try:
        return struct.unpack_from(fmt, data, offset)
    except struct.error as e:
        raise MalformedContainerError(f"Failed to parse {data_name}: {e}")

def validate_offset_and_size(offset, size, file_size, data_name="data"):
    """Validate that offset and size are within file bounds."""
    if offset < 0 or size < 0:
        raise MalformedContainerError(f"Invalid {data_name}: negative offset or size")

    if offset + size > file_size:
        raise MalformedContainerError(f"Invalid {data_name}: extends beyond file (offset={offset}, size={size}, file_size={file_size})")
