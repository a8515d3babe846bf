"""PE signature locator.

A PE image is signed when the security (certificate table) slot of its
optional header's data directory is populated. Header parsing is delegated to
pefile; only the DOS and NT signatures are checked here, so that a file which
is clearly not a PE can be told apart from a PE with broken headers.
"""

import logging
import struct
from collections import namedtuple

import pefile

from .errors import FormatMismatchError, MalformedContainerError
from .models import ContainerFormat, SignaturePresence
from .utils import read_file_data

logger = logging.getLogger(__name__)


DOS_MAGIC = b"MZ"
NT_SIGNATURE = b"PE\0\0"
E_LFANEW_OFFSET = 0x3C
DOS_HEADER_SIZE = 0x40

# Optional header magic: 0x10b = PE32 (32-bit), 0x20b = PE32+ (64-bit)
PE32_MAGIC = pefile.OPTIONAL_HEADER_MAGIC_PE
PE32_PLUS_MAGIC = pefile.OPTIONAL_HEADER_MAGIC_PE_PLUS

IMAGE_DIRECTORY_ENTRY_SECURITY = pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_SECURITY"]
MAX_DATA_DIRECTORIES = 16


DataDirectory = namedtuple("DataDirectory", ["virtual_address", "size"])

PEHeader = namedtuple("PEHeader", ["optional_header_magic", "data_directories"])


def _check_magic(data):
    """Raise FormatMismatchError unless data starts with MZ and has a PE signature."""
    if data[:2] != DOS_MAGIC:
        raise FormatMismatchError("DOS Header magic not found")
    if len(data) < DOS_HEADER_SIZE:
        raise FormatMismatchError("Truncated DOS header")

    e_lfanew = struct.unpack_from("<I", data, E_LFANEW_OFFSET)[0]
    if data[e_lfanew:e_lfanew + 4] != NT_SIGNATURE:
        raise FormatMismatchError(f"NT Headers signature not found at 0x{e_lfanew:X}")

def parse_pe(data):
    """Decode the optional header magic and data directories of a PE image."""
    _check_magic(data)

    try:
        pe = pefile.PE(data=data, fast_load=True)
    except pefile.PEFormatError as e:
        raise MalformedContainerError(f"Invalid PE file: {e}")

    try:
        optional_header = getattr(pe, "OPTIONAL_HEADER", None)
        if optional_header is None or optional_header.Magic not in (PE32_MAGIC, PE32_PLUS_MAGIC):
            raise MalformedContainerError("unsupported PE format")

        # pefile zero-pads or drops directory entries cut off by the end of file
        declared = min(optional_header.NumberOfRvaAndSizes & 0x7FFFFFFF, MAX_DATA_DIRECTORIES)
        if len(optional_header.DATA_DIRECTORY) < declared:
            raise MalformedContainerError(
                f"Truncated data directory table: {len(optional_header.DATA_DIRECTORY)} of {declared} entries")
        table_end = optional_header.get_file_offset() + optional_header.sizeof() + 8 * declared
        if table_end > len(data):
            raise MalformedContainerError(
                f"Data directory table extends beyond file (end=0x{table_end:X}, file_size=0x{len(data):X})")

        directories = tuple(
            DataDirectory(entry.VirtualAddress, entry.Size)
            for entry in optional_header.DATA_DIRECTORY
        )
        return PEHeader(optional_header.Magic, directories)
    finally:
        pe.close()

def has_security_directory(header):
    """Return True if the security directory slot is in use.

    A table too short to have the slot is an unsigned image, not an error.
    """
    if len(header.data_directories) <= IMAGE_DIRECTORY_ENTRY_SECURITY:
        logger.debug("Data directory has only %d entries, no security slot", len(header.data_directories))
        return False

    security_dir = header.data_directories[IMAGE_DIRECTORY_ENTRY_SECURITY]
    return security_dir.size > 0 and security_dir.virtual_address > 0

def check_pe_signature(file_path):
    """Check a PE file for a populated security directory."""
    header = parse_pe(read_file_data(file_path))
    return SignaturePresence(ContainerFormat.PE, has_security_directory(header))
