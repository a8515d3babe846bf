"""Result types produced by the format prober."""

import enum
from dataclasses import dataclass


class ContainerFormat(enum.Enum):
    """Container formats the prober can recognise, valued by display label."""
    PE = "Windows PE"
    MACHO = "macOS Mach-O"
    FAT_MACHO = "macOS Universal Binary"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class SignaturePresence:
    """Outcome of a signature check for one file."""
    format: ContainerFormat
    signed: bool
    architectures: tuple = ()  # slice names, fat binaries only
