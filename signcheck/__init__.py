"""
signcheck - Detect embedded code signatures in native executables

signcheck reports whether a Windows PE, macOS Mach-O or macOS universal
(fat) binary carries a code-signing artifact. It checks for the presence of
the signature record only; it does not validate certificates or trust chains.

License: MIT
"""

from .models import ContainerFormat, SignaturePresence
from .probe import check_signature, probe
from .macho import MachO, UniversalMachO
from .errors import (
    SignCheckError,
    FormatMismatchError,
    MalformedContainerError,
    LimitExceededError,
    UnsupportedFormatError,
)

__version__ = "2026.10.19"
__license__ = "MIT"

__all__ = [
    "ContainerFormat",
    "SignaturePresence",
    "check_signature",
    "probe",
    "MachO",
    "UniversalMachO",
    "SignCheckError",
    "FormatMismatchError",
    "MalformedContainerError",
    "LimitExceededError",
    "UnsupportedFormatError",
]
