"""Format prober: pick the container format of a file and check it.

Formats are tried in a fixed order, PE, then Mach-O, then universal Mach-O,
and the first one that parses wins. A file whose magic does not match a
format simply moves on to the next one. A file whose magic matches but whose
structure is broken also moves on by default; with strict=True it is an error.
"""

import logging

from .errors import FormatMismatchError, MalformedContainerError, UnsupportedFormatError
from .macho import check_fat_macho_signature, check_macho_signature
from .models import ContainerFormat
from .pe import check_pe_signature
from .utils import validate_file_path

logger = logging.getLogger(__name__)


PROBES = (
    (ContainerFormat.PE, check_pe_signature),
    (ContainerFormat.MACHO, check_macho_signature),
    (ContainerFormat.FAT_MACHO, check_fat_macho_signature),
)


def probe(file_path, strict=False, probes=PROBES):
    """Classify file_path with the first matching format and report its signature."""
    for container_format, attempt in probes:
        try:
            result = attempt(file_path)
        except FormatMismatchError as e:
            logger.debug("%s is not %s: %s", file_path, container_format.value, e)
            continue
        except MalformedContainerError as e:
            if strict:
                raise
            logger.warning("Malformed %s in %s, trying next format: %s", container_format.value, file_path, e)
            continue

        logger.debug("%s parsed as %s (signed=%s)", file_path, container_format.value, result.signed)
        return result

    raise UnsupportedFormatError()

def check_signature(file_path, strict=False):
    """Validate the path, then probe it."""
    return probe(validate_file_path(file_path), strict=strict)
