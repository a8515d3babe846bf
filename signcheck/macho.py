"""Mach-O and universal (fat) Mach-O signature locator.

A single-architecture Mach-O is signed when its load-command list holds an
LC_CODE_SIGNATURE command. A universal binary is signed when at least one of
its architecture slices is.

The basic structures and constants are taken from the Mach-O header files
(loader.h and fat.h) from the xnu kernel source code.

Reference/Documentation links:
- https://opensource.apple.com/source/xnu/xnu-2050.18.24/EXTERNAL_HEADERS/mach-o/loader.h
- https://opensource.apple.com/source/xnu/xnu-2050.18.24/EXTERNAL_HEADERS/mach-o/fat.h
- https://github.com/aidansteele/osx-abi-macho-file-format-reference
"""

import logging
import struct
from collections import namedtuple

from .errors import FormatMismatchError, LimitExceededError, MalformedContainerError
from .models import ContainerFormat, SignaturePresence
from .utils import read_file_data, safe_unpack, validate_offset_and_size

logger = logging.getLogger(__name__)


# === SAFETY CONSTANTS ===
MAX_LOAD_COMMANDS = 10000  # Reasonable upper limit for load commands
MAX_FAT_ARCHES = 50  # Reasonable upper limit for architecture slices


def two_way_dict(pairs):
    return dict([(e[1], e[0]) for e in pairs] + pairs)


# === MACH-O CONSTANTS ===
# Mach-O header formats
MACHO_HEADER_FORMAT_32 = "IiiIIII"
MACHO_HEADER_FORMAT_64 = "IiiIIIII"
LOAD_COMMAND_FORMAT = "II"

# Universal binary formats, fat headers are big endian on disk
FAT_HEADER_FORMAT = "II"
FAT_ARCH_FORMAT = "IIIII"
FAT_ARCH_64_FORMAT = "IIQQII"

# Magic values as read big endian from the first four bytes
MH_MAGIC = 0xFEEDFACE  # 32-bit, big endian file
MH_CIGAM = 0xCEFAEDFE  # 32-bit, little endian file
MH_MAGIC_64 = 0xFEEDFACF  # 64-bit, big endian file
MH_CIGAM_64 = 0xCFFAEDFE  # 64-bit, little endian file

# magic -> (struct byte order, is_64_bit)
MAGIC_MAP = {
    MH_MAGIC: (">", False),
    MH_CIGAM: ("<", False),
    MH_MAGIC_64: (">", True),
    MH_CIGAM_64: ("<", True),
}

FAT_MAGIC = 0xCAFEBABE
FAT_CIGAM = 0xBEBAFECA
FAT_MAGIC_64 = 0xCAFEBABF
FAT_CIGAM_64 = 0xBFBAFECA

FAT_MAGIC_MAP = {
    FAT_MAGIC: (">", False),
    FAT_CIGAM: ("<", False),
    FAT_MAGIC_64: (">", True),
    FAT_CIGAM_64: ("<", True),
}

# CPU types and names
CPU_SUBTYPE_MASK = 0xFF000000  # mask for feature flags

CPU_TYPE_X86 = 0x7
CPU_TYPE_X86_64 = 0x1000007
CPU_TYPE_ARM = 0xC
CPU_TYPE_ARM64 = 0x100000C
CPU_TYPE_ARM64_32 = 0x200000C
CPU_TYPE_PPC = 0x12
CPU_TYPE_PPC64 = 0x1000012

CPU_TYPE_MAP = {
    CPU_TYPE_X86: "i386",
    CPU_TYPE_X86_64: "x86_64",
    CPU_TYPE_ARM: "arm",
    CPU_TYPE_ARM64: "arm64",
    CPU_TYPE_ARM64_32: "arm64_32",
    CPU_TYPE_PPC: "ppc",
    CPU_TYPE_PPC64: "ppc64",
}

CPU_SUBTYPE_X86_64_H = 0x8
CPU_SUBTYPE_ARM64E = 0x2

# Load commands that matter here, plus a few common ones for log messages
load_command_types = [
    ("LC_SEGMENT", 0x1),
    ("LC_SYMTAB", 0x2),
    ("LC_UNIXTHREAD", 0x5),
    ("LC_DYSYMTAB", 0xB),
    ("LC_LOAD_DYLIB", 0xC),
    ("LC_ID_DYLIB", 0xD),
    ("LC_LOAD_DYLINKER", 0xE),
    ("LC_SEGMENT_64", 0x19),
    ("LC_UUID", 0x1B),
    ("LC_CODE_SIGNATURE", 0x1D),
    ("LC_FUNCTION_STARTS", 0x26),
    ("LC_DATA_IN_CODE", 0x29),
    ("LC_SOURCE_VERSION", 0x2A),
    ("LC_BUILD_VERSION", 0x32),
]

LOAD_COMMAND_TYPES = two_way_dict(load_command_types)

LC_CODE_SIGNATURE = LOAD_COMMAND_TYPES["LC_CODE_SIGNATURE"]


LoadCommand = namedtuple("LoadCommand", ["cmd", "cmdsize", "payload"])

FatArch = namedtuple("FatArch", ["cputype", "cpusubtype", "offset", "size", "align", "name", "macho"])


def get_arch_name(cputype, cpusubtype):
    """Get architecture name from CPU type and subtype."""
    base_name = CPU_TYPE_MAP.get(cputype, f"cpu_{cputype:#x}")

    # Mask off high bits that may be set for certain subtypes
    clean_subtype = cpusubtype & ~CPU_SUBTYPE_MASK & 0xFFFFFFFF

    if cputype == CPU_TYPE_ARM64 and clean_subtype == CPU_SUBTYPE_ARM64E:
        return "arm64e"
    if cputype == CPU_TYPE_X86_64 and clean_subtype == CPU_SUBTYPE_X86_64_H:
        return "x86_64h"

    return base_name

def format_load_command(cmd):
    return LOAD_COMMAND_TYPES.get(cmd, f"0x{cmd:X}")


class MachO:
    """A single-architecture Mach-O image: its header and load commands.

    Construct with either a file path or raw bytes, then call parse().
    """

    def __init__(self, file_path=None, data=None):
        if file_path is None and data is None:
            raise ValueError("Must supply either file_path or data")
        elif file_path is not None:
            self.file_path = file_path
            self.data = read_file_data(file_path)
        else:
            self.file_path = None
            self.data = data

        self.magic = None
        self.byte_order = None
        self.is_64_bit = None
        self.header = {}
        self.load_commands = []

    def _get_header_info(self):
        """Identify the magic number, byte order and word width."""
        if len(self.data) < 4:
            raise FormatMismatchError("File too small for magic number")

        magic = struct.unpack(">I", self.data[:4])[0]
        if magic in FAT_MAGIC_MAP:
            raise FormatMismatchError("Universal binary, not a single-architecture Mach-O")
        if magic not in MAGIC_MAP:
            raise FormatMismatchError(f"Unknown Mach-O magic 0x{magic:08X}")

        byte_order, is_64_bit = MAGIC_MAP[magic]
        return magic, byte_order, is_64_bit

    def parse(self):
        """Parse the header and the full load-command list."""
        self.magic, self.byte_order, self.is_64_bit = self._get_header_info()
        self.header = self.get_macho_header()
        self.load_commands = self.parse_all_load_commands()
        return self

    @property
    def header_size(self):
        return 32 if self.is_64_bit else 28

    def get_macho_header(self):
        """Decode the mach_header or mach_header_64 structure."""
        header_format = MACHO_HEADER_FORMAT_64 if self.is_64_bit else MACHO_HEADER_FORMAT_32
        header = safe_unpack(self.byte_order + header_format, self.data, 0, "Mach-O header")

        # Return values for mach-o header are all unsigned
        return {
            "magic": header[0] & 0xFFFFFFFF,
            "cputype": header[1] & 0xFFFFFFFF,
            "cpusubtype": header[2] & 0xFFFFFFFF,
            "filetype": header[3],
            "ncmds": header[4],
            "sizeofcmds": header[5],
            "flags": header[6] & 0xFFFFFFFF,
        }

    def parse_all_load_commands(self):
        """Walk the load-command block, one command per declared cmdsize.

        Any command that is truncated, smaller than its own 8-byte header, or
        that overruns the sizeofcmds block makes the image malformed.
        """
        ncmds = self.header["ncmds"]
        sizeofcmds = self.header["sizeofcmds"]

        if ncmds > MAX_LOAD_COMMANDS:
            raise LimitExceededError(f"Too many load commands: {ncmds}")

        validate_offset_and_size(self.header_size, sizeofcmds, len(self.data), "load command block")
        block = self.data[self.header_size:self.header_size + sizeofcmds]

        load_commands = []
        offset = 0
        for cmd_index in range(ncmds):
            cmd, cmdsize = safe_unpack(self.byte_order + LOAD_COMMAND_FORMAT, block, offset,
                                       f"load command {cmd_index} header")
            if cmdsize < 8:
                raise MalformedContainerError(f"Load command {cmd_index} has invalid size {cmdsize}")
            if offset + cmdsize > len(block):
                raise MalformedContainerError(
                    f"Load command {cmd_index} extends beyond load command block "
                    f"(offset={offset}, cmdsize={cmdsize}, sizeofcmds={sizeofcmds})")

            load_commands.append(LoadCommand(cmd, cmdsize, block[offset:offset + cmdsize]))
            offset += cmdsize

        return load_commands

    def has_code_signature(self):
        """Return True if any load command is LC_CODE_SIGNATURE."""
        for load_command in self.load_commands:
            if load_command.cmd == LC_CODE_SIGNATURE:
                logger.debug("Found %s (cmdsize=%d)", format_load_command(load_command.cmd), load_command.cmdsize)
                return True
        return False


class UniversalMachO:
    """A Universal/FAT Mach-O binary: an ordered list of architecture slices."""

    def __init__(self, file_path=None, data=None):
        if file_path is None and data is None:
            raise ValueError("Must supply either file_path or data")
        elif file_path is not None:
            self.file_path = file_path
            self.data = read_file_data(file_path)
        else:
            self.file_path = None
            self.data = data

        self.byte_order = None
        self.is_64_bit = None
        self.architectures = []

    def _get_fat_header_info(self):
        if len(self.data) < 4:
            raise FormatMismatchError("File too small for magic number")

        magic = struct.unpack(">I", self.data[:4])[0]
        if magic in MAGIC_MAP:
            raise FormatMismatchError("Single-architecture Mach-O, not a universal binary")
        if magic not in FAT_MAGIC_MAP:
            raise FormatMismatchError(f"Unknown universal binary magic 0x{magic:08X}")

        return FAT_MAGIC_MAP[magic]

    def parse(self):
        """Parse the fat header and every architecture slice it lists."""
        self.byte_order, self.is_64_bit = self._get_fat_header_info()

        _, nfat_arch = safe_unpack(self.byte_order + FAT_HEADER_FORMAT, self.data, 0, "fat header")
        if nfat_arch == 0:
            raise MalformedContainerError("Universal binary contains no images")
        if nfat_arch > MAX_FAT_ARCHES:
            raise LimitExceededError(f"Too many architectures in FAT binary: {nfat_arch}")

        arch_format = self.byte_order + (FAT_ARCH_64_FORMAT if self.is_64_bit else FAT_ARCH_FORMAT)
        arch_entry_size = struct.calcsize(arch_format)

        architectures = []
        seen = set()
        for i in range(nfat_arch):
            entry = safe_unpack(arch_format, self.data, 8 + i * arch_entry_size, f"FAT arch entry {i}")
            cputype, cpusubtype, offset, size, align = entry[:5]

            validate_offset_and_size(offset, size, len(self.data), f"architecture {i}")

            if (cputype, cpusubtype) in seen:
                raise MalformedContainerError(f"Duplicate architecture in FAT binary: entry {i}")
            seen.add((cputype, cpusubtype))

            arch_name = get_arch_name(cputype, cpusubtype)
            macho = MachO(data=self.data[offset:offset + size])
            macho.file_path = self.file_path
            try:
                macho.parse()
            except FormatMismatchError as e:
                raise MalformedContainerError(f"Architecture {arch_name} is not a Mach-O image: {e}")

            if macho.header["cputype"] != cputype:
                raise MalformedContainerError(
                    f"Architecture {arch_name} has mismatched CPU type 0x{macho.header['cputype']:X}")

            architectures.append(FatArch(cputype, cpusubtype, offset, size, align, arch_name, macho))

        self.architectures = architectures
        return self

    def get_architectures(self):
        """Get list of architecture names in this binary."""
        return [arch.name for arch in self.architectures]

    def get_macho_for_arch(self, arch_name):
        """Get MachO instance for specific architecture."""
        for arch in self.architectures:
            if arch.name == arch_name:
                return arch.macho
        return None

    def has_code_signature(self):
        """Return True if at least one architecture slice is signed."""
        for arch in self.architectures:
            if arch.macho.has_code_signature():
                logger.debug("Architecture %s carries a code signature", arch.name)
                return True
        return False


def check_macho_signature(file_path):
    """Check a single-architecture Mach-O file for LC_CODE_SIGNATURE."""
    macho = MachO(file_path=file_path).parse()
    return SignaturePresence(ContainerFormat.MACHO, macho.has_code_signature())

def check_fat_macho_signature(file_path):
    """Check a universal binary, signed if any slice is signed."""
    fat = UniversalMachO(file_path=file_path).parse()
    return SignaturePresence(ContainerFormat.FAT_MACHO, fat.has_code_signature(),
                             tuple(fat.get_architectures()))
