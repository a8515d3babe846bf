import struct

import pytest

from signcheck.errors import FormatMismatchError, LimitExceededError, MalformedContainerError
from signcheck.macho import MAX_FAT_ARCHES, MachO, UniversalMachO, check_fat_macho_signature
from signcheck.models import ContainerFormat

from builders import (
    CPU_SUBTYPE_ARM64_ALL,
    CPU_TYPE_ARM64,
    CPU_TYPE_X86_64,
    arm64_slice,
    build_fat,
    build_macho,
    code_signature_command,
    segment_64,
    uuid_command,
    x86_64_slice,
)


UNSIGNED = [segment_64("<"), uuid_command("<")]
SIGNED = [segment_64("<"), segment_64("<", b"__LINKEDIT"), code_signature_command("<")]


@pytest.mark.parametrize("first, second, signed", [
    (UNSIGNED, UNSIGNED, False),
    (UNSIGNED, SIGNED, True),
    (SIGNED, UNSIGNED, True),
    (SIGNED, SIGNED, True),
])
def test_signed_if_any_slice_signed(first, second, signed):
    fat = UniversalMachO(data=build_fat([x86_64_slice(first), arm64_slice(second)])).parse()
    assert fat.has_code_signature() is signed


def test_architectures_in_order():
    fat = UniversalMachO(data=build_fat([x86_64_slice(UNSIGNED), arm64_slice(SIGNED)])).parse()
    assert fat.get_architectures() == ["x86_64", "arm64"]
    assert fat.architectures[0].offset == 0x1000
    assert fat.architectures[1].offset % 0x1000 == 0
    assert fat.get_macho_for_arch("arm64").has_code_signature() is True
    assert fat.get_macho_for_arch("x86_64").has_code_signature() is False
    assert fat.get_macho_for_arch("ppc") is None


def test_single_slice():
    fat = UniversalMachO(data=build_fat([arm64_slice(SIGNED)])).parse()
    assert fat.get_architectures() == ["arm64"]
    assert fat.has_code_signature() is True


def test_fat_64_header():
    fat = UniversalMachO(data=build_fat([x86_64_slice(UNSIGNED), arm64_slice(SIGNED)], is_64_bit=True)).parse()
    assert fat.is_64_bit is True
    assert fat.get_architectures() == ["x86_64", "arm64"]
    assert fat.has_code_signature() is True


def test_swapped_fat_header():
    fat = UniversalMachO(data=build_fat([x86_64_slice(SIGNED)], swapped=True)).parse()
    assert fat.byte_order == "<"
    assert fat.has_code_signature() is True


def test_stops_at_first_signed_slice(monkeypatch):
    calls = []
    original = MachO.has_code_signature

    def counting(self):
        calls.append(self)
        return original(self)

    monkeypatch.setattr(MachO, "has_code_signature", counting)
    slices = [x86_64_slice(SIGNED), arm64_slice(UNSIGNED)]
    assert UniversalMachO(data=build_fat(slices)).parse().has_code_signature() is True
    assert len(calls) == 1


def test_thin_macho_is_mismatch():
    with pytest.raises(FormatMismatchError):
        UniversalMachO(data=build_macho(SIGNED)).parse()


def test_text_is_mismatch():
    with pytest.raises(FormatMismatchError):
        UniversalMachO(data=b"#!/bin/sh\necho hello\n").parse()


def test_no_images_is_malformed():
    with pytest.raises(MalformedContainerError):
        UniversalMachO(data=struct.pack(">II", 0xCAFEBABE, 0)).parse()


def test_too_many_architectures():
    with pytest.raises(LimitExceededError):
        UniversalMachO(data=struct.pack(">II", 0xCAFEBABE, MAX_FAT_ARCHES + 1)).parse()


def test_truncated_arch_table_is_malformed():
    data = build_fat([x86_64_slice(UNSIGNED)])
    with pytest.raises(MalformedContainerError):
        UniversalMachO(data=data[:16]).parse()


def test_slice_beyond_file_is_malformed():
    data = build_fat([x86_64_slice(UNSIGNED), arm64_slice(SIGNED)])
    with pytest.raises(MalformedContainerError):
        UniversalMachO(data=data[:-100]).parse()


def test_slice_that_is_not_macho_is_malformed():
    data = build_fat([(CPU_TYPE_ARM64, CPU_SUBTYPE_ARM64_ALL, b"not a mach-o image" * 4)])
    with pytest.raises(MalformedContainerError):
        UniversalMachO(data=data).parse()


def test_corrupt_slice_is_malformed():
    corrupt = bytearray(build_macho(SIGNED, cputype=CPU_TYPE_ARM64, cpusubtype=CPU_SUBTYPE_ARM64_ALL))
    struct.pack_into("<I", corrupt, 32 + 4, 2)  # first command declares cmdsize 2
    data = build_fat([x86_64_slice(UNSIGNED), (CPU_TYPE_ARM64, CPU_SUBTYPE_ARM64_ALL, bytes(corrupt))])
    with pytest.raises(MalformedContainerError):
        UniversalMachO(data=data).parse()


def test_mismatched_cpu_type_is_malformed():
    image = build_macho(UNSIGNED, cputype=CPU_TYPE_X86_64)
    with pytest.raises(MalformedContainerError):
        UniversalMachO(data=build_fat([(CPU_TYPE_ARM64, CPU_SUBTYPE_ARM64_ALL, image)])).parse()


def test_duplicate_architecture_is_malformed():
    with pytest.raises(MalformedContainerError):
        UniversalMachO(data=build_fat([arm64_slice(UNSIGNED), arm64_slice(SIGNED)])).parse()


def test_check_fat_macho_signature_from_file(write_binary):
    path = write_binary(build_fat([x86_64_slice(UNSIGNED), arm64_slice(SIGNED)]), "universal")
    result = check_fat_macho_signature(path)
    assert result.format is ContainerFormat.FAT_MACHO
    assert result.signed is True
    assert result.architectures == ("x86_64", "arm64")
