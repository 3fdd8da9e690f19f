"""Minimal Mach-O reader and fat (universal) binary writer.

Only the headers are interpreted: enough to name the architecture of a thin
image, enumerate the slices of a fat file, and lay out a new fat file the way
``lipo -create`` does (big-endian fat header, page-aligned slices).
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Sequence

FAT_MAGIC = 0xCAFEBABE
FAT_MAGIC_64 = 0xCAFEBABF

THIN_MAGICS: dict[bytes, tuple[str, bool]] = {
    b"\xcf\xfa\xed\xfe": ("<", True),
    b"\xce\xfa\xed\xfe": ("<", False),
    b"\xfe\xed\xfa\xcf": (">", True),
    b"\xfe\xed\xfa\xce": (">", False),
}

CPU_ARCH_ABI64 = 0x01000000
CPU_TYPE_X86 = 7
CPU_TYPE_ARM = 12
CPU_TYPE_X86_64 = CPU_TYPE_X86 | CPU_ARCH_ABI64
CPU_TYPE_ARM64 = CPU_TYPE_ARM | CPU_ARCH_ABI64
CPU_SUBTYPE_MASK = 0x00FFFFFF

CPU_SUBTYPE_X86_64_ALL = 3
CPU_SUBTYPE_X86_64_H = 8
CPU_SUBTYPE_ARM64_ALL = 0
CPU_SUBTYPE_ARM64E = 2

# A Java class file shares FAT_MAGIC; real fat files never carry this many slices.
MAX_FAT_ARCHS = 30

FAT_HEADER = struct.Struct(">II")
FAT_ARCH = struct.Struct(">iiIII")
FAT_ARCH_64 = struct.Struct(">iiQQII")

ARCH_CPU_TYPES: dict[str, tuple[int, int]] = {
    "x86_64": (CPU_TYPE_X86_64, CPU_SUBTYPE_X86_64_ALL),
    "x86_64h": (CPU_TYPE_X86_64, CPU_SUBTYPE_X86_64_H),
    "arm64": (CPU_TYPE_ARM64, CPU_SUBTYPE_ARM64_ALL),
    "arm64e": (CPU_TYPE_ARM64, CPU_SUBTYPE_ARM64E),
}


class NotMachO(ValueError):
    """Raised when a file is neither a thin nor a fat Mach-O image."""


@dataclass(frozen=True, slots=True)
class MachOSlice:
    """One architecture image inside a (possibly thin) Mach-O file."""

    architecture: str
    cputype: int
    cpusubtype: int
    offset: int
    size: int
    align: int


def architecture_name(cputype: int, cpusubtype: int) -> str:
    """Map a Mach-O cputype/cpusubtype pair to the lipo architecture name."""

    subtype = cpusubtype & CPU_SUBTYPE_MASK
    if cputype == CPU_TYPE_X86_64:
        return "x86_64h" if subtype == CPU_SUBTYPE_X86_64_H else "x86_64"
    if cputype == CPU_TYPE_ARM64:
        return "arm64e" if subtype == CPU_SUBTYPE_ARM64E else "arm64"
    if cputype == CPU_TYPE_X86:
        return "i386"
    if cputype == CPU_TYPE_ARM:
        return "arm"
    return f"cputype({cputype})"


def default_alignment(cputype: int) -> int:
    """Power-of-two slice alignment lipo picks for a cputype."""

    return 14 if cputype in (CPU_TYPE_ARM64, CPU_TYPE_ARM) else 12


def _read_thin(handle: BinaryIO, magic: bytes, size: int) -> MachOSlice:
    byte_order, _ = THIN_MAGICS[magic]
    header = handle.read(8)
    if len(header) < 8:
        raise NotMachO("truncated Mach-O header")
    cputype, cpusubtype = struct.unpack(f"{byte_order}ii", header)
    return MachOSlice(
        architecture=architecture_name(cputype, cpusubtype),
        cputype=cputype,
        cpusubtype=cpusubtype,
        offset=0,
        size=size,
        align=default_alignment(cputype),
    )


def _read_fat(handle: BinaryIO, magic_value: int) -> list[MachOSlice]:
    count_bytes = handle.read(4)
    if len(count_bytes) < 4:
        raise NotMachO("truncated fat header")
    (count,) = struct.unpack(">I", count_bytes)
    if count == 0 or count > MAX_FAT_ARCHS:
        raise NotMachO(f"implausible fat slice count {count}")

    record = FAT_ARCH_64 if magic_value == FAT_MAGIC_64 else FAT_ARCH
    slices: list[MachOSlice] = []
    for _ in range(count):
        raw = handle.read(record.size)
        if len(raw) < record.size:
            raise NotMachO("truncated fat arch table")
        cputype, cpusubtype, offset, size, align = record.unpack(raw)[:5]
        slices.append(
            MachOSlice(
                architecture=architecture_name(cputype, cpusubtype),
                cputype=cputype,
                cpusubtype=cpusubtype,
                offset=offset,
                size=size,
                align=align,
            )
        )
    return slices


def read_slices(path: Path) -> list[MachOSlice]:
    """Enumerate the architecture slices of a thin or fat Mach-O file."""

    with path.open("rb") as handle:
        magic = handle.read(4)
        if len(magic) < 4:
            raise NotMachO(f"{path} is too small to be a Mach-O file")
        if magic in THIN_MAGICS:
            return [_read_thin(handle, magic, path.stat().st_size)]
        (magic_value,) = struct.unpack(">I", magic)
        if magic_value in (FAT_MAGIC, FAT_MAGIC_64):
            return _read_fat(handle, magic_value)
    raise NotMachO(f"{path} is not a Mach-O file")


def read_architectures(path: Path) -> tuple[str, ...]:
    """Architecture names embedded in a Mach-O file, in slice order."""

    return tuple(item.architecture for item in read_slices(path))


def is_fat(path: Path) -> bool:
    """Whether a file carries a fat header."""

    with path.open("rb") as handle:
        magic = handle.read(4)
    return len(magic) == 4 and struct.unpack(">I", magic)[0] in (FAT_MAGIC, FAT_MAGIC_64)


def _align_up(value: int, align: int) -> int:
    step = 1 << align
    return (value + step - 1) // step * step


def write_fat(inputs: Sequence[Path], output_path: Path) -> tuple[str, ...]:
    """Write a 32-bit-offset fat binary containing each thin input as one slice."""

    images: list[tuple[MachOSlice, bytes]] = []
    for path in inputs:
        slices = read_slices(path)
        if len(slices) != 1 or is_fat(path):
            raise NotMachO(f"{path} is not a thin Mach-O image")
        images.append((slices[0], path.read_bytes()))

    offset = FAT_HEADER.size + FAT_ARCH.size * len(images)
    table: list[bytes] = []
    placements: list[int] = []
    for header, data in images:
        offset = _align_up(offset, header.align)
        placements.append(offset)
        table.append(FAT_ARCH.pack(header.cputype, header.cpusubtype, offset, len(data), header.align))
        offset += len(data)

    with output_path.open("wb") as handle:
        handle.write(FAT_HEADER.pack(FAT_MAGIC, len(images)))
        for entry in table:
            handle.write(entry)
        for placement, (_, data) in zip(placements, images):
            handle.write(b"\x00" * (placement - handle.tell()))
            handle.write(data)
    os.chmod(output_path, 0o755)
    return tuple(header.architecture for header, _ in images)
