"""Universal (multi-architecture) binary assembly."""

from appdist.universal.assembler import LipoMerger, assemble_universal, verify_universal
from appdist.universal.macho import MachOSlice, NotMachO, read_architectures, read_slices, write_fat

__all__ = [
    "LipoMerger",
    "assemble_universal",
    "verify_universal",
    "MachOSlice",
    "NotMachO",
    "read_architectures",
    "read_slices",
    "write_fat",
]
