"""Icon asset conversion for ICNS and ICO containers."""

from appdist.icons.converter import IconOptions, convert_icon, generate_placeholder_icon
from appdist.icons.size_matrix import ICNS_SIZE_MATRIX, ICO_SIZE_MATRIX, size_matrix_for

__all__ = [
    "IconOptions",
    "convert_icon",
    "generate_placeholder_icon",
    "ICNS_SIZE_MATRIX",
    "ICO_SIZE_MATRIX",
    "size_matrix_for",
]
