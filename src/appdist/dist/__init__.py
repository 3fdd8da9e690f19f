"""Distributable artifact producers."""

from appdist.dist.archive import (
    ArchiveOptions,
    AuxiliaryFile,
    archive_file_name,
    produce_portable_archive,
    write_deterministic_zip,
)
from appdist.dist.installer import (
    InstallerOptions,
    locate_inno_compiler,
    produce_installer,
    render_installer_script,
)

__all__ = [
    "ArchiveOptions",
    "AuxiliaryFile",
    "archive_file_name",
    "produce_portable_archive",
    "write_deterministic_zip",
    "InstallerOptions",
    "locate_inno_compiler",
    "produce_installer",
    "render_installer_script",
]
