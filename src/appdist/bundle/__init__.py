"""Application container assembly."""

from appdist.bundle.metadata import info_plist_payload, windows_info_payload
from appdist.bundle.packager import ContainerLayout, container_layout, container_root, package_container

__all__ = [
    "info_plist_payload",
    "windows_info_payload",
    "ContainerLayout",
    "container_layout",
    "container_root",
    "package_container",
]
