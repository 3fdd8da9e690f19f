"""Serialize metadata descriptors into each platform's metadata slot."""

from __future__ import annotations

import json
import plistlib
from typing import Any

from appdist.models import MetadataDescriptor

MACOS_ICON_FILE = "AppIcon.icns"
PKG_INFO_CONTENT = b"APPL????"


def info_plist_payload(metadata: MetadataDescriptor, *, has_icon: bool) -> dict[str, Any]:
    """Info.plist keys for a macOS application bundle."""

    payload: dict[str, Any] = {
        "CFBundleDevelopmentRegion": "en",
        "CFBundleDisplayName": metadata.name,
        "CFBundleExecutable": metadata.executable_name,
        "CFBundleIdentifier": metadata.bundle_identifier,
        "CFBundleInfoDictionaryVersion": "6.0",
        "CFBundleName": metadata.name,
        "CFBundlePackageType": "APPL",
        "CFBundleShortVersionString": metadata.version,
        "CFBundleVersion": metadata.version,
        "LSMinimumSystemVersion": metadata.min_os_version,
        "NSHighResolutionCapable": True,
    }
    if has_icon:
        payload["CFBundleIconFile"] = MACOS_ICON_FILE
    if metadata.copyright:
        payload["NSHumanReadableCopyright"] = metadata.copyright
    payload.update(metadata.extra)
    return payload


def render_info_plist(metadata: MetadataDescriptor, *, has_icon: bool) -> bytes:
    return plistlib.dumps(info_plist_payload(metadata, has_icon=has_icon), fmt=plistlib.FMT_XML, sort_keys=True)


def windows_info_payload(metadata: MetadataDescriptor, *, icon_name: str | None) -> dict[str, Any]:
    """Descriptor written beside the Windows executable."""

    payload: dict[str, Any] = {
        "name": metadata.name,
        "bundle_identifier": metadata.bundle_identifier,
        "version": metadata.version,
        "min_os_version": metadata.min_os_version,
        "executable": metadata.executable_name,
        "publisher": metadata.publisher,
        "icon": icon_name,
    }
    if metadata.copyright:
        payload["copyright"] = metadata.copyright
    if metadata.extra:
        payload["extra"] = dict(metadata.extra)
    return payload


def render_windows_info(metadata: MetadataDescriptor, *, icon_name: str | None) -> bytes:
    text = json.dumps(windows_info_payload(metadata, icon_name=icon_name), indent=2, sort_keys=True) + "\n"
    return text.encode("utf-8")
