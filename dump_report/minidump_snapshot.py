"""Snapshot provider for Windows minidump files.

Reads the module list, memory info list, system info and header flags through
the `minidump` library. There is no managed runtime reader, so snapshots from
this provider carry no managed threads and no managed heap; thread stacks come
from the debugger-backed stack walker when CDB is installed.
"""
from __future__ import annotations

import os
from typing import List, Optional

from minidump.minidumpfile import MinidumpFile

from .cdb_stack_walker import CdbStackWalker
from .snapshot import (
    DumpSnapshot,
    ModuleImage,
    SnapshotError,
    TargetType,
    VirtualMemoryRegion,
)

# MINIDUMP_TYPE flag for dumps that include all accessible memory
MINIDUMP_WITH_FULL_MEMORY = 0x00000002

# PROCESSOR_ARCHITECTURE values -> report architecture names
ARCHITECTURE_NAMES = {
    0: "X86",
    5: "Arm",
    6: "IA64",
    9: "Amd64",
    12: "Arm64",
}


def _int_value(value, default: int = 0) -> int:
    """Integer behind a raw int or an enum member from the minidump library."""
    if value is None:
        return default
    value = getattr(value, 'value', value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def format_file_version(version_info) -> Optional[str]:
    """'major.minor.build.revision' from VS_FIXEDFILEINFO, None if absent."""
    if version_info is None:
        return None
    fv_ms = _int_value(getattr(version_info, 'dwFileVersionMS', None))
    fv_ls = _int_value(getattr(version_info, 'dwFileVersionLS', None))
    if not fv_ms and not fv_ls:
        return None
    major = (fv_ms >> 16) & 0xFFFF
    minor = fv_ms & 0xFFFF
    build = (fv_ls >> 16) & 0xFFFF
    rev = fv_ls & 0xFFFF
    return f"{major}.{minor}.{build}.{rev}"


def _read_modules(md) -> List[ModuleImage]:
    module_list = getattr(md, 'modules', None)
    modules = getattr(module_list, 'modules', None) or []
    result = []
    for module in modules:
        result.append(ModuleImage(
            file_name=str(getattr(module, 'name', '') or ''),
            file_size=_int_value(getattr(module, 'size', None)),
            version=format_file_version(getattr(module, 'versioninfo', None)),
            # The module stream has no CLR header information
            is_managed=False,
            base_address=_int_value(getattr(module, 'baseaddress', None)),
        ))
    return result


def _read_memory_regions(md) -> List[VirtualMemoryRegion]:
    memory_info = getattr(md, 'memory_info', None)
    infos = getattr(memory_info, 'infos', None) or []
    regions = []
    for info in infos:
        regions.append(VirtualMemoryRegion(
            base_address=_int_value(getattr(info, 'BaseAddress', None)),
            region_size=_int_value(getattr(info, 'RegionSize', None)),
            state=_int_value(getattr(info, 'State', None)),
            type=_int_value(getattr(info, 'Type', None)),
            protect=_int_value(getattr(info, 'Protect', None)),
        ))
    regions.sort(key=lambda r: r.base_address)
    return regions


def _read_architecture(md) -> str:
    sysinfo = getattr(md, 'sysinfo', None)
    arch = getattr(sysinfo, 'ProcessorArchitecture', None)
    return ARCHITECTURE_NAMES.get(_int_value(arch, default=-1), "Unknown")


def _read_target_type(md) -> TargetType:
    header = getattr(md, 'header', None)
    flags = _int_value(getattr(header, 'Flags', None))
    if flags & MINIDUMP_WITH_FULL_MEMORY:
        return TargetType.DUMP_FILE
    return TargetType.DUMP_FILE_NO_HEAP


def snapshot_from_minidump(md, dump_path: str, use_debugger: bool = True) -> DumpSnapshot:
    """Build a DumpSnapshot from a parsed MinidumpFile."""
    return DumpSnapshot(
        dump_file=dump_path,
        target_type=_read_target_type(md),
        modules=_read_modules(md),
        memory_regions=_read_memory_regions(md),
        architecture=_read_architecture(md),
        stack_walker_factory=CdbStackWalker if use_debugger else None,
    )


def open_minidump_snapshot(dump_path: str, use_debugger: bool = True) -> DumpSnapshot:
    """Open a minidump file as a snapshot.

    Raises:
        SnapshotError: the file is missing or is not a readable minidump.
    """
    if not os.path.exists(dump_path):
        raise SnapshotError(f"Dump file not found: {dump_path}")

    try:
        md = MinidumpFile.parse(dump_path)
    except Exception as e:
        raise SnapshotError(f"Failed to parse minidump {dump_path}: {e}") from e

    return snapshot_from_minidump(md, dump_path, use_debugger=use_debugger)
