"""Dump Report Analyzer package.

Builds a structured diagnostic report from a frozen snapshot of a process:
- Dump identity and loaded modules
- Unhandled managed exception with its inner-exception chain
- Unified native/managed thread stacks
- Lock and wait graph for hang analysis
- Memory usage summary and top managed heap consumers by type
"""
from .snapshot import (
    DumpSnapshot,
    ManagedHeap,
    HeapObject,
    HeapType,
    HeapSegment,
    SnapshotThread,
    BlockingObject,
    BlockingReason,
    LiveException,
    ModuleImage,
    VirtualMemoryRegion,
    TargetType,
    SnapshotError,
)
from .stack_walker import (
    StackWalker,
    InMemoryStackWalker,
    StackWalkerUnavailable,
    UnifiedStackFrame,
    temporary_stack_walker,
)
from .report import (
    AnalysisResult,
    ComponentFailure,
    ReportDocument,
    ReportOrchestrator,
    DEFAULT_COMPONENTS,
)
from .serializer import report_to_dict, report_to_json, write_report

__all__ = [
    # Snapshot contract
    "DumpSnapshot",
    "ManagedHeap",
    "HeapObject",
    "HeapType",
    "HeapSegment",
    "SnapshotThread",
    "BlockingObject",
    "BlockingReason",
    "LiveException",
    "ModuleImage",
    "VirtualMemoryRegion",
    "TargetType",
    "SnapshotError",
    # Stack walking
    "StackWalker",
    "InMemoryStackWalker",
    "StackWalkerUnavailable",
    "UnifiedStackFrame",
    "temporary_stack_walker",
    # Report
    "AnalysisResult",
    "ComponentFailure",
    "ReportDocument",
    "ReportOrchestrator",
    "DEFAULT_COMPONENTS",
    # Output
    "report_to_dict",
    "report_to_json",
    "write_report",
]

__version__ = "1.0.0"
