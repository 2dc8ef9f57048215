"""Report components.

Each component is an independent analysis over the snapshot. generate()
returns True when the component produced content for the report and False
when its analysis does not apply to this snapshot; the orchestrator omits the
latter without treating it as an error.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .exception_chain import ExceptionInfo, find_thread_with_exception, walk_exception_chain
from .lock_graph import ThreadInfo, build_lock_graph
from .snapshot import (
    MEM_COMMIT,
    MEM_PRIVATE,
    DumpSnapshot,
    TargetType,
)
from .stack_traces import StackTrace, unify_stack_traces
from .stack_walker import StackWalkerUnavailable, temporary_stack_walker
from .statistics import top_statistics


def _base_name(path: str) -> str:
    # Dump paths are usually Windows paths, also when read on another OS
    return os.path.basename(path.replace('\\', '/'))


class ReportComponent:
    """Base class for report components."""

    TITLE = ""

    @property
    def title(self) -> str:
        return self.TITLE

    def generate(self, snapshot: DumpSnapshot) -> bool:
        raise NotImplementedError


@dataclass
class DumpInformationComponent(ReportComponent):
    dump_type: str = ""

    _dump_file_name = ""

    @property
    def title(self) -> str:
        return self._dump_file_name

    def generate(self, snapshot: DumpSnapshot) -> bool:
        self._dump_file_name = _base_name(snapshot.dump_file)
        if snapshot.target_type == TargetType.DUMP_FILE:
            self.dump_type = "Full memory dump with heap"
        elif snapshot.target_type == TargetType.DUMP_FILE_NO_HEAP:
            self.dump_type = "Mini dump with no heap"
        else:
            self.dump_type = "Unsupported dump file type"
        return True


class RecommendationsComponent(ReportComponent):
    TITLE = "Issues and next steps"

    def generate(self, snapshot: DumpSnapshot) -> bool:
        return False


@dataclass
class UnhandledExceptionComponent(ReportComponent):
    TITLE = "The process encountered an unhandled exception"

    exception: Optional[ExceptionInfo] = None
    os_thread_id: int = 0
    managed_thread_id: int = 0
    thread_name: str = ""

    def generate(self, snapshot: DumpSnapshot) -> bool:
        thread = find_thread_with_exception(snapshot.threads)
        if thread is None:
            return False

        self.os_thread_id = thread.os_thread_id
        self.managed_thread_id = thread.managed_thread_id
        # Thread names are not captured; the special role is the best label
        self.thread_name = thread.description
        self.exception = walk_exception_chain(thread.current_exception)
        return True


@dataclass
class LoadedModule:
    name: str
    size: int
    path: str
    version: Optional[str] = None
    is_managed: bool = False


@dataclass
class LoadedModulesComponent(ReportComponent):
    TITLE = "Loaded modules"

    modules: List[LoadedModule] = field(default_factory=list)

    def generate(self, snapshot: DumpSnapshot) -> bool:
        for module in snapshot.modules:
            self.modules.append(LoadedModule(
                name=_base_name(module.file_name),
                size=module.file_size,
                path=module.file_name,
                version=module.version,
                is_managed=module.is_managed,
            ))
        return True


@dataclass
class ThreadStacksComponent(ReportComponent):
    TITLE = "Thread stacks"

    stacks: List[StackTrace] = field(default_factory=list)

    def generate(self, snapshot: DumpSnapshot) -> bool:
        try:
            with temporary_stack_walker(snapshot) as walker:
                self.stacks.extend(unify_stack_traces(walker))
        except StackWalkerUnavailable:
            return False
        return True


@dataclass
class LocksAndWaitsComponent(ReportComponent):
    TITLE = "Locks and waits"

    threads: List[ThreadInfo] = field(default_factory=list)

    def generate(self, snapshot: DumpSnapshot) -> bool:
        heap = snapshot.heap if snapshot.has_heap else None
        self.threads.extend(build_lock_graph(snapshot.threads, heap))
        return bool(self.threads)


@dataclass
class MemoryUsageComponent(ReportComponent):
    TITLE = "Memory usage"

    architecture: str = ""
    address_space_size: int = 0
    virtual_size: int = 0
    free_size: int = 0
    largest_free_block_size: int = 0
    commit_size: int = 0
    working_set_size: int = 0
    private_size: int = 0
    managed_heap_size: int = 0
    managed_heap_committed_size: int = 0
    managed_heap_reserved_size: int = 0
    generation0_size: int = 0
    generation1_size: int = 0
    generation2_size: int = 0
    large_object_heap_size: int = 0
    stacks_size: int = 0
    win32_heap_size: int = 0
    modules_size: int = 0

    def generate(self, snapshot: DumpSnapshot) -> bool:
        if snapshot.target_type == TargetType.DUMP_FILE_NO_HEAP:
            return False

        self.architecture = snapshot.architecture
        regions = snapshot.memory_regions
        if regions:
            self.address_space_size = max(r.end_address for r in regions)
        self.virtual_size = sum(r.region_size for r in regions if not r.is_free)
        self.free_size = self.address_space_size - self.virtual_size
        self.largest_free_block_size = max(
            (r.region_size for r in regions if r.is_free), default=0
        )
        self.commit_size = sum(r.region_size for r in regions if r.state & MEM_COMMIT)
        self.private_size = sum(r.region_size for r in regions if r.type & MEM_PRIVATE)

        heap = snapshot.heap
        if heap is not None:
            self.managed_heap_size = heap.total_heap_size
            self.managed_heap_committed_size = sum(
                s.committed_end - s.start for s in heap.segments
            )
            self.managed_heap_reserved_size = sum(
                s.reserved_end - s.start for s in heap.segments
            )
            self.generation0_size = heap.get_size_by_gen(0)
            self.generation1_size = heap.get_size_by_gen(1)
            self.generation2_size = heap.get_size_by_gen(2)
            self.large_object_heap_size = heap.get_size_by_gen(3)

        self.stacks_size = self._get_stacks_size(snapshot)
        self.win32_heap_size = self._get_win32_heap_size(snapshot)
        self.modules_size = sum(m.file_size for m in snapshot.modules)
        return True

    def _get_win32_heap_size(self, snapshot: DumpSnapshot) -> int:
        # Not implemented: would need the PEB heap list and HEAP_COUNTERS
        return 0

    def _get_stacks_size(self, snapshot: DumpSnapshot) -> int:
        # Not implemented: would need StackBase - StackLimit from every TEB
        return 0


@dataclass
class TypeInfo:
    type: str
    count: int
    size: int
    average_size: float
    minimum_size: int
    maximum_size: int


@dataclass
class TopMemoryConsumersComponent(ReportComponent):
    TITLE = "Top .NET memory consumers"
    TOP_CONSUMERS_LIMIT = 100

    top_consumers: List[TypeInfo] = field(default_factory=list)

    def _object_sizes(self, heap):
        for address in heap.enumerate_object_addresses():
            heap_type = heap.get_object_type(address)
            if heap_type is None or heap_type.is_free:
                continue
            yield heap_type.name, heap.get_object_size(address)

    def generate(self, snapshot: DumpSnapshot) -> bool:
        if not snapshot.has_heap:
            return False

        for group in top_statistics(self._object_sizes(snapshot.heap),
                                    self.TOP_CONSUMERS_LIMIT):
            self.top_consumers.append(TypeInfo(
                type=group.key,
                count=group.count,
                size=group.total,
                average_size=group.average,
                minimum_size=group.minimum,
                maximum_size=group.maximum,
            ))
        return True


class MemoryFragmentationComponent(ReportComponent):
    TITLE = "Memory fragmentation"

    def generate(self, snapshot: DumpSnapshot) -> bool:
        return True


class FinalizationComponent(ReportComponent):
    TITLE = "Finalization statistics"

    def generate(self, snapshot: DumpSnapshot) -> bool:
        return True
