"""Snapshot contract consumed by the report engine.

A snapshot is a frozen, read-only view of a captured process: managed threads,
the managed heap, loaded modules and virtual-memory regions. Providers (the
minidump reader, test fixtures) build these records; report components only
read them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .stack_walker import StackWalker


# Virtual memory region state/type flags (MEMORY_BASIC_INFORMATION)
MEM_COMMIT = 0x1000
MEM_RESERVE = 0x2000
MEM_FREE = 0x10000

MEM_PRIVATE = 0x20000
MEM_IMAGE = 0x1000000


class SnapshotError(Exception):
    """Raised by snapshot providers when a target cannot be opened."""


class TargetType(Enum):
    """Kind of target the snapshot was captured from."""
    DUMP_FILE = "DumpFile"
    DUMP_FILE_NO_HEAP = "DumpFileNoHeap"
    LIVE_PROCESS = "LiveProcess"


class BlockingReason(Enum):
    """Why a thread is blocked on a synchronization object."""
    NONE = "None"
    UNKNOWN = "Unknown"
    MONITOR = "Monitor"
    MONITOR_WAIT = "MonitorWait"
    WAIT_ONE = "WaitOne"
    WAIT_ALL = "WaitAll"
    WAIT_ANY = "WaitAny"
    THREAD_JOIN = "ThreadJoin"
    READER_ACQUIRED = "ReaderAcquired"
    WRITER_ACQUIRED = "WriterAcquired"


@dataclass
class LiveException:
    """A managed exception object as seen in the snapshot."""
    type_name: str
    message: Optional[str] = None
    stack_frames: List[str] = field(default_factory=list)  # display strings
    inner: Optional['LiveException'] = None


@dataclass(eq=False)
class BlockingObject:
    """A synchronization object some thread is blocked on.

    Owner slots may be None (e.g. a monitor awaiting a pulse has no owner).
    """
    reason: BlockingReason
    object_address: int
    owners: List[Optional['SnapshotThread']] = field(default_factory=list)
    waiters: List['SnapshotThread'] = field(default_factory=list)


@dataclass(eq=False)
class SnapshotThread:
    """A managed thread."""
    os_thread_id: int
    managed_thread_id: int
    current_exception: Optional[LiveException] = None
    blocking_objects: List[BlockingObject] = field(default_factory=list)
    description: str = ""  # special role, e.g. "Finalizer"


@dataclass
class HeapType:
    """Runtime type of a heap object."""
    name: str
    is_free: bool = False


@dataclass
class HeapObject:
    address: int
    type: HeapType
    size: int


@dataclass
class HeapSegment:
    start: int
    committed_end: int
    reserved_end: int


@dataclass
class ManagedHeap:
    """Managed (GC) heap view.

    Generation 3 is the large object heap.
    """
    objects: List[HeapObject] = field(default_factory=list)
    segments: List[HeapSegment] = field(default_factory=list)
    generation_sizes: Dict[int, int] = field(default_factory=dict)

    def __post_init__(self):
        self._by_address: Optional[Dict[int, HeapObject]] = None

    @property
    def total_heap_size(self) -> int:
        return sum(self.generation_sizes.values())

    def get_size_by_gen(self, generation: int) -> int:
        return self.generation_sizes.get(generation, 0)

    def enumerate_object_addresses(self) -> Iterator[int]:
        for obj in self.objects:
            yield obj.address

    def _lookup(self, address: int) -> Optional[HeapObject]:
        if self._by_address is None:
            self._by_address = {obj.address: obj for obj in self.objects}
        return self._by_address.get(address)

    def get_object_type(self, address: int) -> Optional[HeapType]:
        """Resolve the type of the object at address, None if unknown."""
        obj = self._lookup(address)
        return obj.type if obj else None

    def get_object_size(self, address: int) -> int:
        obj = self._lookup(address)
        return obj.size if obj else 0


@dataclass
class ModuleImage:
    """A module loaded into the target process."""
    file_name: str  # full path as recorded in the dump
    file_size: int
    version: Optional[str] = None
    is_managed: bool = False
    base_address: int = 0


@dataclass
class VirtualMemoryRegion:
    base_address: int
    region_size: int
    state: int = 0
    type: int = 0
    protect: int = 0

    @property
    def end_address(self) -> int:
        return self.base_address + self.region_size

    @property
    def is_free(self) -> bool:
        return bool(self.state & MEM_FREE)


@dataclass
class DumpSnapshot:
    """Frozen process state handed to every report component."""
    dump_file: str
    target_type: TargetType
    threads: List[SnapshotThread] = field(default_factory=list)
    modules: List[ModuleImage] = field(default_factory=list)
    memory_regions: List[VirtualMemoryRegion] = field(default_factory=list)
    heap: Optional[ManagedHeap] = None
    architecture: str = "Unknown"
    stack_walker_factory: Optional[Callable[['DumpSnapshot'], 'StackWalker']] = None

    @property
    def has_heap(self) -> bool:
        return self.heap is not None and self.target_type != TargetType.DUMP_FILE_NO_HEAP

    def create_stack_walker(self) -> 'StackWalker':
        """Open the secondary stack walker for this snapshot.

        Raises:
            StackWalkerUnavailable: the target has no stack walking support.
        """
        from .stack_walker import StackWalkerUnavailable

        if self.stack_walker_factory is None:
            raise StackWalkerUnavailable(
                f"No stack walker available for target type {self.target_type.value}"
            )
        return self.stack_walker_factory(self)
