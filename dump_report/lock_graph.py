"""Lock/wait graph construction from per-thread blocking objects.

The graph is built, not analyzed: owners and waiters are copied as ThreadInfo
values so a consumer can follow owner/waiter edges to find cycles.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .snapshot import BlockingObject, ManagedHeap, SnapshotThread


@dataclass
class LockInfo:
    reason: str
    object: int
    object_type: Optional[str] = None
    owner_threads: List['ThreadInfo'] = field(default_factory=list)
    waiting_threads: List['ThreadInfo'] = field(default_factory=list)


@dataclass
class ThreadInfo:
    os_thread_id: int
    managed_thread_id: int
    locks: List[LockInfo] = field(default_factory=list)


def thread_info_from_thread(thread: SnapshotThread) -> ThreadInfo:
    return ThreadInfo(
        os_thread_id=thread.os_thread_id,
        managed_thread_id=thread.managed_thread_id,
    )


def resolve_object_type(heap: Optional[ManagedHeap], address: int) -> Optional[str]:
    """Best-effort type name for address; None when it cannot be resolved."""
    if heap is None:
        return None
    try:
        heap_type = heap.get_object_type(address)
    except Exception:
        # Unreadable or unknown address; the lock is still reported
        return None
    return heap_type.name if heap_type else None


def _reason_name(reason) -> str:
    return getattr(reason, 'value', None) or str(reason)


def lock_info_from_blocking_object(blocking_object: BlockingObject,
                                   heap: Optional[ManagedHeap]) -> LockInfo:
    info = LockInfo(
        reason=_reason_name(blocking_object.reason),
        object=blocking_object.object_address,
        object_type=resolve_object_type(heap, blocking_object.object_address),
    )
    info.owner_threads.extend(
        thread_info_from_thread(owner)
        for owner in blocking_object.owners
        if owner is not None
    )
    info.waiting_threads.extend(
        thread_info_from_thread(waiter) for waiter in blocking_object.waiters
    )
    return info


def build_lock_graph(threads: Iterable[SnapshotThread],
                     heap: Optional[ManagedHeap] = None) -> List[ThreadInfo]:
    """One ThreadInfo per thread that is blocked on at least one object."""
    graph: List[ThreadInfo] = []
    for thread in threads:
        if not thread.blocking_objects:
            continue

        info = thread_info_from_thread(thread)
        for blocking_object in thread.blocking_objects:
            info.locks.append(lock_info_from_blocking_object(blocking_object, heap))
        graph.append(info)
    return graph
