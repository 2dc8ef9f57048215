"""Conversion of a live exception and its inner exceptions into report records."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from .snapshot import LiveException, SnapshotThread

# Upper bound on links followed; the live object graph does not guarantee a
# finite inner-exception chain.
MAX_EXCEPTION_DEPTH = 64


@dataclass
class ExceptionInfo:
    exception_type: str
    exception_message: Optional[str] = None
    stack_frames: List[str] = field(default_factory=list)
    inner_exception: Optional['ExceptionInfo'] = None

    @property
    def depth(self) -> int:
        """Number of links in the chain starting here."""
        count = 0
        node: Optional[ExceptionInfo] = self
        while node is not None:
            count += 1
            node = node.inner_exception
        return count


def find_thread_with_exception(threads: Iterable[SnapshotThread]) -> Optional[SnapshotThread]:
    """First thread with a current managed exception, or None."""
    for thread in threads:
        if thread.current_exception is not None:
            return thread
    return None


def walk_exception_chain(exception: LiveException,
                         max_depth: int = MAX_EXCEPTION_DEPTH) -> ExceptionInfo:
    """Copy exception and its inner exceptions into an ExceptionInfo chain.

    Stops when the inner exception is absent, when an exception object is seen
    a second time, or after max_depth links.

    Raises:
        ValueError: max_depth is less than 1.
    """
    if max_depth < 1:
        raise ValueError(f"max_depth must be at least 1, got {max_depth}")

    head: Optional[ExceptionInfo] = None
    tail: Optional[ExceptionInfo] = None
    seen: Set[int] = set()
    current: Optional[LiveException] = exception
    depth = 0

    while current is not None and depth < max_depth and id(current) not in seen:
        seen.add(id(current))
        info = ExceptionInfo(
            exception_type=current.type_name,
            exception_message=current.message,
            stack_frames=list(current.stack_frames),
        )
        if tail is None:
            head = info
        else:
            tail.inner_exception = info
        tail = info
        depth += 1
        current = current.inner

    return head
