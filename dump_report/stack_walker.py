"""Secondary stack walker: an exclusive, short-lived handle over the snapshot.

The walker unifies native and managed frames per OS thread. Only one may be
open at a time, so components acquire it through temporary_stack_walker(),
which always releases it.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .snapshot import DumpSnapshot, SnapshotThread


class StackWalkerUnavailable(Exception):
    """The snapshot cannot provide a stack walker (unsupported target, no debugger)."""


@dataclass
class UnifiedStackFrame:
    module: str
    method: str
    source_file_name: Optional[str] = None
    source_line_number: int = 0


@dataclass
class UnifiedThread:
    index: int
    os_thread_id: int
    managed_thread: Optional['SnapshotThread'] = None


class StackWalker:
    """Base class for stack walkers.

    Subclasses fill self._threads and self._stacks (keyed by thread index)
    before the walker is handed out.
    """

    def __init__(self, snapshot: 'DumpSnapshot'):
        self.snapshot = snapshot
        self.closed = False
        self._threads: List[UnifiedThread] = []
        self._stacks: Dict[int, List[UnifiedStackFrame]] = {}

    @property
    def threads(self) -> List[UnifiedThread]:
        return list(self._threads)

    def get_stack_trace(self, index: int) -> List[UnifiedStackFrame]:
        return list(self._stacks.get(index, []))

    def match_managed_thread(self, os_thread_id: int) -> Optional['SnapshotThread']:
        for thread in self.snapshot.threads:
            if thread.os_thread_id == os_thread_id:
                return thread
        return None

    def _add_thread(self, os_thread_id: int, frames: List[UnifiedStackFrame]) -> None:
        index = len(self._threads)
        self._threads.append(UnifiedThread(
            index=index,
            os_thread_id=os_thread_id,
            managed_thread=self.match_managed_thread(os_thread_id),
        ))
        self._stacks[index] = list(frames)

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class InMemoryStackWalker(StackWalker):
    """Stack walker over already-captured frames, keyed by OS thread id."""

    def __init__(self, snapshot: 'DumpSnapshot',
                 stacks: Dict[int, List[UnifiedStackFrame]]):
        super().__init__(snapshot)
        for os_thread_id, frames in stacks.items():
            self._add_thread(os_thread_id, frames)


@contextmanager
def temporary_stack_walker(snapshot: 'DumpSnapshot') -> Iterator[StackWalker]:
    """Acquire the snapshot's stack walker and release it on every exit path.

    Raises:
        StackWalkerUnavailable: acquisition failed; nothing is held.
    """
    walker = snapshot.create_stack_walker()
    try:
        yield walker
    finally:
        walker.close()
