"""Per-thread call stacks taken from the secondary stack walker."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .stack_walker import StackWalker, UnifiedStackFrame

NO_MANAGED_THREAD = -1


@dataclass
class StackFrame:
    module: str
    method: str
    source_file_name: Optional[str] = None
    source_line_number: int = 0


@dataclass
class StackTrace:
    os_thread_id: int
    managed_thread_id: int = NO_MANAGED_THREAD
    frames: List[StackFrame] = field(default_factory=list)


def stack_frame_from_unified(frame: UnifiedStackFrame) -> StackFrame:
    return StackFrame(
        module=frame.module,
        method=frame.method,
        source_file_name=frame.source_file_name,
        source_line_number=frame.source_line_number,
    )


def unify_stack_traces(walker: StackWalker) -> List[StackTrace]:
    """One StackTrace per walker thread, frames kept in walker order."""
    stacks: List[StackTrace] = []
    for thread in walker.threads:
        managed = thread.managed_thread
        trace = StackTrace(
            os_thread_id=thread.os_thread_id,
            managed_thread_id=managed.managed_thread_id if managed else NO_MANAGED_THREAD,
        )
        trace.frames.extend(
            stack_frame_from_unified(frame)
            for frame in walker.get_stack_trace(thread.index)
        )
        stacks.append(trace)
    return stacks
