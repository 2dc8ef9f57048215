"""Report orchestration: runs every registered component against a snapshot."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Type

from .components import (
    DumpInformationComponent,
    FinalizationComponent,
    LoadedModulesComponent,
    LocksAndWaitsComponent,
    MemoryFragmentationComponent,
    MemoryUsageComponent,
    RecommendationsComponent,
    ReportComponent,
    ThreadStacksComponent,
    TopMemoryConsumersComponent,
    UnhandledExceptionComponent,
)
from .snapshot import DumpSnapshot


class AnalysisResult(Enum):
    COMPLETED_SUCCESSFULLY = "CompletedSuccessfully"
    INTERNAL_ERROR = "InternalError"


@dataclass
class ComponentFailure:
    """A component whose generate() raised."""
    component: str  # title at the time of failure, may be empty
    component_type: str
    error_type: str
    error_message: str


@dataclass
class ReportDocument:
    analysis_start_time: Optional[datetime] = None
    analysis_end_time: Optional[datetime] = None
    analysis_result: AnalysisResult = AnalysisResult.COMPLETED_SUCCESSFULLY
    components: List[ReportComponent] = field(default_factory=list)
    failures: List[ComponentFailure] = field(default_factory=list)


# Execution order of the report
DEFAULT_COMPONENTS: Sequence[Type[ReportComponent]] = (
    DumpInformationComponent,
    RecommendationsComponent,
    UnhandledExceptionComponent,
    LoadedModulesComponent,
    ThreadStacksComponent,
    LocksAndWaitsComponent,
    MemoryUsageComponent,
    TopMemoryConsumersComponent,
    MemoryFragmentationComponent,
    FinalizationComponent,
)


class ReportOrchestrator:
    """Builds a ReportDocument by running components one at a time.

    Components run sequentially in registration order; several of them take
    exclusive hold of the snapshot's stack walker while they run.
    """

    def __init__(self,
                 component_types: Sequence[Type[ReportComponent]] = DEFAULT_COMPONENTS,
                 clock: Callable[[], datetime] = datetime.now,
                 verbose: bool = False):
        self.component_types = tuple(component_types)
        self.clock = clock
        self.verbose = verbose

    def _log(self, message: str):
        """Log a message if verbose mode is enabled."""
        if self.verbose:
            print(f"[REPORT] {message}")

    def run(self, snapshot: DumpSnapshot) -> ReportDocument:
        document = ReportDocument(analysis_start_time=self.clock())

        for component_type in self.component_types:
            component = None
            name = component_type.__name__
            try:
                component = component_type()
                generated = component.generate(snapshot)
            except Exception as e:
                document.analysis_result = AnalysisResult.INTERNAL_ERROR
                document.failures.append(ComponentFailure(
                    component=component.title if component is not None else "",
                    component_type=name,
                    error_type=type(e).__name__,
                    error_message=str(e),
                ))
                self._log(f"- {name} failed: {type(e).__name__}: {e}")
                continue

            if generated:
                document.components.append(component)
                self._log(f"+ {name}")
            else:
                self._log(f"  {name}: nothing to report")

        document.analysis_end_time = self.clock()
        return document
