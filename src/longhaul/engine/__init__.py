"""Task execution engine.

Leaf components are re-exported here. The coordinator, host and runner
depend on the task surface and are imported from their modules:

    from longhaul.engine.coordinator import TaskCoordinator, WorkerContext
    from longhaul.engine.host import IterationHost
    from longhaul.engine.runner import Runner
"""

from longhaul.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from longhaul.engine.dispatch import Dispatcher, InlineDispatcher, Job
from longhaul.engine.enumerators import (
    BatchedRecordSet,
    CollectionSource,
    CsvCollection,
    ListCollection,
    RecordSet,
    adapt_collection,
)
from longhaul.engine.state_machine import RunStateMachine
from longhaul.engine.throttle import ThrottleCondition, throttle_enumerator
from longhaul.engine.ticker import Ticker

__all__ = [
    "DEFAULT_CLOCK",
    "BatchedRecordSet",
    "Clock",
    "CollectionSource",
    "CsvCollection",
    "Dispatcher",
    "InlineDispatcher",
    "Job",
    "ListCollection",
    "MockClock",
    "RecordSet",
    "RunStateMachine",
    "SystemClock",
    "ThrottleCondition",
    "Ticker",
    "adapt_collection",
    "throttle_enumerator",
]
