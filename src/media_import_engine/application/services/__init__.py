"""Application services public API."""

from media_import_engine.application.services.byte_counting import ByteCountingStream
from media_import_engine.application.services.import_job_service import (
    ImportJobService,
    StartResult,
)
from media_import_engine.application.services.import_runner import ImportRunner
from media_import_engine.application.services.item_handlers import (
    ItemHandler,
    RemoteLinkHandler,
    StreamCopyHandler,
)
from media_import_engine.application.services.job_control import JobControl
from media_import_engine.application.services.scanner import ScanResult, Scanner
from media_import_engine.application.services.totals_aggregator import TotalsAggregator

__all__ = [
    "ByteCountingStream",
    "ImportJobService",
    "ImportRunner",
    "ItemHandler",
    "JobControl",
    "RemoteLinkHandler",
    "ScanResult",
    "Scanner",
    "StartResult",
    "StreamCopyHandler",
    "TotalsAggregator",
]
