"""Orchestration services: selection, lifecycle, polling and analytics."""

from .container import ServiceContainer, build_services
from .job_manager import JobLifecycleManager
from .notifier import JobNotifier
from .poller import StatusPoller
from .recorder import AnalyticsReport, QualityRecorder, ReportFilter, ReportWindow
from .selector import ProviderSelector, RankedProvider, RankedProviderList
from .updates import AttemptUpdate, UpdateKind

__all__ = [
    "AnalyticsReport",
    "AttemptUpdate",
    "JobLifecycleManager",
    "JobNotifier",
    "ProviderSelector",
    "QualityRecorder",
    "RankedProvider",
    "RankedProviderList",
    "ReportFilter",
    "ReportWindow",
    "ServiceContainer",
    "StatusPoller",
    "UpdateKind",
    "build_services",
]
