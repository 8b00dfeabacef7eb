"""Acquisition orchestration components."""

from .batch import BatchCoordinator, BatchRun
from .cancellation import CancellationController
from .dispatcher import Dispatcher
from .fetcher import BatchEntry, BatchListing, Fetcher, MediaInfo
from .job_store import JobStore
from .reconciler import ArtifactReconciler, BatchContext, ReconcileResult
from .storage import ArtifactSet, StorageLayout, classify_artifacts
from .supervisor import FetchHandle, ProcessSupervisor

__all__ = [
    "ArtifactReconciler",
    "ArtifactSet",
    "BatchContext",
    "BatchCoordinator",
    "BatchEntry",
    "BatchListing",
    "BatchRun",
    "CancellationController",
    "Dispatcher",
    "FetchHandle",
    "Fetcher",
    "JobStore",
    "MediaInfo",
    "ProcessSupervisor",
    "ReconcileResult",
    "StorageLayout",
    "classify_artifacts",
]
