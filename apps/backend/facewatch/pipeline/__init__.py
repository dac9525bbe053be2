"""Camera pipeline supervision: processes, detection tasks and reconciliation."""

from .alerts import AlertDispatcher
from .detection import DetectionResult, DetectionTask
from .frames import FrameStore
from .process import ProcessHandle, ProcessLaunchError
from .reconciler import ReconcileResult, Reconciler
from .supervisor import ManagedPipeline, PipelineRegistry, PipelineSupervisor

__all__ = [
    "AlertDispatcher",
    "DetectionResult",
    "DetectionTask",
    "FrameStore",
    "ProcessHandle",
    "ProcessLaunchError",
    "ReconcileResult",
    "Reconciler",
    "ManagedPipeline",
    "PipelineRegistry",
    "PipelineSupervisor",
]
