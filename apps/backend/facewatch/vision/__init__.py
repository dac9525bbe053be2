"""Face detection helpers for facewatch."""

from .cascade import HaarCascadeClassifier, cluster_detections, intersection_over_union
from .detect_base import Detection, FaceClassifier, ImageParams
from .model_store import CascadeModelError, cascade_model_path, ensure_cascade_model, load_cascade

__all__ = [
    "Detection",
    "FaceClassifier",
    "ImageParams",
    "HaarCascadeClassifier",
    "cluster_detections",
    "intersection_over_union",
    "CascadeModelError",
    "cascade_model_path",
    "ensure_cascade_model",
    "load_cascade",
]
