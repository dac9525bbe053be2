from __future__ import annotations

import cv2
import numpy as np

from facewatch.config.schema import CascadeParams

from .detect_base import Detection, FaceClassifier, ImageParams


def intersection_over_union(a: tuple[int, int, int, int], b: tuple[int, int, int, int]) -> float:
    ax1, ay1, ax2, ay2 = a
    bx1, by1, bx2, by2 = b
    ix1, iy1 = max(ax1, bx1), max(ay1, by1)
    ix2, iy2 = min(ax2, bx2), min(ay2, by2)
    inter = max(0, ix2 - ix1) * max(0, iy2 - iy1)
    if inter <= 0:
        return 0.0
    area_a = max(0, ax2 - ax1) * max(0, ay2 - ay1)
    area_b = max(0, bx2 - bx1) * max(0, by2 - by1)
    union = area_a + area_b - inter
    return float(inter) / float(union) if union > 0 else 0.0


def cluster_detections(detections: list[Detection], overlap_threshold: float) -> list[Detection]:
    """Merge raw hits that overlap by more than `overlap_threshold` IoU.

    Each cluster is seeded by the first unassigned hit and absorbs every later
    hit overlapping the seed. The merged box is the mean of the cluster's boxes
    and the score is the sum of their scores, so repeated hits on the same face
    count once and weigh more.
    """
    assigned = [False] * len(detections)
    clusters: list[Detection] = []

    for i, seed in enumerate(detections):
        if assigned[i]:
            continue
        assigned[i] = True
        members = [seed]
        for j in range(i + 1, len(detections)):
            if assigned[j]:
                continue
            if intersection_over_union(seed.bbox, detections[j].bbox) > overlap_threshold:
                assigned[j] = True
                members.append(detections[j])

        count = len(members)
        x1 = int(round(sum(m.bbox[0] for m in members) / count))
        y1 = int(round(sum(m.bbox[1] for m in members) / count))
        x2 = int(round(sum(m.bbox[2] for m in members) / count))
        y2 = int(round(sum(m.bbox[3] for m in members) / count))
        clusters.append(Detection(bbox=(x1, y1, x2, y2), score=float(sum(m.score for m in members))))

    return clusters


class HaarCascadeClassifier(FaceClassifier):
    def __init__(self, cascade: cv2.CascadeClassifier) -> None:
        self._cascade = cascade

    def detect(self, gray: np.ndarray, params: CascadeParams, image: ImageParams) -> list[Detection]:
        # The search window never exceeds the frame; OpenCV rejects a max size
        # smaller than the min size, so tiny frames yield no hits.
        max_side = min(params.max_size, image.cols, image.rows)
        if max_side < params.min_size:
            return []

        # OpenCV scans with a fixed internal stride, so shift_factor has no
        # counterpart here.
        boxes = self._cascade.detectMultiScale(
            gray,
            scaleFactor=params.scale_factor,
            minNeighbors=params.min_neighbors,
            minSize=(params.min_size, params.min_size),
            maxSize=(max_side, max_side),
        )
        detections: list[Detection] = []
        for x, y, w, h in np.asarray(boxes).reshape(-1, 4):
            detections.append(Detection(bbox=(int(x), int(y), int(x + w), int(y + h))))
        return detections
