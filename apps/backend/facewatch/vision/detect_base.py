from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from facewatch.config.schema import CascadeParams


@dataclass(frozen=True)
class Detection:
    bbox: tuple[int, int, int, int]
    score: float = 1.0


@dataclass(frozen=True)
class ImageParams:
    rows: int
    cols: int

    @classmethod
    def from_image(cls, image: np.ndarray) -> "ImageParams":
        rows, cols = image.shape[:2]
        return cls(rows=int(rows), cols=int(cols))


class FaceClassifier(ABC):
    @abstractmethod
    def detect(self, gray: np.ndarray, params: CascadeParams, image: ImageParams) -> list[Detection]:
        raise NotImplementedError
