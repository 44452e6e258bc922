"""
SignFinder Classifiers - Two-stage candidate proposal and verification.

Stage 1: multi-scale cascade scan proposes candidate regions (cheap, noisy).
Stage 2: HOG descriptor + SVM confirms or rejects each candidate and
         scores it with the probability of the predicted class.
"""

import logging
import math
from enum import IntEnum
from pathlib import Path
from typing import Optional, Tuple, List, Union

import numpy as np
import cv2

from .errors import DetectorInitError
from .region import Region


class Label(IntEnum):
    """SVM class labels."""
    FOREGROUND = 1
    BACKGROUND = -1


# Fixed slot of each class in the probability estimate array
PROBABILITY_INDEX = {
    Label.FOREGROUND: 0,
    Label.BACKGROUND: 1,
}


def to_gray(frame: np.ndarray) -> np.ndarray:
    """Single-channel view of a BGR or already grayscale frame."""
    if frame.ndim == 3:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return frame


class CascadeProposer:
    """Stage 1: cascade classifier scanning all positions and scales."""

    GROUP_THRESHOLD = 1
    GROUP_EPS = 0.2

    def __init__(self, cascade_file: Union[str, Path]):
        self.logger = logging.getLogger("CascadeProposer")
        path = Path(cascade_file)
        if not path.is_file():
            raise DetectorInitError(f"Cannot load cascade classifier: {path}")
        try:
            self._cascade = cv2.CascadeClassifier(str(path))
        except cv2.error as e:
            raise DetectorInitError(f"Cannot load cascade classifier: {path}") from e
        if self._cascade.empty():
            raise DetectorInitError(f"Cannot load cascade classifier: {path}")
        self.logger.info(f"Loaded cascade {path.name}")

    def propose(
        self,
        frame: np.ndarray,
        scale_factor: float,
        min_size: Tuple[int, int],
        max_size: Tuple[int, int],
        group: bool = True
    ) -> List[Region]:
        """
        Candidate regions in frame coordinates.

        Args:
            frame: BGR or grayscale image
            scale_factor: Scan step between scales (> 1)
            min_size, max_size: (width, height) window limits
            group: Merge overlapping raw hits with groupRectangles
        """
        if frame.size == 0:
            return []
        rects = self._cascade.detectMultiScale(
            to_gray(frame),
            scaleFactor=scale_factor,
            minNeighbors=0,
            flags=0,
            minSize=tuple(int(v) for v in min_size),
            maxSize=tuple(int(v) for v in max_size)
        )
        rects = [[int(v) for v in r] for r in rects]
        if group and rects:
            grouped, _ = cv2.groupRectangles(rects, self.GROUP_THRESHOLD, self.GROUP_EPS)
            rects = [[int(v) for v in r] for r in grouped]
        return [Region(*r) for r in rects]


class HogSvmClassifier:
    """
    Stage 2: HOG + linear SVM patch classifier.

    The SVM margin |f| is mapped to the probability of the predicted class
    with Platt scaling p = 1 / (1 + exp(A * |f| + B)); A < 0 so that larger
    margins give higher confidence.
    """

    BLOCK_SIZE = (16, 16)
    BLOCK_STRIDE = (4, 4)
    CELL_SIZE = (8, 8)
    N_BINS = 9

    def __init__(
        self,
        svm_file: Union[str, Path],
        hog_win_size: Tuple[int, int],
        prob_a: float = -1.0,
        prob_b: float = 0.0
    ):
        self.logger = logging.getLogger("HogSvmClassifier")
        self.hog_win_size = (int(hog_win_size[0]), int(hog_win_size[1]))
        self.prob_a = prob_a
        self.prob_b = prob_b

        w, h = self.hog_win_size
        if (w < self.BLOCK_SIZE[0] or h < self.BLOCK_SIZE[1] or
                (w - self.BLOCK_SIZE[0]) % self.BLOCK_STRIDE[0] or
                (h - self.BLOCK_SIZE[1]) % self.BLOCK_STRIDE[1]):
            raise DetectorInitError(f"Invalid HOG window size: {self.hog_win_size}")
        self.hog = cv2.HOGDescriptor(
            self.hog_win_size, self.BLOCK_SIZE, self.BLOCK_STRIDE, self.CELL_SIZE, self.N_BINS
        )

        path = Path(svm_file)
        if not path.is_file():
            raise DetectorInitError(f"Cannot load SVM classifier: {path}")
        try:
            self._svm = cv2.ml.SVM_load(str(path))
        except cv2.error as e:
            raise DetectorInitError(f"Cannot load SVM classifier: {path}") from e
        if self._svm is None or not self._svm.isTrained():
            raise DetectorInitError(f"Cannot load SVM classifier: {path}")

        expected = self.hog.getDescriptorSize()
        if self._svm.getVarCount() != expected:
            raise DetectorInitError(
                f"SVM expects {self._svm.getVarCount()} features, "
                f"HOG window {self.hog_win_size} gives {expected}"
            )
        self.logger.info(f"Loaded SVM {path.name} ({expected} features)")

    def describe(self, patch: np.ndarray) -> np.ndarray:
        """HOG descriptor of a patch rescaled to the HOG window (1 x D, float32)."""
        if patch.shape[1] != self.hog_win_size[0] or patch.shape[0] != self.hog_win_size[1]:
            patch = cv2.resize(patch, self.hog_win_size, interpolation=cv2.INTER_LINEAR)
        return self.hog.compute(patch).reshape(1, -1).astype(np.float32)

    def class_probabilities(self, label: Label, margin: float) -> np.ndarray:
        """[p(FOREGROUND), p(BACKGROUND)] given the predicted label and |decision value|."""
        p_predicted = 1.0 / (1.0 + math.exp(self.prob_a * margin + self.prob_b))
        probabilities = np.empty(2, dtype=np.float64)
        probabilities[PROBABILITY_INDEX[label]] = p_predicted
        other = Label.BACKGROUND if label == Label.FOREGROUND else Label.FOREGROUND
        probabilities[PROBABILITY_INDEX[other]] = 1.0 - p_predicted
        return probabilities

    def classify(self, patch: np.ndarray) -> Tuple[Label, float]:
        """(label, probability of that label)."""
        desc = self.describe(patch)
        _, predicted = self._svm.predict(desc)
        _, raw = self._svm.predict(desc, flags=cv2.ml.STAT_MODEL_RAW_OUTPUT)
        label = Label.FOREGROUND if int(round(float(predicted[0, 0]))) == Label.FOREGROUND else Label.BACKGROUND
        probabilities = self.class_probabilities(label, abs(float(raw[0, 0])))
        return label, float(probabilities[PROBABILITY_INDEX[label]])


def verify_region(classifier, frame: np.ndarray, region: Region, threshold: float) -> Optional[float]:
    """
    Confidence of the patch under `region` when it is classified as foreground
    above `threshold`; None otherwise.
    """
    patch = region.crop(frame)
    if patch.size == 0:
        return None
    label, confidence = classifier.classify(patch)
    if label == Label.FOREGROUND and confidence > threshold:
        return confidence
    return None
