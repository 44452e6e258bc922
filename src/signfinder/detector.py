"""
SignFinder Detector - Preprocessing + two-stage detection + tracking.

Usage:
    params = DetectionParams.from_file("exit_sign_config.yml")
    detector = ObjDetector(params)
    for frame in frames:
        detections = detector.detect(frame)
        # detections are in detector.current_frame coordinates
"""

import logging
from typing import Optional, Tuple, List

import numpy as np
import cv2

from .classifiers import CascadeProposer, HogSvmClassifier
from .detection_params import DetectionParams
from .refinement import RefinementStep
from .region import Region, DetectionInfo
from .track_manager import TrackManager


def preprocess(frame: np.ndarray, params: DetectionParams) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rescale, flip, transpose and crop a raw camera frame.

    Returns (frame, cropped): the full transformed frame and the top-left
    region of interest the detector runs on.
    """
    if params.scaling_factor != 1 and params.scaling_factor > 0:
        h, w = frame.shape[:2]
        size = (int(w * params.scaling_factor), int(h * params.scaling_factor))
        frame = cv2.resize(frame, size, interpolation=cv2.INTER_LINEAR)

    if params.flip:
        frame = cv2.flip(frame, 0)

    if params.transpose:
        frame = cv2.transpose(frame)

    h, w = frame.shape[:2]
    crop = Region(
        0, 0,
        max(1, int(w * params.cropping_factors[0])),
        max(1, int(h * params.cropping_factors[1]))
    )
    return frame, crop.crop(frame).copy()


class ObjDetector:
    """
    Two-stage sign detector with temporal tracking.

    Classifier loading failures raise DetectorInitError here, before any
    frame is processed.
    """

    def __init__(
        self,
        params: DetectionParams,
        proposer=None,
        classifier=None
    ):
        self.params = params
        self.logger = logging.getLogger("ObjDetector")

        self.proposer = proposer or CascadeProposer(params.cascade_file)
        self.classifier = classifier or HogSvmClassifier(
            params.svm_model_file,
            params.hog_win_size,
            prob_a=params.svm_prob_a,
            prob_b=params.svm_prob_b
        )
        self.refiner = RefinementStep(self.proposer, self.classifier, params)
        self.track_manager = TrackManager(
            self.proposer, self.classifier, params, refiner=self.refiner
        )

        self.current_frame: Optional[np.ndarray] = None  # Last preprocessed (uncropped) frame
        self.cropped_frame: Optional[np.ndarray] = None
        self.logger.info(
            f"Detector ready (hangover={params.hangover_frames}, "
            f"max_age={params.max_age_pre_confirmation}/{params.max_age_post_confirmation})"
        )

    def detect(self, frame: np.ndarray, do_track: bool = True) -> List[DetectionInfo]:
        """Detections in cropped-frame coordinates (same origin as current_frame)."""
        self.current_frame, self.cropped_frame = preprocess(frame, self.params)
        if self.params.show_intermediate:
            cv2.imshow("Cropped Input", self.cropped_frame)
        return self.track_manager.update(self.cropped_frame, do_track)

    def get_tentative_tracks(self) -> List[DetectionInfo]:
        return self.track_manager.get_tentative_tracks()

    def get_raw_proposals(self) -> List[Region]:
        return self.track_manager.get_raw_proposals()

    def reset(self):
        self.track_manager.reset()
