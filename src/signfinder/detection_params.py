"""
SignFinder Detection Parameters - OpenCV YAML configuration.

Example (OpenCV FileStorage YAML):

    %YAML:1.0
    ---
    CascadeFile: "exit_sign_cascade.xml"
    SVMFile: "exit_sign_svm.yml"
    minWinSize: { width: 24, height: 12 }
    maxWinSizeFactor: 8
    HOG_winSize: { width: 64, height: 32 }
    CroppingFactors: { width: 1.0, height: 0.6 }
    CascadeScaleFactor: 1.1
    SVMThreshold: 0.5
    HangoverFrames: 2
    MaxAgePreConfirmation: 5
    MaxAgePostConfirmation: 15

Classifier paths are resolved against the classifiers folder, which
defaults to the directory holding the configuration file.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union
from dataclasses import dataclass

import cv2

from .errors import ConfigError


logger = logging.getLogger("DetectionParams")


@dataclass
class DetectionParams:
    """Parameters shared by the detector, the refinement step and the track manager."""
    cascade_file: str = ""
    svm_model_file: str = ""
    config_file_name: str = ""

    hog_win_size: Tuple[int, int] = (64, 64)       # (width, height)
    cascade_min_win: Tuple[int, int] = (24, 24)
    cascade_max_win: Tuple[int, int] = (192, 192)
    cascade_max_win_factor: float = 8.0

    cropping_factors: Tuple[float, float] = (1.0, 1.0)  # (width, height)
    scaling_factor: float = 1.0
    cascade_scale_factor: float = 1.1
    svm_threshold: float = 0.5
    svm_prob_a: float = -1.0  # Platt scaling: p = 1 / (1 + exp(A * |f| + B))
    svm_prob_b: float = 0.0

    flip: bool = False
    transpose: bool = False
    show_intermediate: bool = False

    # Track lifecycle
    hangover_frames: int = 2
    max_age_pre_confirmation: int = 5
    max_age_post_confirmation: int = 15

    # Bounding box refinement
    refine_detections: bool = False
    refine_tracks: bool = False
    refinement_scale: float = 0.5
    refinement_scan_step: float = 1.02

    @classmethod
    def from_file(
        cls,
        config_file: Union[str, Path],
        classifiers_folder: Optional[Union[str, Path]] = None
    ) -> "DetectionParams":
        """Parse an OpenCV YAML configuration file. Raises ConfigError."""
        path = Path(config_file)
        if not path.is_file():
            raise ConfigError(f"Couldn't load configuration file: {path}")

        try:
            fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
        except cv2.error as e:
            raise ConfigError(f"Couldn't parse configuration file: {path}") from e
        if not fs.isOpened():
            raise ConfigError(f"Couldn't load configuration file: {path}")

        try:
            params = cls._parse(fs, path, classifiers_folder)
        finally:
            fs.release()

        logger.info(
            f"Loaded {path.name}: min_win={params.cascade_min_win}, "
            f"max_win={params.cascade_max_win}, hog={params.hog_win_size}, "
            f"threshold={params.svm_threshold}"
        )
        return params

    @classmethod
    def _parse(
        cls,
        fs: cv2.FileStorage,
        path: Path,
        classifiers_folder: Optional[Union[str, Path]]
    ) -> "DetectionParams":
        folder = Path(classifiers_folder) if classifiers_folder else path.parent
        params = cls(config_file_name=str(path))

        cascade_file = _string(fs.getNode("CascadeFile"))
        if not cascade_file:
            raise ConfigError("Cascade Classifier not specified.")
        params.cascade_file = str(_resolve(cascade_file, folder))

        svm_file = _string(fs.getNode("SVMFile"))
        if not svm_file:
            raise ConfigError("SVM Classifier not specified.")
        params.svm_model_file = str(_resolve(svm_file, folder))

        min_win = _size(fs.getNode("minWinSize"))
        if min_win is None:
            raise ConfigError("Cascade Minimum Window Size not specified.")
        params.cascade_min_win = min_win

        node = fs.getNode("maxWinSizeFactor")
        if node.empty():
            logger.warning("maxWinSizeFactor not found. Using default value.")
        else:
            params.cascade_max_win_factor = _real(node)
        factor = params.cascade_max_win_factor
        params.cascade_max_win = (int(min_win[0] * factor), int(min_win[1] * factor))

        hog_win = _size(fs.getNode("HOG_winSize"))
        if hog_win is None:
            raise ConfigError("HOG Window Size not specified.")
        params.hog_win_size = hog_win

        node = fs.getNode("CroppingFactors")
        if not node.empty():
            params.cropping_factors = _pair(node, float, params.cropping_factors)

        params.scaling_factor = _real(fs.getNode("ScaleFactor"), params.scaling_factor)
        params.flip = bool(_real(fs.getNode("Flip"), params.flip))
        params.transpose = bool(_real(fs.getNode("Transpose"), params.transpose))
        params.show_intermediate = bool(_real(fs.getNode("ShowIntermediate"), params.show_intermediate))
        params.cascade_scale_factor = _real(fs.getNode("CascadeScaleFactor"), params.cascade_scale_factor)
        params.svm_threshold = _real(fs.getNode("SVMThreshold"), params.svm_threshold)
        params.svm_prob_a = _real(fs.getNode("SVMProbA"), params.svm_prob_a)
        params.svm_prob_b = _real(fs.getNode("SVMProbB"), params.svm_prob_b)

        params.hangover_frames = int(_real(fs.getNode("HangoverFrames"), params.hangover_frames))
        params.max_age_pre_confirmation = int(
            _real(fs.getNode("MaxAgePreConfirmation"), params.max_age_pre_confirmation)
        )
        params.max_age_post_confirmation = int(
            _real(fs.getNode("MaxAgePostConfirmation"), params.max_age_post_confirmation)
        )

        params.refine_detections = bool(_real(fs.getNode("RefineDetections"), params.refine_detections))
        params.refine_tracks = bool(_real(fs.getNode("RefineTracks"), params.refine_tracks))
        params.refinement_scale = _real(fs.getNode("RefinementScale"), params.refinement_scale)
        params.refinement_scan_step = _real(fs.getNode("RefinementScanStep"), params.refinement_scan_step)

        if params.cascade_scale_factor <= 1.0:
            raise ConfigError(f"CascadeScaleFactor must be > 1 (got {params.cascade_scale_factor})")
        if params.scaling_factor <= 0:
            raise ConfigError(f"ScaleFactor must be > 0 (got {params.scaling_factor})")
        return params


def _resolve(path_str: str, folder: Path) -> Path:
    candidate = Path(path_str)
    if not candidate.is_absolute():
        candidate = folder / candidate
    return candidate


def _scalar(node: cv2.FileNode) -> cv2.FileNode:
    # Values may be written either as `24` or `[24]`
    if node.isSeq():
        return node.at(0)
    return node


def _string(node: cv2.FileNode) -> str:
    if node.empty():
        return ""
    return _scalar(node).string()


def _real(node: cv2.FileNode, default: float = 0.0) -> float:
    if node.empty():
        return float(default)
    return float(_scalar(node).real())


def _pair(node: cv2.FileNode, cast, default: Tuple) -> Tuple:
    width, height = default
    for key in node.keys():
        if key == "width":
            width = cast(_real(node.getNode(key)))
        elif key == "height":
            height = cast(_real(node.getNode(key)))
        else:
            logger.warning(f"Unexpected Parameter: '{key}' Ignoring.")
    return width, height


def _size(node: cv2.FileNode) -> Optional[Tuple[int, int]]:
    if node.empty():
        return None
    size = _pair(node, int, (0, 0))
    if size[0] <= 0 or size[1] <= 0:
        return None
    return size
