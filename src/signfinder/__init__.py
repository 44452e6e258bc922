"""
SignFinder - Sign detection and tracking for assistive navigation

Finds signage (exit signs, restroom signs, ...) in a video stream and keeps
temporally stable tracks of them for a wearable or handheld camera.

Features:
- Two-stage detection: cascade proposals verified by HOG + SVM
- Median-flow visual tracking between detector hits
- Track confirmation (hangover frames) and age-based pruning
- Optional bounding box refinement by local re-scanning

Quick Start:
    from signfinder import DetectionParams, ObjDetector, VideoFileReader

    params = DetectionParams.from_file("exit_sign_config.yml")
    detector = ObjDetector(params)

    with VideoFileReader("walkthrough.mp4") as reader:
        for frame in reader:
            for det in detector.detect(frame):
                print(det.region, det.confidence)
"""

__version__ = "1.0.0"

# Core tracking
from .region import Region, DetectionInfo
from .median_flow import (
    PointCorrespondence,
    PointCorrespondenceEstimator,
    MedianFlowTracker,
    normalized_cross_correlation,
)
from .track_manager import Track, TrackManager
from .refinement import RefinementStep

# Detection
from .classifiers import (
    Label,
    CascadeProposer,
    HogSvmClassifier,
    verify_region,
)
from .detection_params import DetectionParams
from .detector import ObjDetector, preprocess
from .errors import SignFinderError, ConfigError, DetectorInitError

# Video + display
from .video_pipeline import VideoFileReader, FrameMetadata, PerformanceOverlay
from .annotation_layer import AnnotationRenderer, ColorScheme

__all__ = [
    # Version
    "__version__",

    # Core Tracking
    "Region",
    "DetectionInfo",
    "PointCorrespondence",
    "PointCorrespondenceEstimator",
    "MedianFlowTracker",
    "normalized_cross_correlation",
    "Track",
    "TrackManager",
    "RefinementStep",

    # Detection
    "Label",
    "CascadeProposer",
    "HogSvmClassifier",
    "verify_region",
    "DetectionParams",
    "ObjDetector",
    "preprocess",
    "SignFinderError",
    "ConfigError",
    "DetectorInitError",

    # Video
    "VideoFileReader",
    "FrameMetadata",
    "PerformanceOverlay",
    "AnnotationRenderer",
    "ColorScheme",
]
