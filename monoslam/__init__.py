"""
monoslam: the back half of a monocular visual SLAM system.

Given matched features from two views of a calibrated camera, the package
recovers the relative motion, triangulates an initial map and refines it with
bundle adjustment.

The system is organized into several modules:
- core: Core data structures (CameraModel, Frame, KeyFrame, MapPoint, Map)
- frontend: Feature extraction, matching, epipolar geometry and initialization
- backend: Lie group helpers and the sparse bundle adjuster
- utils: Logging setup and map export
"""

from .config import SlamConfig
from .core import CameraModel, Frame, IdAllocator, KeyFrame, Map, MapPoint, MapPointReference
from .exceptions import IdSpaceExhausted, InsufficientInliers, MatchFailed, NotFound, SlamError
from .system import Tracker, TrackingState

__version__ = '0.1.0'

__all__ = [
    'SlamConfig',
    'CameraModel',
    'Frame',
    'IdAllocator',
    'KeyFrame',
    'Map',
    'MapPoint',
    'MapPointReference',
    'SlamError',
    'MatchFailed',
    'InsufficientInliers',
    'NotFound',
    'IdSpaceExhausted',
    'Tracker',
    'TrackingState',
]
