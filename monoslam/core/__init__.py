# monoslam/core/__init__.py

from .camera import CameraModel
from .frame import Frame
from .keyframe import KeyFrame
from .map_point import MapPoint, MapPointReference
from .map import IdAllocator, Map


__all__ = [
    'CameraModel',
    'Frame',
    'KeyFrame',
    'MapPoint',
    'MapPointReference',
    'IdAllocator',
    'Map',
]
