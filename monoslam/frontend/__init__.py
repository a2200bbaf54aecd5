# monoslam/frontend/__init__.py

from .epipolar import PoseRecovery, decompose_essential, recover_pose
from .feature_extractor import FeatureExtractor
from .feature_matcher import FeatureMatcher, TwoViewMatch
from .initializer import MapInitializer


__all__ = [
    'PoseRecovery',
    'decompose_essential',
    'recover_pose',
    'FeatureExtractor',
    'FeatureMatcher',
    'TwoViewMatch',
    'MapInitializer',
]
