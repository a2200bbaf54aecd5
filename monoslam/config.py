"""Tunable parameters for the SLAM backend."""

from dataclasses import dataclass, fields
from typing import Dict, Optional

import cv2


# ORB-SLAM style settings keys -> SlamConfig field names
SETTINGS_KEYS = {
    "Initializer.maxDepth": "max_depth",
    "Initializer.minInlierRatio": "min_inlier_ratio",
    "Initializer.minMatches": "min_matches",
    "Matcher.maxDistance": "max_descriptor_distance",
    "Matcher.fundamentalThreshold": "fundamental_ransac_threshold",
    "Matcher.fundamentalConfidence": "fundamental_ransac_confidence",
    "Matcher.essentialThreshold": "essential_ransac_threshold",
    "Matcher.essentialConfidence": "essential_ransac_confidence",
    "ORBextractor.nFeatures": "n_features",
    "ORBextractor.cornerQuality": "corner_quality",
    "ORBextractor.cornerMinDistance": "corner_min_distance",
    "Optimizer.iterations": "ba_iterations",
    "Optimizer.initialLambda": "ba_initial_lambda",
    "Optimizer.tolerance": "ba_tolerance",
    "Optimizer.afterInit": "optimize_after_init",
}


@dataclass
class SlamConfig:
    """Configuration for the monocular SLAM backend.

    Modify the default values here for experimentation, or load overrides
    from a settings file with `SlamConfig.from_settings`.
    """

    # Two-view initialization
    max_depth: float = 50.0
    """Triangulated points farther than this (in either camera) are not inliers"""

    min_inlier_ratio: float = 0.5
    """Minimum fraction of correspondences the winning pose hypothesis must explain"""

    min_matches: int = 8
    """Minimum number of putative matches before fitting geometry"""

    # Matching collaborator
    max_descriptor_distance: float = 30.0
    """Hamming distance cutoff for putative descriptor matches"""

    fundamental_ransac_threshold: float = 1.0
    fundamental_ransac_confidence: float = 0.99
    essential_ransac_threshold: float = 1.0
    essential_ransac_confidence: float = 0.999

    # Extraction collaborator
    n_features: int = 1000
    corner_quality: float = 0.01
    corner_min_distance: float = 10.0

    # Bundle adjustment
    ba_iterations: int = 20
    """Maximum number of Levenberg-Marquardt iterations"""

    ba_initial_lambda: float = 1e-3
    """Initial damping factor"""

    ba_tolerance: float = 1e-10
    """Stop once the relative chi2 change or the step norm drops below this"""

    optimize_after_init: bool = True
    """Run bundle adjustment over the fresh map once initialization succeeds"""

    @classmethod
    def from_settings(cls, path, base: Optional["SlamConfig"] = None) -> "SlamConfig":
        """
        Load overrides from an ORB-SLAM style YAML settings file.

        Args:
            path: Path to the settings file.
            base: Config providing values for keys absent in the file.

        Returns:
            A new SlamConfig.
        """
        values = read_settings(path, SETTINGS_KEYS.keys())
        config = cls(**vars(base)) if base is not None else cls()
        types = {f.name: f.type for f in fields(cls)}
        for key, value in values.items():
            name = SETTINGS_KEYS[key]
            setattr(config, name, _coerce(value, types[name]))
        return config


def read_settings(path, keys) -> Dict[str, float]:
    """
    Read numeric nodes from an OpenCV FileStorage (YAML/XML) settings file.

    Args:
        path: Path to the settings file.
        keys: Node names to look up.

    Returns:
        Dictionary of node name -> value for every key present in the file.
    """
    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    except cv2.error as e:
        raise FileNotFoundError(f"Could not open settings file: {path}") from e
    try:
        if not fs.isOpened():
            raise FileNotFoundError(f"Could not open settings file: {path}")
        values = {}
        for key in keys:
            node = fs.getNode(key)
            if node.empty():
                continue
            values[key] = node.real()
        return values
    finally:
        fs.release()


def _coerce(value, field_type):
    if field_type in (bool, "bool"):
        return bool(value)
    if field_type in (int, "int"):
        return int(value)
    return float(value)
