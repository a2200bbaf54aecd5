import cv2
import numpy as np
import pytest

from monoslam.config import SlamConfig
from monoslam.core.frame import Frame
from monoslam.exceptions import MatchFailed
from monoslam.frontend.feature_extractor import FeatureExtractor
from monoslam.frontend.feature_matcher import FeatureMatcher
from monoslam.tests.synthetic import make_camera, make_points, relative_motion, transform


def _textured_image(seed=0, shape=(240, 320)):
    rng = np.random.default_rng(seed)
    blocks = rng.integers(0, 256, (shape[0] // 8, shape[1] // 8), dtype=np.uint8)
    image = cv2.resize(blocks, (shape[1], shape[0]), interpolation=cv2.INTER_NEAREST)
    return cv2.GaussianBlur(image, (3, 3), 0)


def test_extract_returns_aligned_arrays():
    extractor = FeatureExtractor(nfeatures=200)
    keypoints, descriptors = extractor.extract(_textured_image())

    assert len(keypoints) > 0
    assert keypoints.shape == (len(descriptors), 2)
    assert descriptors.shape[1] == 32 and descriptors.dtype == np.uint8
    assert len(keypoints) <= 200


def test_extract_blank_image_is_empty():
    keypoints, descriptors = FeatureExtractor().extract(np.full((120, 160), 128, dtype=np.uint8))
    assert keypoints.shape == (0, 2)
    assert descriptors.shape == (0, 32)


def test_extract_rejects_color_images():
    with pytest.raises(ValueError):
        FeatureExtractor().extract(np.zeros((120, 160, 3), dtype=np.uint8))


def test_extractor_from_config():
    extractor = FeatureExtractor.from_config(SlamConfig(n_features=50, corner_min_distance=4.0))
    assert extractor.nfeatures == 50
    assert extractor.min_distance == 4.0


def _frames_with_shared_descriptors(n=60):
    camera = make_camera()
    relative = relative_motion()
    points = make_points(n=n, seed=7)
    descriptors = np.random.default_rng(7).integers(0, 256, (n, 32), dtype=np.uint8)
    first = Frame(0.0, None, camera.project(points), descriptors)
    second = Frame(0.1, None, camera.project(transform(relative, points)), descriptors.copy())
    return camera, first, second


def test_match_recovers_epipolar_geometry():
    camera, first, second = _frames_with_shared_descriptors()
    match = FeatureMatcher(camera).match(first, second)

    assert len(match.indices1) >= 50
    assert np.array_equal(match.indices1, match.indices2)

    x1 = np.column_stack([camera.back_project(first.keypoints[match.indices1]), np.ones(len(match.indices1))])
    x2 = np.column_stack([camera.back_project(second.keypoints[match.indices2]), np.ones(len(match.indices2))])
    E = match.essential / np.linalg.norm(match.essential)
    residuals = np.einsum("ij,jk,ik->i", x2, E, x1)
    assert np.abs(residuals).max() < 1e-3


def test_match_fails_without_keypoints():
    camera, first, _ = _frames_with_shared_descriptors()
    empty = Frame(0.2, None, np.zeros((0, 2)), np.zeros((0, 32), dtype=np.uint8))
    with pytest.raises(MatchFailed):
        FeatureMatcher(camera).match(first, empty)


def test_match_fails_when_descriptors_disagree():
    camera, first, second = _frames_with_shared_descriptors()
    second.descriptors = 255 - second.descriptors
    with pytest.raises(MatchFailed):
        FeatureMatcher(camera).match(first, second)
