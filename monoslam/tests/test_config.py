import numpy as np
import pytest

from monoslam.config import SlamConfig
from monoslam.core.camera import CameraModel

SETTINGS = """%YAML:1.0
---
Camera.fx: 458.654
Camera.fy: 457.296
Camera.cx: 367.215
Camera.cy: 248.375
Camera.k1: -0.28340811
Camera.k2: 0.07395907
Camera.p1: 0.00019359
Camera.p2: 1.76187114e-05

Initializer.maxDepth: 40.0
Optimizer.iterations: 5
Optimizer.afterInit: 0
"""


def _write_settings(tmp_path, text=SETTINGS):
    path = tmp_path / "settings.yaml"
    path.write_text(text)
    return path


def test_camera_from_settings(tmp_path):
    camera = CameraModel.from_settings(_write_settings(tmp_path))

    assert np.allclose(camera.intrinsics_vector(), CameraModel.euroc().intrinsics_vector())
    assert np.allclose(camera.K, [
        [458.654, 0.0, 367.215],
        [0.0, 457.296, 248.375],
        [0.0, 0.0, 1.0],
    ])
    assert np.allclose(camera.distortion, [-0.28340811, 0.07395907, 0.00019359, 1.76187114e-05])


def test_camera_settings_without_intrinsics(tmp_path):
    path = _write_settings(tmp_path, "%YAML:1.0\n---\nCamera.fx: 500.0\n")
    with pytest.raises(ValueError):
        CameraModel.from_settings(path)


def test_config_from_settings(tmp_path):
    config = SlamConfig.from_settings(_write_settings(tmp_path))

    assert config.max_depth == 40.0
    assert config.ba_iterations == 5 and isinstance(config.ba_iterations, int)
    assert config.optimize_after_init is False
    # keys absent from the file keep their defaults
    assert config.min_inlier_ratio == 0.5
    assert config.min_matches == 8


def test_config_keeps_base_values(tmp_path):
    base = SlamConfig(min_matches=20)
    config = SlamConfig.from_settings(_write_settings(tmp_path), base=base)

    assert config.min_matches == 20
    assert config.max_depth == 40.0
    assert base.max_depth == 50.0


def test_missing_settings_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        SlamConfig.from_settings(tmp_path / "missing.yaml")


def test_camera_from_K_round_trip():
    camera = CameraModel.from_K(CameraModel.euroc().K)
    assert np.allclose(camera.K, CameraModel.euroc().K)
    assert np.allclose(camera.distortion, 0.0)
    assert camera.intrinsics_vector().shape == (8,)


def test_project_back_project():
    camera = CameraModel.euroc()
    points = np.array([[0.1, -0.2, 2.0], [1.0, 0.5, 7.0]])

    pixels = camera.project(points)
    rays = camera.back_project(pixels)

    assert np.allclose(rays, points[:, :2] / points[:, 2:])
    assert np.allclose(camera.back_project(pixels[0]), rays[0])
    assert np.allclose(camera.project([0.0, 0.0, 1.0]), [camera.cx, camera.cy])
