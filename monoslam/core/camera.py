import numpy as np
from dataclasses import dataclass

from monoslam.config import read_settings


@dataclass(frozen=True)
class CameraModel:
    """
    Pinhole camera calibration.

    The four distortion coefficients are carried along for consumers that
    undistort, but projection and back-projection here are pure pinhole.
    """
    fx: float
    fy: float
    cx: float
    cy: float
    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0

    @classmethod
    def euroc(cls):
        """Calibration of the EuRoC MAV cam0 sensor."""
        return cls(fx=458.654, fy=457.296, cx=367.215, cy=248.375,
                   k1=-0.28340811, k2=0.07395907, p1=0.00019359, p2=1.76187114e-05)

    @classmethod
    def from_K(cls, K, distortion=(0.0, 0.0, 0.0, 0.0)):
        """
        Build a camera model from a 3x3 intrinsic matrix.

        Args:
            K: Intrinsic matrix (3x3 numpy array).
            distortion: (k1, k2, p1, p2).
        """
        k1, k2, p1, p2 = distortion
        return cls(fx=float(K[0, 0]), fy=float(K[1, 1]), cx=float(K[0, 2]), cy=float(K[1, 2]),
                   k1=k1, k2=k2, p1=p1, p2=p2)

    @classmethod
    def from_settings(cls, path):
        """
        Load the calibration from an ORB-SLAM style settings file
        (Camera.fx, Camera.fy, Camera.cx, Camera.cy, Camera.k1, ...).
        """
        names = ("fx", "fy", "cx", "cy", "k1", "k2", "p1", "p2")
        values = read_settings(path, [f"Camera.{name}" for name in names])
        missing = [name for name in names[:4] if f"Camera.{name}" not in values]
        if missing:
            raise ValueError(f"Settings file {path} lacks camera parameters: {missing}")
        return cls(**{name: values.get(f"Camera.{name}", 0.0) for name in names})

    @property
    def K(self):
        """Calibration matrix (3x3)."""
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0],
        ], dtype=np.float64)

    @property
    def distortion(self):
        return np.array([self.k1, self.k2, self.p1, self.p2], dtype=np.float64)

    def intrinsics_vector(self):
        """The 8 calibration scalars in the order fx, fy, cx, cy, k1, k2, p1, p2."""
        return np.array([self.fx, self.fy, self.cx, self.cy,
                         self.k1, self.k2, self.p1, self.p2], dtype=np.float64)

    def back_project(self, pixels):
        """
        Map pixel coordinates to normalized image rays (x, y) with z = 1 implied.

        Args:
            pixels: A single (2,) pixel or an (N, 2) array.

        Returns:
            Normalized coordinates with the same shape as the input.
        """
        pixels = np.asarray(pixels, dtype=np.float64)
        x = (pixels[..., 0] - self.cx) / self.fx
        y = (pixels[..., 1] - self.cy) / self.fy
        return np.stack([x, y], axis=-1)

    def project(self, points_cam):
        """
        Project points given in camera coordinates to pixels.

        Args:
            points_cam: A single (3,) point or an (N, 3) array.

        Returns:
            Pixel coordinates, (2,) or (N, 2).
        """
        points_cam = np.asarray(points_cam, dtype=np.float64)
        z = points_cam[..., 2]
        u = self.fx * points_cam[..., 0] / z + self.cx
        v = self.fy * points_cam[..., 1] / z + self.cy
        return np.stack([u, v], axis=-1)
