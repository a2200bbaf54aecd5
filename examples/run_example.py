import argparse
import glob
import logging
import os

import cv2

from monoslam import CameraModel, SlamConfig, Tracker
from monoslam.utils import save_map_npz, setup_logging

logger = logging.getLogger("run_example")


def main():
    parser = argparse.ArgumentParser(description='Initialize a map from an image sequence')
    parser.add_argument('--sequence', type=str, required=True, help='Directory of grayscale images')
    parser.add_argument('--settings', type=str, default=None,
                        help='ORB-SLAM style YAML settings (EuRoC calibration if omitted)')
    parser.add_argument('--output', type=str, default='map.npz', help='Where to save the map')
    parser.add_argument('--fps', type=float, default=20.0, help='Frame rate used for timestamps')
    parser.add_argument('--log-level', type=str, default='INFO')
    args = parser.parse_args()

    setup_logging(args.log_level)

    if args.settings is not None:
        camera = CameraModel.from_settings(args.settings)
        config = SlamConfig.from_settings(args.settings)
    else:
        camera = CameraModel.euroc()
        config = SlamConfig()

    slam = Tracker(camera, config)

    paths = sorted(glob.glob(os.path.join(args.sequence, '*.png')))
    for i, path in enumerate(paths):
        image = cv2.imread(path, cv2.IMREAD_GRAYSCALE)
        if image is None:
            logger.warning("Could not read %s", path)
            continue
        slam.track(i / args.fps, image)
        if slam.is_initialized():
            break

    if not slam.is_initialized():
        logger.error("Initialization did not succeed over %d images", len(paths))
        return

    save_map_npz(args.output, slam.map)
    logger.info("Saved %r to %s", slam.map, args.output)


if __name__ == "__main__":
    main()
