"""Scan-to-scan lidar odometry that builds a coloured map."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field

import numpy as np

from factorslam.cloud import PointCloud
from factorslam.registration import DEFAULT_VIEWPOINT, PointToPlaneIcp, estimate_normals

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCAN_RANGE = 10.0
DEFAULT_MAX_SCAN_RANGE = 300.0
DEFAULT_MIN_HEIGHT = 0.5
NORMAL_RADIUS = 1.0

# Semantic colours of moving objects: vehicles and pedestrians.
DYNAMIC_COLORS = ((0, 0, 142), (220, 20, 60))


def remove_dynamic_objects(cloud: PointCloud, min_range: float = DEFAULT_MIN_SCAN_RANGE) -> PointCloud:
    """Drop points nearer than ``min_range`` in the XY plane and points coloured as moving objects."""
    radius = np.hypot(cloud.points[:, 0], cloud.points[:, 1])
    keep = ~(radius < min_range)
    for color in DYNAMIC_COLORS:
        keep &= ~np.all(cloud.colors == np.asarray(color, dtype=np.uint8), axis=1)
    return PointCloud(cloud.points[keep], cloud.colors[keep])


def remove_ground(cloud: PointCloud, min_height: float = DEFAULT_MIN_HEIGHT) -> PointCloud:
    """Keep only points whose height is at least ``min_height``."""
    keep = cloud.points[:, 2] >= min_height
    return PointCloud(cloud.points[keep], cloud.colors[keep])


def transform_2d(theta: float, xt: float, yt: float) -> np.ndarray:
    """Return the 4x4 transform of a planar rotation by ``theta`` and a translation."""
    matrix = np.eye(4)
    c, s = np.cos(theta), np.sin(theta)
    matrix[0, 0] = c
    matrix[0, 1] = -s
    matrix[1, 0] = s
    matrix[1, 1] = c
    matrix[0, 3] = xt
    matrix[1, 3] = yt
    return matrix


def format_matrix(matrix) -> str:
    """Render the rotation block and translation of a 4x4 transform as text."""
    m = np.asarray(matrix, dtype=float)
    if m.shape != (4, 4):
        raise ValueError(f"matrix must be 4x4, got {m.shape}")
    rows = [" ".join(f"{m[i, j]:6.3f}" for j in range(3)) for i in range(3)]
    translation = ", ".join(f"{m[i, 3]:6.3f}" for i in range(3))
    return (
        "Rotation matrix :\n"
        f"    | {rows[0]} | \n"
        f"R = | {rows[1]} | \n"
        f"    | {rows[2]} | \n"
        "Translation vector :\n"
        f"t = < {translation} >\n\n"
    )


@dataclass(frozen=True, eq=False)
class Pose:
    """A rigid body pose: a 3x3 rotation and a translation."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        rotation = np.array(self.rotation, dtype=float)
        translation = np.array(self.translation, dtype=float)
        if rotation.shape != (3, 3):
            raise ValueError(f"rotation must be 3x3, got {rotation.shape}")
        if translation.shape != (3,):
            raise ValueError(f"translation must have three components, got {translation.shape}")
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "translation", translation)

    @classmethod
    def from_matrix(cls, matrix) -> Pose:
        """Build a pose from a 4x4 homogeneous transform."""
        m = np.asarray(matrix, dtype=float)
        if m.shape != (4, 4):
            raise ValueError(f"matrix must be 4x4, got {m.shape}")
        return cls(m[:3, :3], m[:3, 3])

    @property
    def matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def compose(self, other: Pose) -> Pose:
        """Return this pose followed by ``other`` expressed in this pose's frame."""
        return Pose(
            self.rotation @ other.rotation,
            self.translation + self.rotation @ other.translation,
        )

    @property
    def x(self) -> float:
        return float(self.translation[0])

    @property
    def y(self) -> float:
        return float(self.translation[1])

    @property
    def z(self) -> float:
        return float(self.translation[2])

    @property
    def roll(self) -> float:
        return float(np.arctan2(self.rotation[2, 1], self.rotation[2, 2]))

    @property
    def pitch(self) -> float:
        r = self.rotation
        return float(np.arctan2(-r[2, 0], np.hypot(r[2, 1], r[2, 2])))

    @property
    def yaw(self) -> float:
        return float(np.arctan2(self.rotation[1, 0], self.rotation[0, 0]))


class SlamNode:
    """Registers each incoming scan against the previous one and accumulates a map."""

    def __init__(
        self,
        min_scan_range: float = DEFAULT_MIN_SCAN_RANGE,
        max_scan_range: float = DEFAULT_MAX_SCAN_RANGE,
        icp: PointToPlaneIcp | None = None,
    ) -> None:
        self.min_scan_range = float(min_scan_range)
        self.max_scan_range = float(max_scan_range)
        self.icp = icp if icp is not None else PointToPlaneIcp()
        self.count = 0
        self.last_pose = Pose()
        self.map = PointCloud.empty()
        self.map_list: list[PointCloud] = []
        self.last_source: PointCloud | None = None
        self.last_target: PointCloud | None = None
        self.last_fitness: float | None = None
        self._first_scan = True

    def process(self, cloud: PointCloud) -> Pose | None:
        """Handle one scan; return the new pose if it was registered, else None."""
        cloud = remove_dynamic_objects(cloud, self.min_scan_range)
        source = remove_ground(cloud)
        logger.info("count_ = %d", self.count)
        self.count += 1

        if self._first_scan:
            self.last_pose = Pose()
            self._first_scan = False
            self.map_list.append(cloud)
            return None

        target = self.map_list[-1]
        normals, _ = estimate_normals(target.points, NORMAL_RADIUS, DEFAULT_VIEWPOINT)
        missing = int(np.count_nonzero(~np.isfinite(normals).all(axis=1)))
        logger.debug("Dst has #%d points", len(target))
        logger.debug("Deleting #%d points", missing)

        result = self.icp.align(source, target, normals)
        if not result.converged:
            return None

        logger.info("has converged: 1 score: %g", result.fitness_score)
        logger.info("%s", format_matrix(result.transformation))

        self.last_pose = self.last_pose.compose(Pose.from_matrix(result.transformation))
        transformed = cloud.transformed(self.last_pose.matrix)
        self.map = self.map + transformed
        self.map_list.append(cloud)
        self.last_source = transformed
        self.last_target = target
        self.last_fitness = result.fitness_score

        pose = self.last_pose
        logger.info(
            "x= %g y= %g z= %g roll= %g pitch= %g yaw= %g",
            pose.x, pose.y, pose.z, pose.roll, pose.pitch, pose.yaw,
        )
        return pose


def _load_cloud(path: str) -> PointCloud:
    data = np.loadtxt(path, ndmin=2)
    if data.size == 0:
        return PointCloud.empty()
    if data.shape[1] == 3:
        return PointCloud(data)
    if data.shape[1] == 6:
        return PointCloud(data[:, :3], np.rint(data[:, 3:]).astype(int))
    raise ValueError(f"{path}: expected 3 or 6 columns, got {data.shape[1]}")


def main(argv=None) -> int:
    """Register a sequence of scans given as text files of x y z [r g b] rows."""
    parser = argparse.ArgumentParser(prog="slam", description=main.__doc__)
    parser.add_argument("scans", nargs="+", help="scan files in time order")
    parser.add_argument("--output", help="write the accumulated map to this file")
    parser.add_argument("--min-range", type=float, default=DEFAULT_MIN_SCAN_RANGE)
    parser.add_argument("--max-range", type=float, default=DEFAULT_MAX_SCAN_RANGE)
    args = parser.parse_args(argv)

    node = SlamNode(args.min_range, args.max_range)
    for path in args.scans:
        pose = node.process(_load_cloud(path))
        if pose is not None:
            print(format_matrix(pose.matrix), end="")
            print(f"x= {pose.x} y= {pose.y} z= {pose.z}")
            print(f"roll= {pose.roll} pitch= {pose.pitch} yaw= {pose.yaw}")

    if args.output:
        np.savetxt(
            args.output,
            np.hstack([node.map.points, node.map.colors.astype(float)]),
            fmt=["%.6f"] * 3 + ["%d"] * 3,
        )
    return 0