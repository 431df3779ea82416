"""Coloured point clouds and fusion of synchronised cloud streams."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field

import numpy as np


@dataclass(eq=False)
class PointCloud:
    """An unordered set of XYZ points, each with an RGB colour."""

    points: np.ndarray = field(default_factory=lambda: np.empty((0, 3)))
    colors: np.ndarray | None = None

    def __post_init__(self) -> None:
        points = np.asarray(self.points, dtype=float)
        if points.size == 0:
            points = points.reshape(0, 3)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"points must have shape (N, 3), got {points.shape}")
        if self.colors is None:
            colors = np.zeros((len(points), 3), dtype=np.uint8)
        else:
            colors = np.asarray(self.colors)
            if colors.size == 0:
                colors = colors.reshape(0, 3)
            if colors.shape != points.shape:
                raise ValueError(
                    f"colors must have shape {points.shape}, got {colors.shape}"
                )
            if np.any(colors < 0) or np.any(colors > 255):
                raise ValueError("colour channels must lie in 0..255")
            colors = colors.astype(np.uint8)
        self.points = points
        self.colors = colors

    @classmethod
    def empty(cls) -> PointCloud:
        """Return a cloud with no points."""
        return cls(np.empty((0, 3)), np.empty((0, 3), dtype=np.uint8))

    def __len__(self) -> int:
        return len(self.points)

    def __add__(self, other: PointCloud) -> PointCloud:
        if not isinstance(other, PointCloud):
            return NotImplemented
        return PointCloud(
            np.vstack([self.points, other.points]),
            np.vstack([self.colors, other.colors]),
        )

    def transformed(self, matrix) -> PointCloud:
        """Return a copy with every point moved by a 4x4 homogeneous transform."""
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape != (4, 4):
            raise ValueError(f"transform must be 4x4, got {matrix.shape}")
        moved = self.points @ matrix[:3, :3].T + matrix[:3, 3]
        return PointCloud(moved, self.colors.copy())


def fuse_clouds(*args: PointCloud) -> PointCloud:
    """Concatenate clouds in the order given."""
    if not args:
        return PointCloud.empty()
    return PointCloud(
        np.vstack([cloud.points for cloud in args]),
        np.vstack([cloud.colors for cloud in args]),
    )


class CloudFuser:
    """Merges clouds from several topics whose time stamps match exactly.

    When every topic has delivered a cloud for the same stamp, the clouds are
    fused in topic order and handed to ``publish``. Incomplete sets older than
    a published one are discarded, and at most ``queue_size`` incomplete sets
    are kept at a time.
    """

    def __init__(
        self,
        topics: Iterable[str],
        publish: Callable[[PointCloud], object] | None = None,
        queue_size: int = 10,
    ) -> None:
        self.topics = tuple(topics)
        if not self.topics:
            raise ValueError("at least one topic is required")
        if len(set(self.topics)) != len(self.topics):
            raise ValueError("topics must be distinct")
        if queue_size < 1:
            raise ValueError("queue_size must be positive")
        self.publish = publish
        self.queue_size = queue_size
        self._pending: dict[Hashable, dict[str, PointCloud]] = {}
        self._last_stamp = None

    @property
    def pending(self) -> int:
        """Number of incomplete stamp sets being held."""
        return len(self._pending)

    def receive(self, topic: str, stamp, cloud: PointCloud) -> PointCloud | None:
        """Accept one cloud; return the fused cloud if this completed a set."""
        if topic not in self.topics:
            raise ValueError(f"unknown topic {topic!r}")
        if self._last_stamp is not None and stamp <= self._last_stamp:
            return None
        group = self._pending.setdefault(stamp, {})
        group[topic] = cloud
        if len(group) == len(self.topics):
            fused = fuse_clouds(*(group[name] for name in self.topics))
            self._pending = {
                key: value for key, value in self._pending.items() if key > stamp
            }
            self._last_stamp = stamp
            if self.publish is not None:
                self.publish(fused)
            return fused
        while len(self._pending) > self.queue_size:
            del self._pending[min(self._pending)]
        return None