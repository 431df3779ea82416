"""Surface normal estimation and point-to-plane ICP registration."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from factorslam.cloud import PointCloud
from factorslam.imu import rotation_3d

DEFAULT_NORMAL_RADIUS = 1.0
DEFAULT_VIEWPOINT = (float(np.finfo(np.float32).max),) * 3

_MIN_CORRESPONDENCES = 3
_ROTATION_THRESHOLD = 0.99999
_ABSOLUTE_MSE_THRESHOLD = 1e-12


def _as_points(value, name: str) -> np.ndarray:
    if isinstance(value, PointCloud):
        return value.points
    points = np.asarray(value, dtype=float)
    if points.size == 0:
        points = points.reshape(0, 3)
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"{name} must have shape (N, 3), got {points.shape}")
    return points


def estimate_normals(points, radius=DEFAULT_NORMAL_RADIUS, viewpoint=DEFAULT_VIEWPOINT):
    """Estimate a unit normal and surface curvature for every point.

    Neighbours within ``radius`` are fitted with a plane; the normal is the
    direction of least variance, oriented towards ``viewpoint``. Points with
    fewer than three neighbours get NaN for both normal and curvature.
    Returns ``(normals, curvature)`` with shapes (N, 3) and (N,).
    """
    points = _as_points(points, "points")
    if radius <= 0:
        raise ValueError("radius must be positive")
    viewpoint = np.asarray(viewpoint, dtype=float)
    if viewpoint.shape != (3,):
        raise ValueError(f"viewpoint must have three components, got {viewpoint.shape}")

    normals = np.full(points.shape, np.nan)
    curvature = np.full(len(points), np.nan)
    finite = np.isfinite(points).all(axis=1)
    usable = points[finite]
    if len(usable) == 0:
        return normals, curvature

    tree = cKDTree(usable)
    neighbourhoods = tree.query_ball_point(points[finite], radius)
    rows = np.flatnonzero(finite)
    for row, point, neighbours in zip(rows, points[finite], neighbourhoods):
        if len(neighbours) < 3:
            continue
        local = usable[neighbours]
        centred = local - local.mean(axis=0)
        covariance = centred.T @ centred / len(local)
        eigenvalues, eigenvectors = np.linalg.eigh(covariance)
        normal = eigenvectors[:, 0]
        if np.dot(viewpoint - point, normal) < 0:
            normal = -normal
        total = eigenvalues.sum()
        normals[row] = normal
        curvature[row] = abs(eigenvalues[0]) / total if total != 0 else 0.0
    return normals, curvature


@dataclass(frozen=True)
class IcpResult:
    """Outcome of one registration run."""

    converged: bool
    transformation: np.ndarray
    fitness_score: float
    iterations: int
    aligned: np.ndarray


class PointToPlaneIcp:
    """Iterative closest point registration minimising point-to-plane distances."""

    def __init__(
        self,
        max_correspondence_distance: float = 2.0,
        transformation_epsilon: float = 1e-6,
        euclidean_fitness_epsilon: float = 1e-6,
        max_iterations: int = 50,
    ) -> None:
        if max_correspondence_distance <= 0:
            raise ValueError("max_correspondence_distance must be positive")
        if transformation_epsilon < 0:
            raise ValueError("transformation_epsilon must not be negative")
        if euclidean_fitness_epsilon < 0:
            raise ValueError("euclidean_fitness_epsilon must not be negative")
        if max_iterations < 1:
            raise ValueError("max_iterations must be positive")
        self.max_correspondence_distance = float(max_correspondence_distance)
        self.transformation_epsilon = float(transformation_epsilon)
        self.euclidean_fitness_epsilon = float(euclidean_fitness_epsilon)
        self.max_iterations = int(max_iterations)

    def _step_is_small(self, delta: np.ndarray) -> bool:
        cos_angle = 0.5 * (float(delta[:3, :3].diagonal().sum()) - 1.0)
        translation_sqr = float(delta[:3, 3] @ delta[:3, 3])
        return (
            cos_angle >= _ROTATION_THRESHOLD
            and translation_sqr <= self.transformation_epsilon
        )

    def _fitness_settled(self, mse: float, previous: float | None) -> bool:
        if previous is None:
            return False
        change = abs(mse - previous)
        if change < _ABSOLUTE_MSE_THRESHOLD:
            return True
        return previous > 0 and change / previous < self.euclidean_fitness_epsilon

    def align(self, source, target, target_normals=None) -> IcpResult:
        """Find the rigid transform that moves ``source`` onto ``target``."""
        src = _as_points(source, "source")
        tgt = _as_points(target, "target")
        src = src[np.isfinite(src).all(axis=1)]
        if target_normals is None:
            normals, _ = estimate_normals(tgt, DEFAULT_NORMAL_RADIUS)
        else:
            normals = np.asarray(target_normals, dtype=float)
            if normals.shape != tgt.shape:
                raise ValueError(
                    f"target_normals must have shape {tgt.shape}, got {normals.shape}"
                )
        valid = np.isfinite(tgt).all(axis=1) & np.isfinite(normals).all(axis=1)
        tgt, normals = tgt[valid], normals[valid]

        identity = np.eye(4)
        if len(src) == 0 or len(tgt) == 0:
            return IcpResult(False, identity, float("inf"), 0, src.copy())

        tree = cKDTree(tgt)
        transform = identity.copy()
        previous_mse: float | None = None
        iterations = 0
        converged = False
        while True:
            moved = src @ transform[:3, :3].T + transform[:3, 3]
            distances, indices = tree.query(
                moved, distance_upper_bound=self.max_correspondence_distance
            )
            matched = np.isfinite(distances)
            if matched.sum() < _MIN_CORRESPONDENCES:
                break
            p = moved[matched]
            q = tgt[indices[matched]]
            n = normals[indices[matched]]
            design = np.hstack([np.cross(p, n), n])
            residual = np.einsum("ij,ij->i", q - p, n)
            x = np.linalg.lstsq(design, residual, rcond=None)[0]

            delta = np.eye(4)
            delta[:3, :3] = rotation_3d(x[2], x[1], x[0])
            delta[:3, 3] = x[3:]
            transform = delta @ transform
            iterations += 1

            mse = float(np.mean(distances[matched] ** 2))
            if (
                iterations >= self.max_iterations
                or self._step_is_small(delta)
                or self._fitness_settled(mse, previous_mse)
            ):
                converged = True
                break
            previous_mse = mse

        aligned = src @ transform[:3, :3].T + transform[:3, 3]
        nearest, _ = tree.query(aligned)
        fitness = float(np.mean(nearest ** 2)) if len(nearest) else float("inf")
        return IcpResult(converged, transform, fitness, iterations, aligned)