"""Dead-reckoning integration of inertial measurements."""

from __future__ import annotations

import numpy as np


def rotation_3d(yaw: float, pitch: float, roll: float) -> np.ndarray:
    """Return the 3x3 rotation Rz(yaw) @ Ry(pitch) @ Rx(roll)."""
    cy, sy = np.cos(yaw), np.sin(yaw)
    cp, sp = np.cos(pitch), np.sin(pitch)
    cr, sr = np.cos(roll), np.sin(roll)
    return np.array(
        [
            [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
            [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
            [-sp, cp * sr, cp * cr],
        ]
    )


def transform_3d(
    yaw: float, pitch: float, roll: float, xt: float, yt: float, zt: float
) -> np.ndarray:
    """Return the 4x4 homogeneous transform for a rotation and translation."""
    matrix = np.eye(4)
    matrix[:3, :3] = rotation_3d(yaw, pitch, roll)
    matrix[:3, 3] = [xt, yt, zt]
    return matrix


def _vector3(value, name: str) -> np.ndarray:
    vector = np.asarray(value, dtype=float)
    if vector.shape != (3,):
        raise ValueError(f"{name} must have three components, got shape {vector.shape}")
    return vector


class ImuIntegrator:
    """Integrates accelerometer and gyroscope readings into a nine-element state.

    The state holds position (0:3), velocity (3:6) and the angles roll, pitch,
    yaw (6:9).
    """

    def __init__(self, gravity=(0.0, 0.0, 0.0)) -> None:
        self.gravity = _vector3(gravity, "gravity")
        self.bias_accel = np.zeros(3)
        self.bias_gyro = np.zeros(3)
        self.state = np.zeros(9)
        self.accel_obs = np.zeros(3)
        self.gyro_obs = np.zeros(3)
        self.rotation = np.eye(3)
        self.rotation_rate = np.zeros((3, 3))

    @property
    def position(self) -> np.ndarray:
        return self.state[0:3].copy()

    @property
    def velocity(self) -> np.ndarray:
        return self.state[3:6].copy()

    @property
    def angles(self) -> np.ndarray:
        """Roll, pitch and yaw."""
        return self.state[6:9].copy()

    def observe(self, linear_acceleration, angular_velocity) -> None:
        """Record one IMU reading and the body orientation at that moment."""
        self.accel_obs = _vector3(linear_acceleration, "linear_acceleration")
        self.gyro_obs = _vector3(angular_velocity, "angular_velocity")
        roll, pitch, yaw = self.state[6:9]
        self.rotation = rotation_3d(yaw, pitch, roll)
        self.rotation_rate = np.diag(self.gyro_obs)

    def integrate(self, dt: float) -> np.ndarray:
        """Advance the state by ``dt`` seconds; non-positive steps change nothing."""
        if dt > 0:
            accel_inertial = self.rotation @ (self.accel_obs - self.bias_accel)
            position = self.state[0:3] + self.state[3:6] * dt
            velocity = self.state[3:6] + accel_inertial * dt + self.gravity * dt
            angles = self.state[6:9] + self.rotation_rate @ (
                self.gyro_obs - self.bias_gyro
            ) * dt
            self.state = np.concatenate([position, velocity, angles])
        return self.state.copy()