"""Point-cloud fusion, IMU dead reckoning, point-to-plane ICP and scan-to-scan lidar odometry."""

__version__ = "0.1.0"

__all__ = ["cloud", "imu", "registration", "slam"]