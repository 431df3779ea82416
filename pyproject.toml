[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "factorslam"
version = "0.1.0"
description = "Point-cloud fusion, IMU dead reckoning and point-to-plane ICP scan matching for lidar odometry and mapping"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "scipy",
]
keywords = ["slam", "lidar", "point cloud", "icp", "imu", "odometry", "robotics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
factorslam-slam = "factorslam.slam:main"

[tool.hatch.build.targets.wheel]
packages = ["factorslam"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
