# factorslam

Tools for building a coloured map from a sequence of lidar scans:

- **Cloud fusion** (`factorslam.cloud`): coloured point clouds, and merging
  the clouds of several sensors once each has delivered one with the same
  time stamp.
- **IMU integration** (`factorslam.imu`): dead reckoning of position,
  velocity and attitude from accelerometer and gyroscope readings.
- **Registration** (`factorslam.registration`): surface normal estimation
  and point-to-plane ICP.
- **Scan-to-scan odometry** (`factorslam.slam`): filtering of scans,
  registration of each scan against the previous one, pose composition and
  map accumulation, plus a command-line tool.

Requires Python 3.10 or later, NumPy and SciPy.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Point clouds

`PointCloud(points, colors=None)` holds an `(N, 3)` float array of points
and an `(N, 3)` `uint8` array of RGB colours (black when omitted; channel
values outside 0..255 raise `ValueError`).

```python
import numpy as np
from factorslam.cloud import PointCloud, fuse_clouds

a = PointCloud(np.array([[1.0, 2.0, 3.0]]), np.array([[255, 0, 0]]))
b = PointCloud(np.array([[4.0, 5.0, 6.0]]))

merged = a + b                      # concatenation, a's points first
same = fuse_clouds(a, b)            # the same, for any number of clouds
len(merged)                         # 2
moved = a.transformed(np.eye(4))    # copy moved by a 4x4 homogeneous transform
PointCloud.empty()                  # a cloud with no points
```

### Fusing synchronised streams

`CloudFuser(topics, publish=None, queue_size=10)` collects clouds by topic
and time stamp. When every topic has delivered a cloud for the same stamp,
`receive` returns the clouds fused in topic order and passes them to
`publish` if one was given; otherwise it returns `None`.

```python
from factorslam.cloud import CloudFuser

fused = []
fuser = CloudFuser(["forward_center", "left", "right"], publish=fused.append)
fuser.receive("forward_center", 1.0, a)
fuser.receive("left", 1.0, b)
result = fuser.receive("right", 1.0, a)   # all three present: fused cloud
```

Stamps must be hashable and comparable. After a set is published, any
incomplete sets with an older stamp are dropped, and clouds with a stamp no
newer than the last published one are ignored. At most `queue_size`
incomplete sets are held; the oldest are dropped first. `fuser.pending`
gives the number held. Unknown topics, duplicate topics, an empty topic list
and a non-positive `queue_size` raise `ValueError`.

## IMU integration

```python
from factorslam.imu import ImuIntegrator, rotation_3d, transform_3d

rotation = rotation_3d(0.5, 0.0, 0.0)                # Rz(yaw) @ Ry(pitch) @ Rx(roll)
matrix = transform_3d(0.5, 0.0, 0.0, 1.0, 2.0, 0.0)  # 4x4 with translation

imu = ImuIntegrator(gravity=(0.0, 0.0, 0.0))
imu.observe(linear_acceleration=(1.0, 0.0, 0.0), angular_velocity=(0.0, 0.0, 0.0))
state = imu.integrate(0.1)   # nine values: position, velocity, roll/pitch/yaw
imu.position, imu.velocity, imu.angles
```

`observe` records a reading and the current body orientation; `integrate(dt)`
advances the state by `dt` seconds using that reading (position from the
previous velocity, velocity from the rotated, bias-corrected acceleration
plus gravity, angles from the gyroscope rates). A non-positive `dt` leaves
the state unchanged. Vectors that do not have three components raise
`ValueError`.

## Registration

`estimate_normals(points, radius=1.0, viewpoint=...)` fits a plane to the
neighbours within `radius` of each point and returns `(normals, curvature)`.
Normals are oriented towards `viewpoint`; points with fewer than three
neighbours (or non-finite coordinates) get NaN.

`PointToPlaneIcp(max_correspondence_distance=2.0, transformation_epsilon=1e-6,
euclidean_fitness_epsilon=1e-6, max_iterations=50)` aligns a source cloud to
a target cloud:

```python
from factorslam.registration import PointToPlaneIcp

icp = PointToPlaneIcp()
result = icp.align(source_points, target_points)   # target normals estimated if not given
result.converged, result.transformation, result.fitness_score
result.iterations, result.aligned
```

`source` and `target` may be `PointCloud`s or `(N, 3)` arrays. The run stops
as converged when the step becomes small, the mean squared correspondence
distance settles, or `max_iterations` is reached. It reports not converged
when either cloud is empty or fewer than three correspondences lie within
`max_correspondence_distance`. `fitness_score` is the mean squared distance
from each aligned source point to its nearest target point.

## Scan-to-scan odometry

```python
from factorslam.slam import SlamNode

node = SlamNode()
for cloud in scans:
    pose = node.process(cloud)
```

For each scan, `process`:

1. drops points closer than `min_scan_range` (default 10) in the XY plane
   and points coloured `(0, 0, 142)` (vehicles) or `(220, 20, 60)`
   (pedestrians) — `remove_dynamic_objects`;
2. drops points below a height of 0.5 for matching — `remove_ground`;
3. on the first scan, sets the pose to the identity, stores the scan and
   returns `None`;
4. otherwise registers the scan against the previously stored one with
   point-to-plane ICP; if that does not converge it returns `None`;
5. composes the result onto the last pose, transforms the filtered scan
   (ground included) by the new pose, adds it to `node.map`, stores the scan
   and returns the new `Pose`.

The first scan is stored for matching but not added to `node.map`.
`max_scan_range` is accepted and kept on the node but does not filter
points. The node also keeps `count`, `last_pose`, `map_list`, `last_source`,
`last_target` and `last_fitness`, and logs progress through the
`factorslam.slam` logger.

`Pose(rotation, translation)` offers `compose`, `Pose.from_matrix`,
`matrix`, `x`, `y`, `z`, `roll`, `pitch` and `yaw`. `transform_2d(theta, xt,
yt)` builds a planar 4x4 transform, and `format_matrix(matrix)` renders the
rotation block and translation of a 4x4 transform as text.

## Command line

```
factorslam-slam scan1.txt scan2.txt scan3.txt --output map.txt
```

Each scan file is whitespace-separated text with rows of `x y z` or
`x y z r g b`. The scans are processed in the order given; for every scan
that is registered, the pose is printed as a matrix followed by its
`x y z` and `roll pitch yaw`. Options:

- `--output FILE`: write the accumulated map as rows of `x y z r g b`.
- `--min-range R`: minimum XY range kept (default 10).
- `--max-range R`: stored on the node (default 300); does not filter.

## What it does not do

The package works on clouds held in memory or read from text files. It does
not subscribe to or publish on any message bus, read sensor drivers or
recorded logs, or run as a long-lived service; `CloudFuser` and `SlamNode`
are fed by calling `receive` and `process`. The IMU integrator is not
connected to the odometry. There is no pose-graph optimisation or loop
closure: poses come only from chaining scan-to-scan registrations.