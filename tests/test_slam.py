import numpy as np
import pytest

from factorslam.cloud import PointCloud
from factorslam.imu import rotation_3d, transform_3d
from factorslam.slam import (
    Pose,
    SlamNode,
    format_matrix,
    main,
    remove_dynamic_objects,
    remove_ground,
    transform_2d,
)


def _scene() -> PointCloud:
    step = 0.25
    ys, zs = np.meshgrid(np.arange(-3, 3.01, step), np.arange(1.0, 3.01, step))
    wall_x = np.column_stack([np.full(ys.size, 12.0), ys.ravel(), zs.ravel()])
    xs, zs2 = np.meshgrid(np.arange(-3, 3.01, step), np.arange(1.0, 3.01, step))
    wall_y = np.column_stack([xs.ravel(), np.full(xs.size, 12.0), zs2.ravel()])
    cx, cy = np.meshgrid(np.arange(11, 14, step), np.arange(-2, 2, step))
    ceiling = np.column_stack([cx.ravel(), cy.ravel(), np.full(cx.size, 5.0)])
    return PointCloud(np.vstack([wall_x, wall_y, ceiling]))


def test_remove_dynamic_objects_filters_range_and_colours():
    points = np.array(
        [
            [5.0, 0.0, 1.0],
            [10.0, 0.0, 1.0],
            [20.0, 0.0, 1.0],
            [0.0, 20.0, 1.0],
            [15.0, 15.0, 1.0],
        ]
    )
    colors = np.array(
        [[1, 1, 1], [1, 1, 1], [0, 0, 142], [220, 20, 60], [0, 0, 141]]
    )
    result = remove_dynamic_objects(PointCloud(points, colors), 10.0)
    np.testing.assert_array_equal(result.points, points[[1, 4]])
    np.testing.assert_array_equal(result.colors, colors[[1, 4]])


def test_remove_ground_keeps_points_at_threshold():
    points = np.array([[1.0, 0.0, 0.5], [1.0, 0.0, 0.49], [2.0, 0.0, 3.0]])
    colors = np.array([[10, 20, 30], [40, 50, 60], [70, 80, 90]])
    result = remove_ground(PointCloud(points, colors))
    np.testing.assert_array_equal(result.points, points[[0, 2]])
    np.testing.assert_array_equal(result.colors, colors[[0, 2]])


def test_transform_2d_matches_yaw_rotation():
    matrix = transform_2d(0.7, 3.0, -2.0)
    np.testing.assert_allclose(matrix[:3, :3], rotation_3d(0.7, 0.0, 0.0), atol=1e-12)
    np.testing.assert_allclose(matrix[:3, 3], [3.0, -2.0, 0.0])
    np.testing.assert_allclose(matrix[3], [0.0, 0.0, 0.0, 1.0])


def test_format_matrix_identity():
    expected = (
        "Rotation matrix :\n"
        "    |  1.000  0.000  0.000 | \n"
        "R = |  0.000  1.000  0.000 | \n"
        "    |  0.000  0.000  1.000 | \n"
        "Translation vector :\n"
        "t = <  0.000,  0.000,  0.000 >\n\n"
    )
    assert format_matrix(np.eye(4)) == expected


def test_format_matrix_rejects_wrong_shape():
    with pytest.raises(ValueError):
        format_matrix(np.eye(3))


def test_pose_compose_matches_matrix_product():
    a = transform_3d(0.3, -0.2, 0.1, 1.0, 2.0, 3.0)
    b = transform_3d(-0.5, 0.4, 0.2, -1.0, 0.5, 2.0)
    composed = Pose.from_matrix(a).compose(Pose.from_matrix(b))
    np.testing.assert_allclose(composed.matrix, a @ b, atol=1e-12)


def test_pose_from_matrix_round_trip_and_angles():
    matrix = transform_3d(0.4, -0.3, 0.2, 4.0, 5.0, 6.0)
    pose = Pose.from_matrix(matrix)
    np.testing.assert_allclose(pose.matrix, matrix)
    assert (pose.x, pose.y, pose.z) == (4.0, 5.0, 6.0)
    assert pose.yaw == pytest.approx(0.4)
    assert pose.pitch == pytest.approx(-0.3)
    assert pose.roll == pytest.approx(0.2)


def test_pose_from_matrix_rejects_wrong_shape():
    with pytest.raises(ValueError):
        Pose.from_matrix(np.eye(3))


def test_first_scan_is_stored_without_registration():
    node = SlamNode()
    assert node.process(_scene()) is None
    assert len(node.map) == 0
    assert len(node.map_list) == 1
    assert node.count == 1
    np.testing.assert_allclose(node.last_pose.matrix, np.eye(4))


def test_identical_scans_give_identity_pose():
    node = SlamNode()
    scene = _scene()
    node.process(scene)
    pose = node.process(scene)
    assert pose is not None
    np.testing.assert_allclose(pose.matrix, np.eye(4), atol=1e-6)
    assert len(node.map) == len(scene)
    assert len(node.map_list) == 2
    assert node.count == 2


def test_shifted_scan_recovers_translation():
    node = SlamNode()
    scene = _scene()
    shift = np.array([0.1, -0.1, 0.1])
    node.process(scene)
    pose = node.process(PointCloud(scene.points + shift))
    assert pose is not None
    np.testing.assert_allclose(pose.translation, -shift, atol=0.02)
    np.testing.assert_allclose(pose.rotation, np.eye(3), atol=0.02)
    np.testing.assert_allclose(node.map.points, scene.points, atol=0.03)


def test_main_writes_map(tmp_path, capsys):
    scene = _scene()
    scan = tmp_path / "scan.txt"
    np.savetxt(scan, np.hstack([scene.points, scene.colors.astype(float)]))
    out = tmp_path / "map.txt"
    assert main([str(scan), str(scan), "--output", str(out)]) == 0
    written = np.loadtxt(out, ndmin=2)
    assert written.shape == (len(scene), 6)
    np.testing.assert_allclose(written[:, :3], scene.points, atol=1e-5)
    assert "Rotation matrix :" in capsys.readouterr().out