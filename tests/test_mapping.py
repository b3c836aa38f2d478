from __future__ import annotations

import pytest

from poseoverlay.logic.mapping import backing_size, map_pose
from poseoverlay.utils.structures import JointId, Keypoint, Pose
from tests.fakes import make_pose


def test_identity_mapping_keeps_coordinates():
    pose = make_pose()
    mapped = map_pose(pose, (640, 480), (640, 480))
    assert [(kp.x, kp.y) for kp in mapped] == [(kp.x, kp.y) for kp in pose]
    assert map_pose(mapped, (640, 480), (640, 480)) == mapped


def test_scaling_and_inverse():
    pose = make_pose()
    scaled = map_pose(pose, (640, 480), (1280, 720))
    knee = scaled.find(JointId.LEFT_KNEE)
    assert knee.x == pytest.approx(580.0)
    assert knee.y == pytest.approx(495.0)
    assert scaled.image_size == (1280, 720)
    back = map_pose(scaled, (1280, 720), (640, 480))
    for original, restored in zip(pose, back):
        assert restored.x == pytest.approx(original.x)
        assert restored.y == pytest.approx(original.y)


def test_mapping_is_pure():
    pose = make_pose()
    first = map_pose(pose, (640, 480), (960, 720))
    second = map_pose(pose, (640, 480), (960, 720))
    assert first == second
    assert pose.find(JointId.NOSE).x == 320


def test_missing_confidence_becomes_one():
    pose = Pose(keypoints=(Keypoint(JointId.NOSE, 10, 10),), image_size=(100, 100))
    assert map_pose(pose, (100, 100), (50, 50)).find(JointId.NOSE).confidence == 1.0


def test_non_positive_source_size_rejected():
    with pytest.raises(ValueError):
        map_pose(make_pose(), (0, 480), (640, 480))


def test_backing_size():
    assert backing_size((480, 270), 2.0) == (960, 540)
    assert backing_size((0.2, 0.2), 1.0) == (1, 1)
    assert backing_size((100, 50), 0) == (100, 50)
