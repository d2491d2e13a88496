from types import SimpleNamespace

import pytest

from HandGestureNavigator.model_manager import HAND_LANDMARKER_FILENAME, ensure_hand_landmarker_model
from HandGestureNavigator.pose_estimator import (
    Handedness,
    JointName,
    MediaPipeHandEstimator,
    _to_observation,
)


def _landmarks(count: int = 21, visibility: float = 0.0) -> list:
    return [
        SimpleNamespace(x=i / 100, y=1 - i / 100, z=0.0, visibility=visibility)
        for i in range(count)
    ]


def test_joint_names_follow_mediapipe_indices() -> None:
    assert len(JointName) == 21
    assert JointName.WRIST.value == 0
    assert JointName.INDEX_TIP.value == 8
    assert JointName.LITTLE_TIP.value == 20


@pytest.mark.parametrize(
    "label, expected",
    [("Left", Handedness.LEFT), ("right", Handedness.RIGHT), (None, Handedness.UNKNOWN), ("", Handedness.UNKNOWN)],
)
def test_handedness_from_label(label, expected) -> None:
    assert Handedness.from_label(label) is expected


def test_to_observation_uses_hand_score_without_visibility() -> None:
    observation = _to_observation(_landmarks(), "Right", 0.87)

    assert observation.handedness is Handedness.RIGHT
    assert observation.confidence == pytest.approx(0.87)
    index_tip = observation.joints[JointName.INDEX_TIP]
    assert (index_tip.x, index_tip.y) == (pytest.approx(0.08), pytest.approx(0.92))
    assert all(point.confidence == pytest.approx(0.87) for point in observation.joints.values())


def test_to_observation_prefers_joint_visibility() -> None:
    observation = _to_observation(_landmarks(visibility=0.4), "Left", 0.9)

    assert observation.joints[JointName.WRIST].confidence == pytest.approx(0.4)


def test_to_observation_skips_missing_landmarks() -> None:
    observation = _to_observation(_landmarks(count=5), None, 1.0)

    assert set(observation.joints) == {
        JointName.WRIST,
        JointName.THUMB_CMC,
        JointName.THUMB_MP,
        JointName.THUMB_IP,
        JointName.THUMB_TIP,
    }
    assert observation.handedness is Handedness.UNKNOWN


def test_estimator_reports_top_left_origin() -> None:
    estimator = MediaPipeHandEstimator(max_num_hands=1)

    assert estimator.origin_bottom_left is False
    assert not estimator.is_initialized


def test_cached_model_is_reused_without_download(tmp_path) -> None:
    cached = tmp_path / HAND_LANDMARKER_FILENAME
    cached.write_bytes(b"model")

    path = ensure_hand_landmarker_model(cache_dir=tmp_path, url="http://invalid.example/none")

    assert path == str(cached)
