"""
Tests for rigcal.types dataclasses.
"""

import numpy as np
import pytest

from rigcal.errors import InvalidConfiguration
from rigcal.types import (
    CalibrationFlags,
    CameraIntrinsics,
    ChessboardConfig,
    MarkerMap,
    Mode,
    Pattern,
    Plane,
    PointCorrespondences,
    SessionSettings,
    concat_correspondences,
    total_points,
)


class TestPlane:
    def test_parse_labels(self):
        assert Plane.parse("XY") is Plane.XY
        assert Plane.parse("yz") is Plane.YZ
        assert Plane.parse(" XZ ") is Plane.XZ

    def test_parse_passthrough(self):
        assert Plane.parse(Plane.YZ) is Plane.YZ

    def test_parse_invalid(self):
        with pytest.raises(InvalidConfiguration, match="Unrecognized plane"):
            Plane.parse("ZZ")

    def test_index(self):
        assert [p.index for p in (Plane.XY, Plane.YZ, Plane.XZ)] == [0, 1, 2]


class TestPointCorrespondences:
    def test_coerces_to_float32(self):
        pc = PointCorrespondences(
            image_points=[[1, 2], [3, 4]],
            object_points=[[0, 0, 0], [1, 0, 0]],
        )
        assert pc.image_points.dtype == np.float32
        assert pc.object_points.dtype == np.float32
        assert pc.image_points.shape == (2, 2)
        assert pc.object_points.shape == (2, 3)
        assert len(pc) == 2

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="mismatch"):
            PointCorrespondences(
                image_points=np.zeros((3, 2)),
                object_points=np.zeros((2, 3)),
            )

    def test_empty(self):
        pc = PointCorrespondences.empty()
        assert len(pc) == 0
        assert pc.image_points.shape == (0, 2)
        assert pc.object_points.shape == (0, 3)

    def test_frozen(self):
        pc = PointCorrespondences.empty()
        with pytest.raises(AttributeError):
            pc.image_points = np.zeros((1, 2))

    def test_concat_preserves_order(self):
        a = PointCorrespondences([[1, 1]], [[1, 0, 0]])
        b = PointCorrespondences([[2, 2], [3, 3]], [[2, 0, 0], [3, 0, 0]])
        joined = concat_correspondences([a, PointCorrespondences.empty(), b])
        assert len(joined) == 3
        np.testing.assert_array_equal(joined.object_points[:, 0], [1, 2, 3])

    def test_concat_all_empty(self):
        joined = concat_correspondences([PointCorrespondences.empty()] * 3)
        assert len(joined) == 0

    def test_total_points(self):
        a = PointCorrespondences([[1, 1]], [[1, 0, 0]])
        assert total_points([a, PointCorrespondences.empty(), a]) == 2


class TestCalibrationFlags:
    def test_defaults(self):
        flags = CalibrationFlags()
        assert flags.fix_k == (False,) * 5
        assert flags.aspect_ratio == 0.0

    def test_from_digits(self):
        flags = CalibrationFlags.from_digits("00111")
        assert flags.fix_k == (False, False, True, True, True)

    def test_from_digits_invalid(self):
        with pytest.raises(InvalidConfiguration, match="five 0/1 digits"):
            CalibrationFlags.from_digits("0011")
        with pytest.raises(InvalidConfiguration):
            CalibrationFlags.from_digits("00a11")

    def test_wrong_fix_count(self):
        with pytest.raises(InvalidConfiguration, match="5 entries"):
            CalibrationFlags(fix_k=(True, True))

    def test_negative_aspect_ratio(self):
        with pytest.raises(InvalidConfiguration, match="aspect ratio"):
            CalibrationFlags(aspect_ratio=-1.0)

    def test_fix_all_distortion(self):
        flags = CalibrationFlags.fix_all_distortion(fix_principal_point=True)
        assert all(flags.fix_k)
        assert flags.fix_tangent_dist
        assert flags.fix_principal_point


class TestMarkerMap:
    def test_len(self):
        mm = MarkerMap(
            dictionary="DICT_4X4_50",
            marker_ids=np.array([3, 7]),
            corners=np.zeros((2, 4, 3)),
        )
        assert len(mm) == 2


class TestCameraIntrinsics:
    def test_creation(self, sample_intrinsics_matrix, sample_distortion):
        intrinsics = CameraIntrinsics(
            resolution=(1280, 720),
            matrix=sample_intrinsics_matrix,
            distortion=sample_distortion,
            error=0.3,
            grid_count=25,
        )
        assert intrinsics.resolution == (1280, 720)
        assert intrinsics.matrix.shape == (3, 3)
        assert intrinsics.distortion.shape == (5,)
        assert intrinsics.per_view_errors == ()
        assert intrinsics.grid_count == 25

    def test_frozen(self, sample_camera_intrinsics):
        with pytest.raises(AttributeError):
            sample_camera_intrinsics.error = 0.5


class TestSettings:
    def test_chessboard_config(self):
        board = ChessboardConfig(width=7, height=5)
        assert board.board_size == (7, 5)
        assert board.corner_count == 35

    def test_session_settings_properties(self):
        settings = SessionSettings(mode=Mode.STEREO, pattern=Pattern.ARUCO_SINGLE)
        assert settings.is_stereo
        assert settings.uses_markers

        settings = SessionSettings(mode=Mode.INTRINSIC, pattern=Pattern.CHESSBOARD)
        assert not settings.is_stereo
        assert not settings.uses_markers
