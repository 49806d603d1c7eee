"""Tests for core.zoom_controller and core.camera_session modules."""

from dataclasses import replace

import numpy as np
import pytest

from core.camera_session import CameraSession, DigitalZoomSession, ZoomState
from core.config import DEFAULT_CONFIG
from core.utils import CameraUnavailableError
from core.zoom_controller import ZoomController


@pytest.fixture
def session():
    s = DigitalZoomSession(min_ratio=1.0, max_ratio=5.0)
    s.open()
    yield s
    s.close()


@pytest.fixture
def controller(session):
    c = ZoomController(session, DEFAULT_CONFIG)
    c.initialize()
    yield c
    c.cleanup()


class TestSetLevel:
    @pytest.mark.parametrize("requested,expected", [
        (0.2, 1.0),
        (1.0, 1.0),
        (2.7, 2.7),
        (5.0, 5.0),
        (42.0, 5.0),
        (-3.0, 1.0),
    ])
    def test_clamps_to_range(self, controller, session, requested, expected):
        assert controller.set_level(requested)
        assert controller.current_level == pytest.approx(expected)
        assert session.zoom_state.ratio == pytest.approx(expected)

    def test_fails_before_initialize(self, session):
        assert not ZoomController(session).set_level(2.0)

    def test_fails_when_session_closed(self, controller, session):
        session.close()
        assert not controller.set_level(2.0)
        assert controller.current_level == 1.0

    def test_camera_range_narrows_limits(self):
        session = DigitalZoomSession(min_ratio=1.0, max_ratio=2.0)
        session.open()
        controller = ZoomController(session, DEFAULT_CONFIG)
        controller.initialize()
        assert controller.max_level == 2.0
        controller.set_level(4.0)
        assert controller.current_level == 2.0
        controller.cleanup()
        session.close()


class TestSteps:
    def test_zoom_in_never_exceeds_max(self, controller):
        for _ in range(100):
            controller.zoom_in()
            assert controller.current_level <= controller.max_level
        assert controller.current_level == pytest.approx(controller.max_level)

    def test_zoom_out_never_below_min(self, controller):
        controller.set_level(1.3)
        for _ in range(10):
            controller.zoom_out()
            assert controller.current_level >= controller.min_level
        assert controller.current_level == 1.0

    def test_step_size(self, controller):
        controller.zoom_in()
        assert controller.current_level == pytest.approx(1.1)
        controller.zoom_in()
        controller.zoom_out()
        assert controller.current_level == pytest.approx(1.1)

    def test_reset(self, controller):
        controller.set_level(3.3)
        controller.reset()
        assert controller.current_level == controller.min_level

    def test_optimal_for_small_moles(self, controller):
        controller.set_optimal_for_small_moles()
        assert controller.current_level == pytest.approx(3.0)
        assert controller.is_optimal_for_small_moles

    def test_optimal_respects_max(self):
        session = DigitalZoomSession(max_ratio=2.0)
        session.open()
        controller = ZoomController(session, replace(DEFAULT_CONFIG, max_zoom=2.0))
        controller.initialize()
        controller.set_optimal_for_small_moles()
        assert controller.current_level == 2.0
        controller.cleanup()
        session.close()


class TestStabilization:
    def test_flag_tracks_level_after_every_mutation(self, controller):
        operations = [
            lambda: controller.set_level(1.95),
            controller.zoom_in,
            controller.zoom_in,
            controller.zoom_out,
            controller.zoom_out,
            controller.set_optimal_for_small_moles,
            controller.reset,
            lambda: controller.set_level(2.0),
        ]
        for op in operations:
            op()
            assert controller.is_stabilization_active == (
                controller.current_level >= DEFAULT_CONFIG.stabilization_threshold
            )

    def test_threshold_is_inclusive(self, controller):
        controller.set_level(2.0)
        assert controller.is_stabilization_active
        controller.set_level(1.9)
        assert not controller.is_stabilization_active


class TestListeners:
    def test_republishes_zoom_info(self, controller):
        received = []
        controller.add_listener(received.append)
        controller.set_level(2.5)
        assert received
        info = received[-1]
        assert info.current_level == 2.5
        assert info.is_stabilization_active
        assert info.is_optimal_for_small_moles
        assert (info.min_level, info.max_level) == (1.0, 5.0)

    def test_camera_reported_changes_are_published(self, controller, session):
        received = []
        controller.add_listener(received.append)
        session.set_zoom_ratio(2.2)
        assert controller.current_level == pytest.approx(2.2)
        assert received[-1].current_level == pytest.approx(2.2)

    def test_remove_listener(self, controller):
        received = []
        controller.add_listener(received.append)
        controller.remove_listener(received.append)
        controller.set_level(3.0)
        assert received == []

    def test_cleanup_unregisters(self, session):
        controller = ZoomController(session)
        controller.initialize()
        assert session.observer_count == 1
        controller.cleanup()
        assert session.observer_count == 0
        session.set_zoom_ratio(3.0)
        assert controller.current_level == 1.0


class TestCameraSession:
    def test_closed_session_rejects_zoom(self):
        session = DigitalZoomSession()
        with pytest.raises(CameraUnavailableError):
            session.set_zoom_ratio(2.0)

    def test_context_manager(self):
        with DigitalZoomSession() as session:
            assert session.is_open
        assert not session.is_open

    def test_close_drops_observers(self):
        session = DigitalZoomSession()
        session.open()
        session.observe_zoom(lambda state: None)
        session.close()
        assert session.observer_count == 0

    def test_publishes_zoom_state(self, session):
        states = []
        session.observe_zoom(states.append)
        session.set_zoom_ratio(2.0)
        assert states == [ZoomState(2.0, 1.0, 5.0)]

    def test_base_class_is_abstract(self):
        session = CameraSession()
        session.open()
        with pytest.raises(NotImplementedError):
            session.set_zoom_ratio(2.0)

    def test_invalid_range(self):
        with pytest.raises(ValueError):
            DigitalZoomSession(min_ratio=3.0, max_ratio=2.0)


class TestDigitalZoom:
    def test_identity_at_unit_zoom(self, session):
        pixels = np.random.default_rng(0).integers(0, 255, (48, 64, 3), dtype=np.uint8)
        assert session.apply(pixels) is pixels

    def test_crop_keeps_size_and_magnifies_center(self, session):
        pixels = np.zeros((100, 100), dtype=np.uint8)
        pixels[45:55, 45:55] = 255
        session.set_zoom_ratio(2.0)
        zoomed = session.apply(pixels)
        assert zoomed.shape == pixels.shape
        assert np.count_nonzero(zoomed > 128) > np.count_nonzero(pixels > 128) * 3
