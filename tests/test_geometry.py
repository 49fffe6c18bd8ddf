"""Geometry helpers: decoding, IoU, suppression and background sampling."""
from __future__ import annotations

import itertools

import numpy as np
import pytest

from bubble_overlay.models.detection import Detection
from bubble_overlay.utils.geometry import (
    decode_box,
    iou,
    non_max_suppression,
    point_in_box,
    quad_center,
    rect_quad,
    round_half_up,
    sample_background_color,
)


def _det(box, conf, cls=1):
    x1, y1, x2, y2 = box
    return Detection(x1=x1, y1=y1, x2=x2, y2=y2, confidence=conf, class_index=cls)


def test_decode_box_center_form_to_corners() -> None:
    assert decode_box(0.5, 0.5, 0.4, 0.2, 640, 480) == pytest.approx((192, 192, 448, 288))
    assert decode_box(0.5, 0.5, 0.6, 0.2, 640, 480) == pytest.approx((128, 192, 512, 288))


def test_iou_disjoint_and_identical() -> None:
    assert iou((0, 0, 10, 10), (20, 20, 30, 30)) == 0.0
    assert iou((0, 0, 10, 10), (10, 0, 20, 10)) == 0.0
    assert iou((0, 0, 10, 10), (0, 0, 10, 10)) == pytest.approx(1.0)
    assert iou((0, 0, 10, 10), (5, 0, 15, 10)) == pytest.approx(50 / 150)


def test_nms_keeps_most_confident_of_cluster() -> None:
    a = _det((0, 0, 100, 100), 0.7)
    b = _det((5, 5, 105, 105), 0.9)
    c = _det((300, 300, 400, 400), 0.6)
    kept = non_max_suppression([a, b, c], 0.5)
    assert kept == [b, c]


def test_nms_equal_confidence_keeps_input_order() -> None:
    first = _det((0, 0, 100, 100), 0.8)
    second = _det((1, 1, 101, 101), 0.8)
    assert non_max_suppression([first, second], 0.5) == [first]
    assert non_max_suppression([second, first], 0.5) == [second]


def test_nms_output_is_subset_without_overlapping_pairs() -> None:
    rng = np.random.default_rng(7)
    dets = []
    for _ in range(60):
        x, y = rng.uniform(0, 300, size=2)
        w, h = rng.uniform(20, 120, size=2)
        dets.append(_det((x, y, x + w, y + h), float(rng.uniform(0.5, 1.0))))
    kept = non_max_suppression(dets, 0.5)
    assert all(any(k is d for d in dets) for k in kept)
    for a, b in itertools.combinations(kept, 2):
        assert iou(a.box, b.box) < 0.5


def test_nms_drops_candidate_at_exact_threshold() -> None:
    a = _det((0, 0, 10, 10), 0.9)
    # IoU with a is 50 / 100 = 0.5 exactly
    b = _det((0, 0, 10, 5), 0.8)
    b2 = _det((0, 0, 20, 10), 0.8)
    assert iou(a.box, b.box) == pytest.approx(0.5)
    assert iou(a.box, b2.box) == pytest.approx(0.5)
    assert non_max_suppression([a, b, b2], 0.5) == [a]


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2


def test_quad_center_and_containment() -> None:
    quad = rect_quad(10, 20, 30, 60)
    assert quad_center(quad) == (20, 40)
    assert point_in_box(10, 20, (10, 20, 30, 60))
    assert point_in_box(30, 60, (10, 20, 30, 60))
    assert not point_in_box(30.1, 40, (10, 20, 30, 60))


def test_background_snaps_to_white_and_black() -> None:
    near_white = np.full((100, 100, 3), 240, dtype=np.uint8)
    assert sample_background_color(near_white, 10, 10, 80, 80, 30) == (255, 255, 255)
    near_black = np.full((100, 100, 3), 12, dtype=np.uint8)
    assert sample_background_color(near_black, 10, 10, 80, 80, 30) == (0, 0, 0)


def test_background_unsnapped_average() -> None:
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    img[:, :] = (200, 100, 50)
    assert sample_background_color(img, 0, 0, 100, 100, 30) == (200, 100, 50)


def test_background_ignores_center_glyphs() -> None:
    img = np.full((100, 100, 3), 250, dtype=np.uint8)
    img[30:70, 30:70] = 0
    assert sample_background_color(img, 0, 0, 100, 100, 30) == (255, 255, 255)


def test_background_averages_edge_midpoints() -> None:
    img = np.full((100, 100, 3), 100, dtype=np.uint8)
    # top midpoint sample sits at (50, 2.5) -> row 2
    img[0:5, 45:55] = 201
    # (100 * 3 + 201) / 4 = 125.25
    assert sample_background_color(img, 0, 0, 100, 100, 30) == (125, 125, 125)


def test_background_samples_clamped_inside_image() -> None:
    img = np.full((50, 50, 3), 128, dtype=np.uint8)
    assert sample_background_color(img, 40, 40, 30, 30, 30) == (128, 128, 128)
