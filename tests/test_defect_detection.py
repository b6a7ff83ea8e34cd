"""Detector behaviour on synthetic rasters."""

from __future__ import annotations

from itertools import permutations

import numpy as np
import pytest

from conftest import MAX16, make_hot_pixel, make_mono
from defect_detection import (
    criterion_weights,
    exceeds_threshold,
    find_hierarchical_defects,
    find_mean_defects,
    find_median_pair_defects,
    median_pair_estimate,
    median3,
)
from defect_errors import InvalidWindowSize
from raster import Raster

DETECTORS = {
    "mean3": (lambda r, t: find_mean_defects(r, 3, t), 1),
    "mean5": (lambda r, t: find_mean_defects(r, 5, t), 2),
    "median_pair": (find_median_pair_defects, 1),
    "hierarchical": (find_hierarchical_defects, 1),
}


# ---------------------------------------------------------------------------
# median3 / threshold comparison
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("values", list(permutations((1, 5, 9))))
def test_median3_all_orderings(values):
    assert median3(*values) == 5


@pytest.mark.parametrize("x,y", [(5, 9), (9, 5), (0, 0), (65535, 0), (7, -3)])
def test_median3_duplicates(x, y):
    assert median3(x, x, y) == x
    assert median3(x, y, x) == x
    assert median3(y, x, x) == x


def test_median3_elementwise():
    a = np.array([1, 9, 4])
    b = np.array([5, 1, 4])
    c = np.array([9, 5, 0])
    assert median3(a, b, c).tolist() == [5, 5, 4]


def test_branch_threshold_matches_absolute_value():
    thr = 12.5
    deltas = np.concatenate([
        np.linspace(-40.0, 40.0, 801),
        [thr, -thr, np.nextafter(thr, 100.0), np.nextafter(-thr, -100.0), 0.0, -0.0],
    ])
    assert np.array_equal(exceeds_threshold(deltas, thr), np.abs(deltas) > thr)


def test_median_pair_cascade():
    # ring order: TL T TR L R BL B BR
    center = np.array([100])
    ring = np.array([[0], [10], [0], [10], [10], [0], [10], [0]])
    assert median_pair_estimate(center, ring).tolist() == [10]


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


def test_hot_pixel_center_flagged_by_all(hot_pixel_raster):
    thr = 0.1 * MAX16
    center = hot_pixel_raster.position(3, 3)
    assert find_median_pair_defects(hot_pixel_raster, thr) == {center}
    assert find_hierarchical_defects(hot_pixel_raster, thr) == {center}
    assert find_mean_defects(hot_pixel_raster, 5, thr) == {center}
    assert center in find_mean_defects(hot_pixel_raster, 3, thr)


def test_mean3_ring_neighbors_see_an_eighth_of_the_spike(hot_pixel_raster):
    center = hot_pixel_raster.position(3, 3)
    ring = {hot_pixel_raster.position(3 + dr, 3 + dc)
            for dr in (-1, 0, 1) for dc in (-1, 0, 1) if (dr, dc) != (0, 0)}
    # each ring neighbor's own mean is MAX/8, above a 10% threshold
    assert find_mean_defects(hot_pixel_raster, 3, 0.1 * MAX16) == ring | {center}
    # and below a 13% threshold
    assert find_mean_defects(hot_pixel_raster, 3, 0.13 * MAX16) == {center}


def test_dead_pixel_flagged():
    img = make_mono(9, 9, fill=1000)
    img[4, 5] = 0
    r = Raster.from_array(img)
    pos = r.position(4, 5)
    for name, (detect, _) in DETECTORS.items():
        assert detect(r, 200) == {pos}, name


def test_flat_image_has_no_defects():
    r = Raster.from_array(make_mono(8, 8, fill=4000))
    for name, (detect, _) in DETECTORS.items():
        assert detect(r, 0) == frozenset(), name


def test_rgba_single_channel_is_enough():
    img = np.full((6, 6, 4), 128, dtype=np.uint8)
    img[2, 3, 2] = 255
    r = Raster.from_array(img)
    pos = r.position(2, 3)
    assert find_mean_defects(r, 3, 20) == {pos}
    assert find_median_pair_defects(r, 20) == {pos}
    assert find_hierarchical_defects(r, 20) == {pos}


def test_5x5_raster_window5_tests_only_the_center():
    img = make_mono(5, 5)
    img[0, 0] = MAX16   # inside the only window, not its center
    r = Raster.from_array(img)
    assert find_mean_defects(r, 5, 3000) == frozenset()
    img[2, 2] = MAX16
    r = Raster.from_array(img)
    assert find_mean_defects(r, 5, 3000) == {12}


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name", list(DETECTORS))
def test_determinism(name, noisy_raster):
    detect, _ = DETECTORS[name]
    assert detect(noisy_raster, 5000) == detect(noisy_raster, 5000)


@pytest.mark.parametrize("name", list(DETECTORS))
def test_margin_exclusion(name, noisy_raster):
    detect, margin = DETECTORS[name]
    found = detect(noisy_raster, 1000)
    assert found
    for pos in found:
        row, col = noisy_raster.coordinates(pos)
        assert margin <= row < noisy_raster.height - margin
        assert margin <= col < noisy_raster.width - margin


@pytest.mark.parametrize("name", list(DETECTORS))
def test_threshold_monotonicity(name, noisy_raster):
    detect, _ = DETECTORS[name]
    previous = None
    for thr in (0, 500, 2000, 8000, 20000, 40000, 65535):
        found = detect(noisy_raster, thr)
        if previous is not None:
            assert len(found) <= len(previous)
            assert found <= previous
        previous = found


def test_invalid_window_sizes(hot_pixel_raster):
    with pytest.raises(InvalidWindowSize):
        find_mean_defects(hot_pixel_raster, 4, 10)
    with pytest.raises(InvalidWindowSize):
        find_median_pair_defects(hot_pixel_raster, 10, window_size=5)
    with pytest.raises(InvalidWindowSize):
        find_hierarchical_defects(hot_pixel_raster, 10, window_size=5)


def test_negative_threshold_rejected(hot_pixel_raster):
    with pytest.raises(ValueError):
        find_mean_defects(hot_pixel_raster, 3, -1)


# ---------------------------------------------------------------------------
# Hierarchical weights
# ---------------------------------------------------------------------------


def test_criterion_weights_are_normalized():
    rng = np.random.RandomState(3)
    img = (rng.randint(0, 2, (10, 12)) * 1000).astype(np.uint16)
    centers, w1, w2, w3 = criterion_weights(Raster.from_array(img))

    assert centers.size == (10 - 2) * (12 - 2)
    for w in (w1, w2, w3):
        assert w.shape == (8, centers.size)
        assert np.all(w >= 0)
    assert np.allclose(w1.sum(axis=0), 1.0)
    assert np.allclose(w3.sum(axis=0), 1.0)
    s2 = w2.sum(axis=0)
    # a criterion with no equal-valued neighbors anywhere contributes nothing
    assert np.all(np.isclose(s2, 1.0) | np.isclose(s2, 0.0))
    assert np.isclose(s2, 1.0).mean() > 0.9


def test_hierarchical_tie_breaks_on_first_direction(hot_pixel_raster):
    centers, w1, w2, w3 = criterion_weights(hot_pixel_raster)
    idx = int(np.flatnonzero(centers == hot_pixel_raster.position(3, 3))[0])
    p = (w1 + w2 + w3)[:, idx]
    assert np.allclose(p, p[0])
    assert int(np.argmax(p)) == 0


def test_hierarchical_scores_every_interior_pixel():
    r = Raster.from_array(make_hot_pixel(size=4))
    # border neighbors average over the neighbors they have
    assert find_hierarchical_defects(r, 10) == {r.position(2, 2)}


@pytest.mark.parametrize("row,col", [(1, 4), (4, 1), (7, 4), (4, 7), (1, 1), (7, 7)])
def test_spike_next_to_the_border(row, col):
    img = make_mono(9, 9)
    img[row, col] = MAX16
    r = Raster.from_array(img)
    pos = r.position(row, col)
    thr = 0.1 * MAX16
    assert find_median_pair_defects(r, thr) == {pos}
    assert find_hierarchical_defects(r, thr) == {pos}
