import numpy as np
import pytest

from cell_counter.scripts.detection import (
    DetectedCoordinate,
    DetectionLedger,
    ExactCellDetector,
    QuickCellDetector,
    check_for_cell,
    clear_detection_area,
    detect_cells,
    detect_cells_quick,
    draw_points,
    is_detection_area_active,
    is_exclusion_frame_clear,
    make_detector,
)


# --------------------------------------------------------------- ledger


def test_ledger_append_count_iterate():
    ledger = DetectionLedger()
    assert ledger.count() == 0
    ledger.append(3, 4)
    ledger.append(10, 1)
    assert ledger.count() == len(ledger) == 2
    assert list(ledger) == [DetectedCoordinate(3, 4), DetectedCoordinate(10, 1)]

    seen = []
    ledger.for_each(seen.append)
    assert seen == list(ledger)

    ledger.clear()
    assert len(ledger) == 0


def test_ledger_does_not_deduplicate():
    ledger = DetectionLedger()
    ledger.append(5, 5)
    ledger.append(5, 5)
    assert len(ledger) == 2


def test_ledger_merge_keeps_everything_without_radius():
    run = DetectionLedger()
    run.append(10, 10)
    other = DetectionLedger()
    other.append(11, 10)
    other.append(50, 50)
    assert run.merge(other) == 2
    assert run.to_list() == [(10, 10), (11, 10), (50, 50)]


def test_ledger_merge_drops_nearby_repeats():
    run = DetectionLedger()
    run.append(10, 10)
    other = DetectionLedger()
    other.append(13, 7)
    other.append(14, 10)
    other.append(60, 60)
    assert run.merge(other, radius=3) == 2
    assert run.to_list() == [(10, 10), (14, 10), (60, 60)]


def test_ledger_destroy_releases_entries():
    ledger = DetectionLedger()
    ledger.append(1, 2)
    ledger.append(3, 4)
    ledger.destroy()
    assert len(ledger) == 0
    ledger.append(5, 6)
    assert ledger.to_list() == [(5, 6)]


# -------------------------------------------------------- exact detector


def test_exact_detects_isolated_square_once():
    binary = np.zeros((950, 950), dtype=np.uint8)
    binary[94:106, 94:106] = 255
    ledger = DetectionLedger()
    found = detect_cells(binary, ledger, 12, 1)
    assert found == 1
    assert ledger.to_list() == [(100, 100)]
    assert not binary.any()


def test_exact_ignores_blob_larger_than_window():
    binary = np.zeros((200, 200), dtype=np.uint8)
    binary[50:90, 60:100] = 255
    before = binary.copy()
    ledger = DetectionLedger()
    assert detect_cells(binary, ledger) == 0
    assert np.array_equal(binary, before)


def test_exact_out_of_bounds_frame_counts_as_clear():
    binary = np.zeros((50, 50), dtype=np.uint8)
    binary[1, 1] = 255
    ledger = DetectionLedger()
    assert detect_cells(binary, ledger) == 1
    assert ledger.to_list() == [(0, 0)]
    assert not binary.any()


def test_exact_frame_rejects_nearby_white():
    binary = np.zeros((60, 60), dtype=np.uint8)
    binary[30, 30] = 255
    half = 6
    # level 0 ring sits right outside the detection area
    assert is_exclusion_frame_clear(binary, 12, 1, 30, 30)
    binary[30, 30 + half] = 255
    assert not is_exclusion_frame_clear(binary, 12, 0, 30, 30)
    binary[30, 30 + half] = 0
    binary[30 - half - 2, 30] = 255
    assert is_exclusion_frame_clear(binary, 12, 0, 30, 30)
    assert not is_exclusion_frame_clear(binary, 12, 1, 30, 30)


def test_detection_area_helpers():
    binary = np.zeros((40, 40), dtype=np.uint8)
    binary[14, 25] = 255  # offsets (+5, -6) from (20, 20)
    assert is_detection_area_active(binary, 12, 20, 20)
    assert not is_detection_area_active(binary, 12, 19, 20)
    clear_detection_area(binary, 12, 20, 20)
    assert not binary.any()


def _naive_detect(binary, ledger, size, thickness):
    h, w = binary.shape
    for x in range(w):
        for y in range(h):
            if is_exclusion_frame_clear(binary, size, thickness, x, y) and \
                    is_detection_area_active(binary, size, x, y):
                ledger.append(x, y)
                clear_detection_area(binary, size, x, y)


@pytest.mark.parametrize("seed", [0, 1, 2])
@pytest.mark.parametrize("size,thickness", [(12, 1), (8, 0), (6, 2)])
def test_exact_matches_pixel_by_pixel_scan(seed, size, thickness):
    rng = np.random.default_rng(seed)
    binary = np.where(rng.random((48, 56)) < 0.02, 255, 0).astype(np.uint8)
    binary[10:14, 30:33] = 255

    expected_img = binary.copy()
    expected = DetectionLedger()
    _naive_detect(expected_img, expected, size, thickness)

    ledger = DetectionLedger()
    detect_cells(binary, ledger, size, thickness)

    assert ledger.to_list() == expected.to_list()
    assert np.array_equal(binary, expected_img)


@pytest.mark.parametrize("size,thickness", [(11, 1), (0, 1), (12, -1)])
def test_exact_rejects_bad_parameters(size, thickness):
    with pytest.raises(ValueError):
        detect_cells(np.zeros((20, 20), dtype=np.uint8), DetectionLedger(), size, thickness)


# -------------------------------------------------------- quick detector


def test_quick_detects_isolated_pixel_and_clears_block():
    binary = np.zeros((100, 100), dtype=np.uint8)
    binary[50, 50] = 255
    binary[54, 55] = 255  # inside the cleared block, off the rungs
    ledger = DetectionLedger()
    assert detect_cells_quick(binary, ledger) == 1
    assert ledger.to_list() == [(50, 50)]
    assert not binary[42:58, 42:58].any()


def test_quick_clear_block_is_sixteen_wide():
    binary = np.zeros((100, 100), dtype=np.uint8)
    binary[50, 50] = 255
    binary[50, 58] = 255  # just outside [-8, 8)
    ledger = DetectionLedger()
    detect_cells_quick(binary, ledger)
    # the second pixel survives the first clear and is found on its own
    assert ledger.to_list() == [(50, 50), (58, 50)]


def test_quick_rung_hit_disqualifies():
    binary = np.zeros((100, 100), dtype=np.uint8)
    binary[50, 50] = 255
    binary[50, 56] = 255  # distance 6 on the right rung
    assert not check_for_cell(binary, 50, 50)
    ledger = DetectionLedger()
    assert detect_cells_quick(binary, ledger) == 0
    assert np.count_nonzero(binary) == 2


def test_quick_misses_ring_corners():
    binary = np.zeros((100, 100), dtype=np.uint8)
    binary[50, 50] = 255
    binary[56, 56] = 255  # corner of the distance-6 ring
    assert check_for_cell(binary, 50, 50)
    ledger = DetectionLedger()
    assert detect_cells_quick(binary, ledger) == 1
    assert ledger.to_list() == [(50, 50)]
    assert not binary.any()


def test_quick_near_image_edge():
    binary = np.zeros((30, 30), dtype=np.uint8)
    binary[0, 29] = 255
    ledger = DetectionLedger()
    assert detect_cells_quick(binary, ledger) == 1
    assert ledger.to_list() == [(29, 0)]


def test_quick_scans_x_major():
    binary = np.zeros((100, 100), dtype=np.uint8)
    binary[80, 20] = 255
    binary[20, 60] = 255
    ledger = DetectionLedger()
    detect_cells_quick(binary, ledger)
    assert ledger.to_list() == [(20, 80), (60, 20)]


# ------------------------------------------------------------ strategies


def test_make_detector():
    exact = make_detector("exact", 8, 2)
    assert isinstance(exact, ExactCellDetector)
    assert exact.detection_area_size == 8
    assert exact.exclusion_frame_thickness == 2
    assert isinstance(make_detector("QUICK"), QuickCellDetector)
    with pytest.raises(ValueError):
        make_detector("fuzzy")
    with pytest.raises(ValueError):
        ExactCellDetector(detection_area_size=7)


def test_strategies_share_interface():
    for detector in (make_detector("exact"), make_detector("quick")):
        binary = np.zeros((80, 80), dtype=np.uint8)
        binary[40, 40] = 255
        ledger = DetectionLedger()
        assert detector.detect(binary, ledger) == 1
        assert not binary.any()


# -------------------------------------------------------------- markers


def _red_mask(rgb):
    return (rgb[..., 0] == 255) & (rgb[..., 1] == 0) & (rgb[..., 2] == 0)


def test_draw_cross_geometry():
    rgb = np.zeros((50, 50, 3), dtype=np.uint8)
    ledger = DetectionLedger()
    ledger.append(25, 25)
    out = draw_points(rgb, ledger)
    assert out is rgb

    red = _red_mask(rgb)
    # image is indexed [y, x]
    assert red[25, 25]
    assert red[25, 15] and red[25, 35]
    assert not red[25, 14] and not red[25, 36]
    assert red[15, 25] and red[35, 25]
    assert not red[14, 25] and not red[36, 25]
    assert red[24, 35] and red[26, 35]
    assert not red[27, 35]
    assert red.sum() == 21 * 3 * 2 - 9


def test_draw_overwrites_existing_pixels():
    rgb = np.full((40, 40, 3), 200, dtype=np.uint8)
    ledger = DetectionLedger()
    ledger.append(20, 20)
    draw_points(rgb, ledger)
    assert rgb[20, 20].tolist() == [255, 0, 0]
    assert rgb[0, 0].tolist() == [200, 200, 200]


def test_draw_n_crosses_and_idempotent():
    rgb = np.zeros((100, 100, 3), dtype=np.uint8)
    ledger = DetectionLedger()
    for x, y in [(20, 20), (70, 30), (40, 75)]:
        ledger.append(x, y)
    draw_points(rgb, ledger)
    first = rgb.copy()
    assert _red_mask(rgb).sum() == 3 * (21 * 3 * 2 - 9)
    draw_points(rgb, ledger)
    assert np.array_equal(rgb, first)


def test_draw_clips_out_of_range_coordinates():
    rgb = np.zeros((30, 30, 3), dtype=np.uint8)
    ledger = DetectionLedger()
    ledger.append(0, 0)
    ledger.append(-100, -100)
    ledger.append(29, 35)
    draw_points(rgb, ledger)
    red = _red_mask(rgb)
    assert red[0, 0] and red[0, 10] and red[10, 0]
    assert not red[0, 11]
    # (29, 35): only the vertical arm reaches the image
    assert red[29, 29] and red[25, 28]
    assert not red[24, 29]


def test_draw_skips_far_coordinates_and_keeps_going():
    rgb = np.zeros((30, 30, 3), dtype=np.uint8)
    ledger = DetectionLedger()
    ledger.append(5, 5)
    ledger.append(10**10, 5)
    ledger.append(-10**12, 10**12)
    ledger.append(20, 20)
    draw_points(rgb, ledger)
    red = _red_mask(rgb)
    assert red[5, 5] and red[5, 15] and red[15, 5]
    # entries after the unreachable ones are still drawn
    assert red[20, 20] and red[20, 29] and red[29, 20]


def test_draw_on_strided_view():
    base = np.zeros((30, 60, 3), dtype=np.uint8)
    view = base[:, ::2]
    ledger = DetectionLedger()
    ledger.append(10, 10)
    out = draw_points(view, ledger)
    assert out is view
    # view column 10 is base column 20
    assert base[10, 20].tolist() == [255, 0, 0]
    assert base[10, 21].tolist() == [0, 0, 0]
    assert _red_mask(view).sum() == 21 * 3 * 2 - 9
