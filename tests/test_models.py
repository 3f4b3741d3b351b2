import numpy as np
import pytest

from conftest import make_grid
from geocomputation.models.models import IndexSummary, JoinReport, Raster


def test_from_values_builds_grid(elevation: Raster) -> None:
    assert elevation.count == 1
    assert elevation.shape == (6, 6)
    assert elevation.res == (0.5, 0.5)
    assert elevation.bounds == pytest.approx((-1.5, -1.5, 1.5, 1.5))
    assert elevation.values[0, 0] == 1
    assert elevation.values[5, 5] == 36


def test_from_values_rejects_wrong_cell_count() -> None:
    with pytest.raises(ValueError, match="do not fill"):
        Raster.from_values(range(10), nrows=3, ncols=3, xmin=0, xmax=3, ymin=0, ymax=3)


def test_default_layer_names() -> None:
    raster = Raster.from_values(np.arange(8), nrows=2, ncols=2, xmin=0, xmax=2, ymin=0, ymax=2)
    assert raster.count == 2
    assert raster.names == ["lyr.1", "lyr.2"]


def test_layer_selects_by_name_and_index() -> None:
    raster = make_grid(np.concatenate([np.zeros(36), np.ones(36)]), names=["a", "b"])
    assert raster.layer("b").names == ["b"]
    assert raster.layer(0).values.sum() == 0
    assert raster.layer("b").values.sum() == 36


def test_arithmetic_between_aligned_rasters(elevation: Raster) -> None:
    total = elevation + elevation
    squared = elevation**2
    negated = -elevation

    assert total.values[5, 5] == 72
    assert squared.values[0, 1] == 4
    assert negated.values[0, 0] == -1
    assert (10 - elevation).values[0, 0] == 9
    assert (elevation / 2).values[0, 1] == 1


def test_arithmetic_requires_alignment(elevation: Raster) -> None:
    shifted = Raster.from_values(
        np.arange(36), nrows=6, ncols=6, xmin=0, xmax=3, ymin=0, ymax=3, crs="EPSG:4326"
    )
    assert not elevation.is_aligned_with(shifted)
    with pytest.raises(ValueError, match="not aligned"):
        elevation + shifted


def test_comparison_keeps_missing_cells(elevation: Raster) -> None:
    data = elevation.data.copy()
    data[0, 0, 0] = np.nan
    raster = elevation.with_data(data)

    above = raster > 30

    assert np.nansum(above.values) == 6
    assert np.isnan(above.values[0, 0])
    assert above.values[5, 5] == 1


def test_all_comparison_operators_are_cell_wise(elevation: Raster) -> None:
    equal = elevation == 5
    not_equal = elevation != 5

    assert isinstance(equal, Raster)
    assert isinstance(not_equal, Raster)
    assert equal.values.sum() == 1
    assert equal.values[0, 4] == 1
    assert not_equal.values.sum() == 35
    assert (elevation >= 30).values.sum() == 7
    assert (elevation < 3).values.sum() == 2
    assert (elevation <= 3).values.sum() == 3


def test_equality_between_rasters_keeps_missing_cells(elevation: Raster) -> None:
    data = elevation.data.copy()
    data[0, 0, 0] = np.nan
    raster = elevation.with_data(data)

    same = raster == elevation

    assert np.isnan(same.values[0, 0])
    assert np.nansum(same.values) == 35
    with pytest.raises(TypeError):
        hash(raster)


def test_to_dataframe_uses_cell_centres(elevation: Raster) -> None:
    frame = elevation.to_dataframe()
    assert len(frame) == 36
    assert list(frame.columns) == ["x", "y", "elev"]
    first = frame.iloc[0]
    assert (first["x"], first["y"], first["elev"]) == pytest.approx((-1.25, 1.25, 1.0))


def test_index_summary_from_array() -> None:
    summary = IndexSummary.from_array("ndvi", np.array([[0.2, np.nan], [0.4, 0.6]]))
    assert summary.valid_pixel_count == 3
    assert summary.mean == pytest.approx(0.4)
    assert summary.min == pytest.approx(0.2)
    assert summary.max == pytest.approx(0.6)


def test_index_summary_all_missing() -> None:
    summary = IndexSummary.from_array("ndvi", np.full((2, 2), np.nan))
    assert summary.valid_pixel_count == 0
    assert summary.mean == 0.0


def test_join_report_warning() -> None:
    ok = JoinReport(how="inner", left_rows=5, right_rows=3, joined_rows=3, expected_rows=3)
    short = JoinReport(
        how="inner", left_rows=5, right_rows=3, joined_rows=2, expected_rows=3, unmatched_keys=["Others"]
    )

    assert ok.row_count_matches
    assert ok.warning is None
    assert not short.row_count_matches
    assert short.warning == "inner join returned 2 rows, expected 3; unmatched keys: Others"
