import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point

from conftest import make_grid
from geocomputation.geospatial import canopy, raster_ops
from geocomputation.models.models import Raster


@pytest.fixture
def dtm() -> Raster:
    return make_grid(np.full(36, 100.0), names=["dtm"])


@pytest.fixture
def dsm(elevation: Raster) -> Raster:
    values = elevation.values.ravel() + 100.0
    values[:6] = 100.0  # bare ground along the top row
    return make_grid(values, names=["dsm"])


def test_canopy_height_model_subtracts_terrain(dsm: Raster, dtm: Raster) -> None:
    chm = canopy.canopy_height_model(dsm, dtm)

    assert chm.names == ["chm"]
    assert chm.is_aligned_with(dsm)
    assert chm.values[5, 5] == 36
    assert np.isnan(chm.values[0]).all()


def test_canopy_height_model_can_keep_zero_heights(dsm: Raster, dtm: Raster) -> None:
    chm = canopy.canopy_height_model(dsm, dtm, zero_as_nodata=False)
    assert (chm.values[0] == 0).all()


def test_canopy_height_model_requires_alignment_unless_asked(dsm: Raster) -> None:
    coarse_dtm = raster_ops.aggregate(make_grid(np.full(36, 100.0)), 2)

    with pytest.raises(ValueError, match="not aligned"):
        canopy.canopy_height_model(dsm, coarse_dtm)

    chm = canopy.canopy_height_model(dsm, coarse_dtm, align=True)
    assert chm.is_aligned_with(dsm)
    valid = ~np.isnan(chm.values)
    np.testing.assert_allclose(chm.values[valid], (dsm.values - 100.0)[valid], atol=1e-3)


def test_plot_heights_from_chm(elevation: Raster) -> None:
    plots = gpd.GeoDataFrame(
        {"Plot_ID": ["SJER1", "SJER2"]}, geometry=[Point(-0.5, 0.5), Point(5, 5)], crs="EPSG:4326"
    )

    heights = canopy.plot_heights_from_chm(elevation, plots, "Plot_ID", buffer_radius=0.4, func="max")

    assert list(heights.columns) == ["Plot_ID", "lidar_max"]
    assert heights["lidar_max"].iloc[0] == 15
    assert np.isnan(heights["lidar_max"].iloc[1])


def test_plot_heights_requires_id_column(elevation: Raster) -> None:
    plots = gpd.GeoDataFrame({"id": [1]}, geometry=[Point(0, 0)], crs="EPSG:4326")
    with pytest.raises(ValueError, match="Plot id column"):
        canopy.plot_heights_from_chm(elevation, plots, "Plot_ID", buffer_radius=1)


def test_summarize_field_heights() -> None:
    survey = pd.DataFrame({"plotid": ["A", "A", "B"], "stemheight": [10.0, 20.0, 5.0]})

    summary = canopy.summarize_field_heights(survey, "plotid", "stemheight")

    assert list(summary.columns) == ["plotid", "field_max", "field_mean"]
    assert summary.set_index("plotid").loc["A"].tolist() == [20.0, 15.0]
    with pytest.raises(ValueError, match="Missing survey columns"):
        canopy.summarize_field_heights(survey, "plot", "stemheight")


def test_join_lidar_and_field_reports_missing_plots() -> None:
    lidar = pd.DataFrame({"Plot_ID": ["A", "B", "C"], "lidar_max": [21.0, 6.0, 3.0]})
    field = pd.DataFrame({"plotid": ["A", "B"], "field_max": [20.0, 5.0]})

    joined, report = canopy.join_lidar_and_field(lidar, field, "Plot_ID", "plotid")

    assert len(joined) == 2
    assert report.expected_rows == 3
    assert report.warning == "inner join returned 2 rows, expected 3"


def test_compare_heights_perfect_linear_relation() -> None:
    field = np.array([5.0, 10.0, 15.0, 20.0])
    df = pd.DataFrame({"field_max": field, "lidar_max": 2 * field + 1})

    result = canopy.compare_heights(df, "lidar_max", "field_max")

    assert result.n == 4
    assert result.slope == pytest.approx(2.0)
    assert result.intercept == pytest.approx(1.0)
    assert result.r_squared == pytest.approx(1.0)
    assert result.bias == pytest.approx(np.mean(field + 1))


def test_compare_heights_needs_two_pairs() -> None:
    df = pd.DataFrame({"field_max": [5.0, np.nan], "lidar_max": [6.0, 7.0]})
    with pytest.raises(ValueError, match="at least two"):
        canopy.compare_heights(df, "lidar_max", "field_max")
