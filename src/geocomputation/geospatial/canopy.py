"""Canopy height models and their comparison with field-measured tree heights."""

from collections.abc import Sequence

import geopandas as gpd
import numpy as np
import pandas as pd

from geocomputation.geospatial.raster_ops import extract, resample
from geocomputation.geospatial.vector_ops import join_attributes
from geocomputation.models.models import HeightComparison, JoinReport, Raster


def canopy_height_model(dsm: Raster, dtm: Raster, align: bool = False, zero_as_nodata: bool = True) -> Raster:
    """Subtract terrain from surface elevation.

    :param dsm: Digital surface model
    :param dtm: Digital terrain model
    :param align: Resample the DTM onto the DSM grid instead of requiring alignment
    :param zero_as_nodata: Treat zero-height cells (bare ground) as missing
    :returns: Canopy height model named ``chm``
    """
    if align and not dsm.is_aligned_with(dtm):
        dtm = resample(dtm, dsm, method="bilinear")
    heights = (dsm.layer(0) - dtm.layer(0)).data
    if zero_as_nodata:
        heights[heights == 0] = np.nan
    return dsm.with_data(heights, names=["chm"])


def plot_heights_from_chm(
    chm: Raster,
    plots: gpd.GeoDataFrame,
    plot_id: str,
    buffer_radius: float,
    func: str = "max",
) -> pd.DataFrame:
    """Summarize canopy height inside a circular buffer around each plot centre.

    :param chm: Canopy height model
    :param plots: Plot centre points
    :param plot_id: Plot identifier column
    :param buffer_radius: Buffer radius in CHM CRS units
    :param func: Aggregation (mean, max, ...)
    :returns: DataFrame with plot id and ``lidar_<func>`` column
    """
    if plot_id not in plots.columns:
        raise ValueError(f"Plot id column {plot_id!r} not found")
    extracted = extract(chm.layer(0), plots, func=func, buffer=buffer_radius)
    column = f"lidar_{func}"
    return pd.DataFrame({plot_id: extracted[plot_id].to_numpy(), column: extracted[chm.names[0]].to_numpy()})


def summarize_field_heights(
    survey: pd.DataFrame, plot_id: str, height: str, funcs: Sequence[str] = ("max", "mean")
) -> pd.DataFrame:
    """Aggregate stem heights per plot.

    :param survey: Field survey records, one row per stem
    :param plot_id: Plot identifier column
    :param height: Height column
    :param funcs: Aggregations to compute
    :returns: DataFrame with plot id and ``field_<func>`` columns
    """
    missing = [column for column in (plot_id, height) if column not in survey.columns]
    if missing:
        raise ValueError(f"Missing survey columns: {missing}")
    summary = survey.groupby(plot_id)[height].agg(list(funcs))
    summary.columns = [f"field_{func}" for func in funcs]
    return summary.reset_index()


def join_lidar_and_field(
    lidar: pd.DataFrame, field: pd.DataFrame, left_on: str, right_on: str
) -> tuple[pd.DataFrame, JoinReport]:
    """Pair lidar plot heights with field heights by plot id.

    Every lidar plot is expected to have field measurements.

    :param lidar: Lidar plot heights
    :param field: Field plot heights
    :param left_on: Lidar plot id column
    :param right_on: Field plot id column
    :returns: Tuple of (joined table, join report)
    """
    return join_attributes(lidar, field, left_on=left_on, right_on=right_on, how="inner", expected_rows=len(lidar))


def compare_heights(df: pd.DataFrame, lidar_column: str, field_column: str) -> HeightComparison:
    """Fit lidar height against field height and report agreement.

    :param df: Paired heights
    :param lidar_column: Lidar-derived height column (response)
    :param field_column: Field-measured height column (predictor)
    :returns: HeightComparison
    """
    pairs = df[[field_column, lidar_column]].dropna()
    if len(pairs) < 2:
        raise ValueError(f"Need at least two complete height pairs, got {len(pairs)}")

    field = pairs[field_column].to_numpy(dtype="float64")
    lidar = pairs[lidar_column].to_numpy(dtype="float64")
    slope, intercept = np.polyfit(field, lidar, 1)
    fitted = slope * field + intercept
    ss_res = float(np.sum((lidar - fitted) ** 2))
    ss_tot = float(np.sum((lidar - lidar.mean()) ** 2))
    difference = lidar - field

    return HeightComparison(
        n=len(pairs),
        slope=float(slope),
        intercept=float(intercept),
        r_squared=1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0,
        rmse=float(np.sqrt(np.mean(difference**2))),
        bias=float(np.mean(difference)),
    )
