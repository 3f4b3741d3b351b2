"""Dagster assets for the geocomputation workflows."""

from typing import Any, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
from dagster import AssetExecutionContext, MetadataValue, Output, asset

from geocomputation.config.constants import (
    COFFEE_KEY,
    COUNTRY_NAME_FIXES,
    ELEVATION_RECLASS_RULES,
    EXAMPLE_GRID_CRS,
    EXAMPLE_GRID_EXTENT,
    EXAMPLE_GRID_SIZE,
    GRAIN_CATEGORIES,
    GRAIN_VALUES,
    LANDSAT_BAND_MAP,
    PLOT_ID_COLUMN,
    SURVEY_HEIGHT_COLUMN,
    SURVEY_PLOT_ID_COLUMN,
    WORLD_KEY,
)
from geocomputation.connectors.settings import SettingsResource
from geocomputation.geospatial.canopy import (
    canopy_height_model,
    compare_heights,
    join_lidar_and_field,
    plot_heights_from_chm,
    summarize_field_heights,
)
from geocomputation.geospatial.indices import compute_index_from_multiband
from geocomputation.geospatial.radiation import blackbody_table
from geocomputation.geospatial.raster_ops import apply, focal, frequency, global_stats, reclassify, zonal
from geocomputation.geospatial.vector_ops import (
    aggregate_by,
    harmonize_keys,
    join_attributes,
    unmatched_keys,
)
from geocomputation.models.models import HeightComparison, IndexSummary, JoinReport, Raster
from geocomputation.storage import read_raster_layer, read_table, read_vector_layer
from geocomputation.visualization import (
    figure_to_markdown,
    plot_histogram,
    plot_map,
    plot_raster,
    plot_scatter,
)

# Vector workflow: countries and coffee production


@asset(group_name="vector")
def world(context: AssetExecutionContext, settings: SettingsResource) -> gpd.GeoDataFrame:
    """Country polygons with population and area attributes."""
    return read_vector_layer(context, settings, "world_file")


@asset(group_name="vector")
def coffee_data(context: AssetExecutionContext, settings: SettingsResource) -> pd.DataFrame:
    """Coffee production by country (plain table keyed by country name)."""
    return read_table(context, settings, "coffee_file")


@asset(group_name="vector")
def world_coffee(
    context: AssetExecutionContext, world: gpd.GeoDataFrame, coffee_data: pd.DataFrame
) -> Output[gpd.GeoDataFrame]:
    """Join coffee production onto country polygons.

    Country names in the coffee table are harmonized with the world layer
    first; remaining mismatches are reported as a warning.

    :param context: Dagster context
    :param world: Country polygons
    :param coffee_data: Coffee production table
    :returns: Output with coffee-producing countries
    """
    before = unmatched_keys(world, coffee_data, WORLD_KEY, COFFEE_KEY)
    if before:
        context.log.info(f"Coffee country names missing from world layer before harmonizing: {before}")

    coffee = harmonize_keys(coffee_data, COFFEE_KEY, COUNTRY_NAME_FIXES)
    joined, report = join_attributes(world, coffee, left_on=WORLD_KEY, right_on=COFFEE_KEY, how="inner")
    _log_join_report(context, report)

    return Output(joined, metadata=_join_metadata(report))


@asset(group_name="vector")
def continent_population(world: gpd.GeoDataFrame) -> Output[gpd.GeoDataFrame]:
    """Total population and area per continent, with dissolved outlines."""
    continents = aggregate_by(world, "continent", {"pop": "sum", "area_km2": "sum"})
    return Output(
        continents,
        metadata={
            "continents": len(continents),
            "total_pop": float(np.nansum(continents["pop"])),
        },
    )


@asset(group_name="vector")
def world_coffee_map(world: gpd.GeoDataFrame, world_coffee: gpd.GeoDataFrame) -> Output[str]:
    """Thematic map of 2017 coffee production, non-producers in grey."""
    coffee_columns = [c for c in world_coffee.columns if c.startswith("coffee_production")]
    column = sorted(coffee_columns)[-1] if coffee_columns else None
    mapped = world
    if column is not None:
        mapped = world.merge(world_coffee[[WORLD_KEY, column]], on=WORLD_KEY, how="left")
    fig = plot_map(mapped, column=column, title="Coffee production (thousand 60 kg bags)")
    markdown = figure_to_markdown(fig)
    return Output(markdown, metadata={"map": MetadataValue.md(markdown), "column": column})


# Raster workflow: map algebra on a small elevation grid


def _example_grid(values: Any, names: list[str], categories: dict[int, str] | None = None) -> Raster:
    xmin, xmax, ymin, ymax = EXAMPLE_GRID_EXTENT
    return Raster.from_values(
        values,
        nrows=EXAMPLE_GRID_SIZE,
        ncols=EXAMPLE_GRID_SIZE,
        xmin=xmin,
        xmax=xmax,
        ymin=ymin,
        ymax=ymax,
        crs=EXAMPLE_GRID_CRS,
        names=names,
        categories=categories,
    )


@asset(group_name="raster")
def elevation() -> Output[Raster]:
    """6 x 6 elevation grid with values 1 to 36, row by row from the top-left."""
    raster = _example_grid(np.arange(1, EXAMPLE_GRID_SIZE**2 + 1), names=["elev"])
    return Output(raster, metadata=_raster_metadata(raster, plot_raster(raster, title="Elevation")))


@asset(group_name="raster")
def grain() -> Output[Raster]:
    """Categorical soil grain-size grid (clay, silt, sand) on the elevation grid."""
    raster = _example_grid(GRAIN_VALUES, names=["grain"], categories=GRAIN_CATEGORIES)
    counts = frequency(raster)
    metadata = _raster_metadata(raster, plot_raster(raster, cmap="Set2", title="Grain size"))
    metadata["frequency"] = _frequency_metadata(counts)
    return Output(raster, metadata=metadata)


@asset(group_name="raster")
def elevation_classes(elevation: Raster) -> Output[Raster]:
    """Elevation reclassified into low (1), middle (2) and high (3) classes."""
    classes = reclassify(elevation, ELEVATION_RECLASS_RULES)
    classes = classes.model_copy(update={"categories": {1: "low", 2: "middle", 3: "high"}})
    metadata = _raster_metadata(classes, plot_raster(classes, cmap="RdYlGn_r", title="Elevation classes"))
    metadata["frequency"] = _frequency_metadata(frequency(classes))
    return Output(classes, metadata=metadata)


@asset(group_name="raster")
def elevation_focal_min(elevation: Raster) -> Output[Raster]:
    """Minimum elevation in each cell's 3 x 3 neighbourhood."""
    result = focal(elevation, size=3, func="min")
    return Output(result, metadata=_raster_metadata(result, plot_raster(result, title="Focal minimum (3 x 3)")))


@asset(group_name="raster")
def elevation_by_grain(elevation: Raster, grain: Raster) -> Output[pd.DataFrame]:
    """Mean elevation per grain-size class."""
    table = zonal(elevation, grain, func="mean")
    return Output(
        table,
        metadata={"mean_elevation": {str(row.zone): float(row.elev) for row in table.itertuples()}},
    )


@asset(group_name="raster")
def elevation_algebra(elevation: Raster) -> Output[Raster]:
    """Local map algebra: sum, square, natural log and a threshold mask."""
    layers = [
        elevation + elevation,
        elevation**2,
        apply(elevation, np.log),
        elevation > 5,
    ]
    stacked = elevation.with_data(
        np.concatenate([layer.data for layer in layers]), names=["sum", "square", "log", "above_5"]
    )
    return Output(stacked, metadata={"layers": ", ".join(stacked.names)})


# Vegetation workflow: NDVI from a multispectral scene


@asset(group_name="vegetation")
def landsat(context: AssetExecutionContext, settings: SettingsResource) -> Raster:
    """Four-band Landsat scene (blue, green, red, NIR)."""
    raster = read_raster_layer(context, settings, "landsat_file")
    needed = max(LANDSAT_BAND_MAP.values())
    if raster.count < needed:
        raise ValueError(f"Landsat scene has {raster.count} bands, expected at least {needed}")
    return raster


@asset(group_name="vegetation")
def ndvi(context: AssetExecutionContext, landsat: Raster) -> Output[Raster]:
    """Normalized difference vegetation index, (NIR - red) / (NIR + red)."""
    index = compute_index_from_multiband("ndvi", landsat, LANDSAT_BAND_MAP)
    context.log.info("NDVI computed.")
    return Output(index, metadata=_raster_metadata(index, plot_raster(index, cmap="RdYlGn", title="NDVI")))


@asset(group_name="vegetation")
def ndvi_summary(context: AssetExecutionContext, ndvi: Raster) -> Output[IndexSummary]:
    """Mean, spread and range of NDVI over valid cells."""
    summary = global_stats(ndvi)[0]
    if summary.valid_pixel_count == 0:
        context.log.warning("NDVI has no valid cells")
    return Output(summary, metadata=summary.model_dump())


# Canopy workflow: lidar canopy height against field survey


@asset(group_name="canopy")
def dsm(context: AssetExecutionContext, settings: SettingsResource) -> Raster:
    """Lidar digital surface model."""
    return read_raster_layer(context, settings, "dsm_file", bands=[1])


@asset(group_name="canopy")
def dtm(context: AssetExecutionContext, settings: SettingsResource) -> Raster:
    """Lidar digital terrain model."""
    return read_raster_layer(context, settings, "dtm_file", bands=[1])


@asset(group_name="canopy")
def chm(context: AssetExecutionContext, dsm: Raster, dtm: Raster) -> Output[Raster]:
    """Canopy height model, DSM minus DTM, bare ground masked out.

    :param context: Dagster context
    :param dsm: Digital surface model
    :param dtm: Digital terrain model
    :returns: Output with the canopy height model
    """
    align = not dsm.is_aligned_with(dtm)
    if align:
        context.log.warning(f"DTM resampled onto DSM grid: {'; '.join(dsm.alignment_errors(dtm))}")
    result = canopy_height_model(dsm, dtm, align=align)
    metadata = _raster_metadata(result, plot_histogram(result, title="Canopy height"))
    metadata["dtm_resampled"] = align
    return Output(result, metadata=metadata)


@asset(group_name="canopy")
def plot_centroids(context: AssetExecutionContext, settings: SettingsResource) -> gpd.GeoDataFrame:
    """Field plot centre points."""
    plots = read_vector_layer(context, settings, "plot_centroids_file")
    if PLOT_ID_COLUMN not in plots.columns:
        raise ValueError(f"Plot centroids have no {PLOT_ID_COLUMN} column")
    return plots


@asset(group_name="canopy")
def field_heights(context: AssetExecutionContext, settings: SettingsResource) -> pd.DataFrame:
    """Maximum and mean measured stem height per plot."""
    survey = read_table(context, settings, "field_survey_file")
    return summarize_field_heights(survey, SURVEY_PLOT_ID_COLUMN, SURVEY_HEIGHT_COLUMN)


@asset(group_name="canopy")
def lidar_plot_heights(
    context: AssetExecutionContext, settings: SettingsResource, chm: Raster, plot_centroids: gpd.GeoDataFrame
) -> pd.DataFrame:
    """Maximum and mean canopy height within a buffer around each plot centre."""
    radius = settings.get_plot_buffer_radius()
    heights = plot_heights_from_chm(chm, plot_centroids, PLOT_ID_COLUMN, radius, func="max").merge(
        plot_heights_from_chm(chm, plot_centroids, PLOT_ID_COLUMN, radius, func="mean"), on=PLOT_ID_COLUMN
    )
    empty = heights.loc[heights["lidar_max"].isna(), PLOT_ID_COLUMN].tolist()
    if empty:
        context.log.warning(f"No canopy cells within {radius} of plots: {empty}")
    return heights


@asset(group_name="canopy")
def canopy_height_comparison(
    context: AssetExecutionContext, lidar_plot_heights: pd.DataFrame, field_heights: pd.DataFrame
) -> Output[Optional[HeightComparison]]:
    """Regress lidar-derived maximum height on field-measured maximum height.

    :param context: Dagster context
    :param lidar_plot_heights: Lidar heights per plot
    :param field_heights: Field heights per plot
    :returns: Output with the comparison, or None with error metadata
    """
    paired, report = join_lidar_and_field(lidar_plot_heights, field_heights, PLOT_ID_COLUMN, SURVEY_PLOT_ID_COLUMN)
    _log_join_report(context, report)
    metadata = _join_metadata(report)

    try:
        comparison = compare_heights(paired, "lidar_max", "field_max")
    except ValueError as e:
        context.log.error(f"Height comparison failed: {e}")
        return _create_error_output(error=str(e), metadata=metadata)

    fig = plot_scatter(
        paired,
        x="field_max",
        y="lidar_max",
        one_to_one=True,
        title=f"Lidar vs field height (R² = {comparison.r_squared:.2f})",
        xlabel="Maximum measured height (m)",
        ylabel="Maximum lidar height (m)",
    )
    metadata.update(comparison.model_dump())
    metadata["success"] = True
    metadata["plot"] = MetadataValue.md(figure_to_markdown(fig))
    return Output(comparison, metadata=metadata)


# Radiation notes


@asset(group_name="radiation")
def blackbody_radiation() -> Output[pd.DataFrame]:
    """Emitted radiation and peak wavelength for temperatures 1 to 1000 K."""
    table = blackbody_table(1, 1000)
    emitted = plot_scatter(table, "temperature", "m", fit=False, title="Radiation emitted vs temperature")
    wavelength = plot_scatter(table, "temperature", "lambda", fit=False, title="Peak wavelength vs temperature")
    return Output(
        table,
        metadata={
            "rows": len(table),
            "radiation": MetadataValue.md(figure_to_markdown(emitted)),
            "wavelength": MetadataValue.md(figure_to_markdown(wavelength)),
        },
    )


def _log_join_report(context: AssetExecutionContext, report: JoinReport) -> None:
    """Log join row counts, warning when they differ from the expected count.

    :param context: Dagster context
    :param report: Join report
    """
    if report.warning:
        context.log.warning(f"Row count mismatch: {report.warning}")
    else:
        context.log.info(f"{report.how} join returned the expected {report.joined_rows} rows")


def _join_metadata(report: JoinReport) -> dict[str, Any]:
    return {
        "left_rows": report.left_rows,
        "right_rows": report.right_rows,
        "joined_rows": report.joined_rows,
        "expected_rows": report.expected_rows,
        "row_count_matches": report.row_count_matches,
        "warning": report.warning or "",
        "unmatched_keys": ", ".join(report.unmatched_keys),
    }


def _raster_metadata(raster: Raster, fig: Any | None = None) -> dict[str, Any]:
    """Describe a raster's grid and first-layer statistics.

    :param raster: Raster to describe
    :param fig: Optional figure to embed
    :returns: Metadata dictionary
    """
    rows, cols = raster.shape
    summary = IndexSummary.from_array(raster.names[0], raster.values)
    metadata: dict[str, Any] = {
        "layers": ", ".join(raster.names),
        "rows": rows,
        "cols": cols,
        "resolution": list(raster.res),
        "crs": raster.crs,
        "mean": summary.mean,
        "min": summary.min,
        "max": summary.max,
        "valid_pixel_count": summary.valid_pixel_count,
    }
    if fig is not None:
        metadata["plot"] = MetadataValue.md(figure_to_markdown(fig))
    return metadata


def _create_error_output(error: str, metadata: dict[str, Any] | None = None) -> Output[Any]:
    """Create error Output for a computation that could not run.

    :param error: Error message
    :param metadata: Extra metadata to keep
    :returns: Output with no value and error metadata
    """
    return Output(None, metadata={**(metadata or {}), "success": False, "error": error})


def _frequency_metadata(counts: pd.DataFrame) -> dict[str, int]:
    return {str(label): int(count) for label, count in zip(counts["label"], counts["count"])}
