"""Storage operations for reading workflow inputs from the data directory."""

from pathlib import Path
from typing import Any

import geopandas as gpd
import pandas as pd
from dagster import AssetExecutionContext, OpExecutionContext

from geocomputation.connectors.settings import SettingsResource
from geocomputation.geospatial.raster_ops import read_raster
from geocomputation.models.models import Raster


def resolve_data_path(settings: SettingsResource, file_attr: str) -> Path:
    """Resolve a configured file name against the data directory.

    :param settings: Settings resource
    :param file_attr: Settings attribute holding the file name
    :returns: Absolute or data-dir-relative path
    :raises FileNotFoundError: If the file does not exist
    """
    name = Path(settings.get_file(file_attr))
    path = name if name.is_absolute() else settings.get_data_dir() / name
    if not path.exists():
        raise FileNotFoundError(f"Input file for {file_attr} not found: {path}")
    return path


def read_vector_layer(
    context: OpExecutionContext | AssetExecutionContext,
    settings: SettingsResource,
    file_attr: str,
    crs: str | None = None,
) -> gpd.GeoDataFrame:
    """Read a vector layer (shapefile, GeoPackage, GeoJSON).

    :param context: Dagster context
    :param settings: Settings resource
    :param file_attr: Settings attribute holding the file name
    :param crs: Optional CRS to reproject to
    :returns: GeoDataFrame
    """
    path = resolve_data_path(settings, file_attr)
    context.log.debug(f"Reading vector layer {path}")
    gdf = gpd.read_file(path)
    if crs is not None and gdf.crs is not None and gdf.crs != crs:
        gdf = gdf.to_crs(crs)
    context.log.info(f"Loaded {len(gdf)} features from {path.name} (crs: {gdf.crs})")
    return gdf


def read_raster_layer(
    context: OpExecutionContext | AssetExecutionContext,
    settings: SettingsResource,
    file_attr: str,
    bands: list[int] | None = None,
) -> Raster:
    """Read a raster layer into memory.

    :param context: Dagster context
    :param settings: Settings resource
    :param file_attr: Settings attribute holding the file name
    :param bands: Optional 1-based band indexes
    :returns: Raster
    """
    path = resolve_data_path(settings, file_attr)
    context.log.debug(f"Reading raster {path}")
    raster = read_raster(str(path), bands=bands)
    rows, cols = raster.shape
    context.log.info(
        f"Loaded {raster.count} layer(s) of {rows}x{cols} cells from {path.name} "
        f"(res: {raster.res}, crs: {raster.crs})"
    )
    return raster


def read_table(
    context: OpExecutionContext | AssetExecutionContext,
    settings: SettingsResource,
    file_attr: str,
    **read_kwargs: Any,
) -> pd.DataFrame:
    """Read a CSV attribute table.

    :param context: Dagster context
    :param settings: Settings resource
    :param file_attr: Settings attribute holding the file name
    :param read_kwargs: Extra arguments for ``pandas.read_csv``
    :returns: DataFrame
    """
    path = resolve_data_path(settings, file_attr)
    context.log.debug(f"Reading table {path}")
    table = pd.read_csv(path, **read_kwargs)
    context.log.info(f"Loaded {len(table)} rows from {path.name}")
    return table
