"""Vector operations: constructing features, attribute manipulation and joins."""

from collections.abc import Sequence
from typing import Any

import geopandas as gpd
import pandas as pd
from shapely.geometry import LineString, Point, Polygon

from geocomputation.models.models import JoinReport


def make_point(x: float, y: float) -> Point:
    return Point(x, y)


def make_linestring(coordinates: Sequence[tuple[float, float]]) -> LineString:
    return LineString(coordinates)


def make_polygon(
    shell: Sequence[tuple[float, float]], holes: Sequence[Sequence[tuple[float, float]]] | None = None
) -> Polygon:
    """Build a polygon from a ring of coordinates.

    The ring is closed automatically if the last vertex differs from the first.

    :param shell: Exterior ring
    :param holes: Optional interior rings
    :returns: Polygon
    """
    polygon = Polygon(shell, holes)
    if not polygon.is_valid:
        raise ValueError(f"Invalid polygon: {polygon.wkt}")
    return polygon


def geodataframe_from_records(
    records: Sequence[dict[str, Any]] | pd.DataFrame, geometries: Sequence[Any], crs: str | None = None
) -> gpd.GeoDataFrame:
    """Attach geometries to attribute records.

    :param records: Attribute rows
    :param geometries: One geometry per row
    :param crs: Coordinate reference system
    :returns: GeoDataFrame
    """
    frame = records if isinstance(records, pd.DataFrame) else pd.DataFrame(list(records))
    if len(frame) != len(geometries):
        raise ValueError(f"Got {len(geometries)} geometries for {len(frame)} records")
    return gpd.GeoDataFrame(frame.reset_index(drop=True), geometry=list(geometries), crs=crs)


def points_from_table(df: pd.DataFrame, x: str, y: str, crs: str | None = None) -> gpd.GeoDataFrame:
    """Turn a table with coordinate columns into point features.

    :param df: Table with coordinate columns
    :param x: Easting/longitude column
    :param y: Northing/latitude column
    :param crs: Coordinate reference system
    :returns: GeoDataFrame of points
    """
    missing = [column for column in (x, y) if column not in df.columns]
    if missing:
        raise ValueError(f"Missing coordinate columns: {missing}")
    return gpd.GeoDataFrame(df.copy(), geometry=gpd.points_from_xy(df[x], df[y]), crs=crs)


def select_columns(gdf: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Select attribute columns, keeping the geometry of spatial frames.

    :param gdf: DataFrame or GeoDataFrame
    :param columns: Attribute columns to keep
    :returns: Frame of the same type
    """
    columns = list(columns)
    if isinstance(gdf, gpd.GeoDataFrame):
        geometry = gdf.geometry.name
        if geometry not in columns:
            columns.append(geometry)
    return gdf[columns]


def rename_columns(gdf: pd.DataFrame, mapping: dict[str, str]) -> pd.DataFrame:
    missing = [column for column in mapping if column not in gdf.columns]
    if missing:
        raise ValueError(f"Cannot rename missing columns: {missing}")
    return gdf.rename(columns=mapping)


def filter_rows(gdf: pd.DataFrame, expression: str) -> pd.DataFrame:
    """Keep rows matching a pandas query expression, e.g. ``"area_km2 < 10000"``."""
    return gdf.query(expression)


def drop_geometry(gdf: gpd.GeoDataFrame) -> pd.DataFrame:
    """Return the attribute table without its geometry column."""
    return pd.DataFrame(gdf.drop(columns=gdf.geometry.name))


def aggregate_by(gdf: pd.DataFrame, by: str | list[str], aggregations: dict[str, str]) -> pd.DataFrame:
    """Group features and aggregate attribute columns.

    GeoDataFrames are dissolved so each group keeps the union of its geometries.

    :param gdf: DataFrame or GeoDataFrame
    :param by: Grouping column(s)
    :param aggregations: Column to aggregation function
    :returns: One row per group
    """
    if isinstance(gdf, gpd.GeoDataFrame):
        columns = [gdf.geometry.name, *([by] if isinstance(by, str) else by), *aggregations]
        return gdf[columns].dissolve(by=by, aggfunc=aggregations).reset_index()
    return gdf.groupby(by).agg(aggregations).reset_index()


def harmonize_keys(df: pd.DataFrame, column: str, mapping: dict[str, str]) -> pd.DataFrame:
    """Rewrite key values so they match another table's spelling.

    :param df: Table to fix
    :param column: Key column
    :param mapping: Old value to new value
    :returns: Copy with replaced keys
    """
    result = df.copy()
    result[column] = result[column].replace(mapping)
    return result


def unmatched_keys(left: pd.DataFrame, right: pd.DataFrame, left_on: str, right_on: str) -> list[str]:
    """Right-hand key values that have no partner in the left table."""
    left_keys = set(left[left_on].dropna())
    return sorted(str(key) for key in right[right_on].dropna().unique() if key not in left_keys)


def join_attributes(
    left: pd.DataFrame,
    right: pd.DataFrame,
    on: str | None = None,
    left_on: str | None = None,
    right_on: str | None = None,
    how: str = "left",
    expected_rows: int | None = None,
) -> tuple[pd.DataFrame, JoinReport]:
    """Join two attribute tables by key and account for the rows.

    A GeoDataFrame on the left keeps its geometry. The expected row count
    defaults to the right table's for inner joins and the left table's for
    left joins; a mismatch is reported, never raised.

    :param left: Left table
    :param right: Right table
    :param on: Key present in both tables
    :param left_on: Left key
    :param right_on: Right key
    :param how: left or inner
    :param expected_rows: Row count the join should produce
    :returns: Tuple of (joined table, join report)
    """
    if how not in ("left", "inner"):
        raise ValueError(f"Unsupported join type: {how}")
    left_on = left_on or on
    right_on = right_on or on
    if left_on is None or right_on is None:
        raise ValueError("A join key is required (on, or left_on and right_on)")

    joined = left.merge(right, left_on=left_on, right_on=right_on, how=how, suffixes=("", "_right"))
    if right_on != left_on and right_on in joined.columns:
        joined = joined.drop(columns=right_on)

    if expected_rows is None:
        expected_rows = len(right) if how == "inner" else len(left)

    report = JoinReport(
        how=how,
        left_rows=len(left),
        right_rows=len(right),
        joined_rows=len(joined),
        expected_rows=expected_rows,
        unmatched_keys=unmatched_keys(left, right, left_on, right_on),
    )
    return joined, report


def spatial_join(
    left: gpd.GeoDataFrame, right: gpd.GeoDataFrame, predicate: str = "intersects", how: str = "left"
) -> gpd.GeoDataFrame:
    """Join attributes by spatial relationship.

    ``right`` is reprojected to the CRS of ``left`` when they differ.

    :param left: Features receiving attributes
    :param right: Features providing attributes
    :param predicate: Binary predicate (intersects, within, contains, ...)
    :param how: left, right or inner
    :returns: Joined GeoDataFrame in the CRS of ``left``
    """
    if left.crs is not None and right.crs is not None and left.crs != right.crs:
        right = right.to_crs(left.crs)
    return gpd.sjoin(left, right, how=how, predicate=predicate)


def spatial_filter(gdf: gpd.GeoDataFrame, mask: Any, predicate: str = "intersects") -> gpd.GeoDataFrame:
    """Keep features with the given relationship to a mask geometry or layer.

    :param gdf: Features to filter
    :param mask: Shapely geometry, GeoSeries or GeoDataFrame
    :param predicate: Binary predicate
    :returns: Matching features
    """
    if isinstance(mask, (gpd.GeoDataFrame, gpd.GeoSeries)):
        if gdf.crs is not None and mask.crs is not None and mask.crs != gdf.crs:
            mask = mask.to_crs(gdf.crs)
        mask = mask.union_all() if hasattr(mask, "union_all") else mask.unary_union
    hits = getattr(gdf.geometry, predicate)(mask)
    return gdf[hits]


def buffer(gdf: gpd.GeoDataFrame, distance: float, square: bool = False) -> gpd.GeoDataFrame:
    """Replace geometries with buffers of ``distance`` CRS units.

    :param gdf: Features to buffer
    :param distance: Buffer distance
    :param square: Square instead of round caps
    :returns: Copy with buffered geometries
    """
    result = gdf.copy()
    result[result.geometry.name] = gdf.geometry.buffer(distance, cap_style="square" if square else "round")
    return result


def reproject(gdf: gpd.GeoDataFrame, crs: str) -> gpd.GeoDataFrame:
    if gdf.crs is None:
        raise ValueError("Cannot reproject features without a CRS")
    return gdf.to_crs(crs)
