"""Raster operations: map algebra, reclassification, focal and zonal statistics,
resampling and combination with vector data."""

import math
import warnings
from collections.abc import Callable, Sequence
from contextlib import ExitStack
from typing import Any

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
import rasterio.merge
import rasterio.warp
from affine import Affine
from numpy.typing import NDArray
from rasterio.enums import Resampling
from rasterio.errors import WindowError
from rasterio.io import MemoryFile
from rasterio.mask import geometry_mask
from rasterio.transform import rowcol
from rasterio.windows import Window, from_bounds, transform as window_transform
from scipy.ndimage import generic_filter
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry

from geocomputation.models.models import IndexSummary, Raster

FOCAL_FUNCTIONS: dict[str, tuple[Callable[..., Any], Callable[..., Any]]] = {
    "mean": (np.mean, np.nanmean),
    "sum": (np.sum, np.nansum),
    "min": (np.min, np.nanmin),
    "max": (np.max, np.nanmax),
    "median": (np.median, np.nanmedian),
    "sd": (lambda v: np.std(v, ddof=1), lambda v: np.nanstd(v, ddof=1)),
}

AGGREGATE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "mean": np.nanmean,
    "sum": np.nansum,
    "min": np.nanmin,
    "max": np.nanmax,
    "median": np.nanmedian,
}

SUMMARY_ALIASES = {"sd": "std"}

# Used on both sides of a warp when neither grid has a CRS
GRID_ONLY_CRS = "EPSG:3857"


def _get_geom_dict(bbox_geom: dict[str, Any] | BaseGeometry | None) -> dict[str, Any] | None:
    """Convert geometry to dictionary format.

    :param bbox_geom: Geometry dict or shapely object
    :returns: Geometry dictionary or None
    """
    if bbox_geom is None:
        return None
    if isinstance(bbox_geom, dict):
        return bbox_geom
    return mapping(bbox_geom)


def _resampling(method: str | Resampling) -> Resampling:
    return method if isinstance(method, Resampling) else Resampling[method]


def _as_geometries(geometries: Any, dst_crs: str | None, geom_crs: str | None = None) -> list[dict[str, Any]]:
    """Normalize vector input to GeoJSON dicts in the raster CRS.

    :param geometries: GeoDataFrame, GeoSeries, shapely geometry, dict or sequence
    :param dst_crs: Raster CRS
    :param geom_crs: CRS of plain geometries, ignored for GeoPandas input
    :returns: List of geometry dictionaries
    """
    if isinstance(geometries, gpd.GeoDataFrame):
        geometries = geometries.geometry
    if isinstance(geometries, gpd.GeoSeries):
        if dst_crs is not None and geometries.crs is not None and geometries.crs != dst_crs:
            geometries = geometries.to_crs(dst_crs)
        return [mapping(geom) for geom in geometries if geom is not None and not geom.is_empty]

    if isinstance(geometries, (dict, BaseGeometry)):
        geometries = [geometries]
    geom_dicts = [_get_geom_dict(geom) for geom in geometries]
    if geom_crs and dst_crs and geom_crs != dst_crs:
        geom_dicts = [rasterio.warp.transform_geom(src_crs=geom_crs, dst_crs=dst_crs, geom=g) for g in geom_dicts]
    return [g for g in geom_dicts if g is not None]


def _clipped_window(
    transform: Affine, bounds: tuple[float, float, float, float], height: int, width: int
) -> Window:
    """Whole-cell window covering bounds, clipped to the grid.

    :param transform: Grid transform
    :param bounds: (left, bottom, right, top)
    :param height: Grid rows
    :param width: Grid columns
    :returns: Window, empty when bounds miss the grid
    """
    window = from_bounds(*bounds, transform=transform).round_offsets().round_lengths()
    try:
        clipped = window.intersection(Window(0, 0, width, height))
    except WindowError:
        return Window(0, 0, 0, 0)
    return Window(int(clipped.col_off), int(clipped.row_off), int(clipped.width), int(clipped.height))


def read_raster(path: str, bands: list[int] | None = None) -> Raster:
    """Read a raster file into memory.

    :param path: Raster path or URL
    :param bands: Optional 1-based band indexes
    :returns: Raster
    """
    with rasterio.open(path) as src:
        return Raster.from_dataset(src, bands=bands)


def resample_band_to_match(
    source_data: NDArray[np.floating],
    source_transform: Any,
    source_crs: str | None,
    target_shape: tuple[int, ...],
    target_transform: Any,
    target_crs: str | None,
    bbox_transformed_shape: Any = None,
    resampling: Resampling = Resampling.bilinear,
) -> NDArray[np.floating]:
    """Resample source band to match target shape and transform.

    Used when bands have different resolutions (e.g., NIR 30m vs thermal 100m).

    :param source_data: Source band array
    :param source_transform: Source transform
    :param source_crs: Source CRS
    :param target_shape: Target shape
    :param target_transform: Target transform
    :param target_crs: Target CRS
    :param bbox_transformed_shape: Optional geometry to mask the result to
    :param resampling: Resampling method
    :returns: Resampled array
    :raises ValueError: If only one of the grids has a CRS
    """
    if source_crs is None and target_crs is None:
        source_crs = target_crs = GRID_ONLY_CRS
    elif source_crs is None or target_crs is None:
        raise ValueError(f"Cannot resample between a grid with and a grid without a CRS ({source_crs} vs {target_crs})")

    dst_data = np.full(target_shape, np.nan, dtype="float32")
    rasterio.warp.reproject(
        source=np.asarray(source_data, dtype="float32"),
        destination=dst_data,
        src_transform=source_transform,
        src_crs=source_crs,
        dst_transform=target_transform,
        dst_crs=target_crs,
        src_nodata=np.nan,
        dst_nodata=np.nan,
        resampling=resampling,
    )

    if bbox_transformed_shape is not None:
        mask = geometry_mask(
            [bbox_transformed_shape],
            transform=target_transform,
            invert=True,
            out_shape=target_shape,
        )
        dst_data[~mask] = np.nan

    return dst_data


def _read_and_mask_band(
    src: Any, geom_dict: dict[str, Any] | None, geom_crs: str, band: int = 1
) -> tuple[NDArray[np.floating], Any, Any]:
    """Read and mask band from raster source.

    :param src: Raster source
    :param geom_dict: Geometry dictionary or None
    :param geom_crs: Geometry CRS
    :param band: 1-based band index
    :returns: Tuple of (data, transform, bbox_shape)
    """
    nodata = src.nodatavals[band - 1]
    if geom_dict:
        bbox_transformed = rasterio.warp.transform_geom(src_crs=geom_crs, dst_crs=src.crs, geom=geom_dict)
        bbox_shape = shape(bbox_transformed)
        window = _clipped_window(src.transform, bbox_shape.bounds, src.height, src.width)
        data = src.read(band, window=window).astype("float32")
        win_transform = src.window_transform(window)
        mask = geometry_mask([bbox_shape], transform=win_transform, invert=True, out_shape=data.shape)
        data[~mask] = np.nan
    else:
        data = src.read(band).astype("float32")
        win_transform, bbox_shape = src.transform, None
    if nodata is not None and not np.isnan(nodata):
        data[data == nodata] = np.nan
    return data, win_transform, bbox_shape


def read_band_window(
    path: str, bbox_geom: dict[str, Any] | BaseGeometry | None, geom_crs: str = "EPSG:4326", band: int = 1
) -> NDArray[np.floating]:
    """Read one band clipped to a geometry's bounds and masked to its outline.

    :param path: Raster path or URL
    :param bbox_geom: Geometry dict or shapely object
    :param geom_crs: Geometry CRS
    :param band: 1-based band index
    :returns: Masked band array
    """
    with rasterio.open(path) as src:
        data, _, _ = _read_and_mask_band(src, _get_geom_dict(bbox_geom), geom_crs, band=band)
    return data


def apply(raster: Raster, func: Callable[[NDArray[np.floating]], Any]) -> Raster:
    """Apply a local (cell-wise) function such as ``np.log``.

    :param raster: Input raster
    :param func: Function of the cell array
    :returns: Raster on the same grid
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        result = func(raster.data)
    return raster.with_data(result)


def reclassify(
    raster: Raster,
    rules: Sequence[Sequence[float]],
    right: bool = True,
    include_lowest: bool = False,
    others: float | None = None,
) -> Raster:
    """Reclassify cell values with an interval or one-to-one table.

    Interval rules are rows of (from, to, becomes); with ``right=True`` each
    interval is (from, to], otherwise [from, to). ``include_lowest`` closes
    the open end of the first (or, with ``right=False``, the last) interval.
    Two-column rules are (is, becomes) exact matches.

    :param raster: Input raster
    :param rules: Reclassification table
    :param right: Close intervals on the right
    :param include_lowest: Close the outermost open end
    :param others: Value for unmatched cells, unchanged when None
    :returns: Reclassified raster
    """
    table = np.asarray(rules, dtype="float64")
    if table.ndim != 2 or table.shape[1] not in (2, 3):
        raise ValueError("Reclassification rules must have 2 or 3 columns")

    source = raster.data
    result = source.copy() if others is None else np.full_like(source, others)
    matched = np.zeros(source.shape, dtype=bool)

    for position, row in enumerate(table):
        if table.shape[1] == 2:
            hit = source == row[0]
        else:
            low, high, _ = row
            if right:
                hit = (source > low) & (source <= high)
                if include_lowest and position == 0:
                    hit |= source == low
            else:
                hit = (source >= low) & (source < high)
                if include_lowest and position == len(table) - 1:
                    hit |= source == high
        hit &= ~matched
        result[hit] = row[-1]
        matched |= hit

    result[np.isnan(source)] = np.nan
    return raster.with_data(result)


def focal(
    raster: Raster,
    size: int | tuple[int, int] = 3,
    func: str | Callable[..., Any] = "mean",
    na_rm: bool = False,
) -> Raster:
    """Moving-window aggregation over each cell's neighbourhood.

    Cells beyond the grid edge count as missing, so edge cells are NaN unless
    ``na_rm`` is set.

    :param raster: Input raster
    :param size: Odd window size, or (rows, cols)
    :param func: Function name (mean, sum, min, max, median, sd) or callable
    :param na_rm: Ignore missing cells inside the window
    :returns: Raster on the same grid
    """
    window = (size, size) if isinstance(size, int) else tuple(size)
    if any(n < 1 or n % 2 == 0 for n in window):
        raise ValueError(f"Focal window must have odd dimensions, got {window}")

    if callable(func):
        fn = func
    elif func in FOCAL_FUNCTIONS:
        strict, nan_aware = FOCAL_FUNCTIONS[func]
        fn = nan_aware if na_rm else strict
    else:
        raise ValueError(f"Unknown focal function: {func}")

    def _window_fn(values: NDArray[np.floating]) -> float:
        if na_rm and np.all(np.isnan(values)):
            return np.nan
        return float(fn(values))

    layers = []
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        for layer in raster.data:
            layers.append(
                generic_filter(layer.astype("float64"), _window_fn, size=window, mode="constant", cval=np.nan)
            )
    return raster.with_data(np.stack(layers))


def zonal(raster: Raster, zones: Raster, func: str = "mean") -> pd.DataFrame:
    """Aggregate cell values within each zone of a categorical raster.

    :param raster: Value raster
    :param zones: Zone raster on the same grid
    :param func: Aggregation (mean, sum, min, max, median, sd, count)
    :returns: DataFrame with a zone column and one column per value layer
    """
    raster.assert_aligned_with(zones)
    zone_values = zones.values.ravel()
    frame = pd.DataFrame({name: raster.data[i].ravel() for i, name in enumerate(raster.names)})
    frame.insert(0, "zone", zone_values)
    frame = frame.dropna(subset=["zone"])

    result = frame.groupby("zone", sort=True).agg(SUMMARY_ALIASES.get(func, func)).reset_index()
    result["zone"] = result["zone"].astype(int)
    if zones.categories:
        result["zone"] = result["zone"].map(lambda z: zones.categories.get(z, str(z)))
    return result


def global_stats(raster: Raster) -> list[IndexSummary]:
    """Summary statistics for each layer.

    :param raster: Input raster
    :returns: One summary per layer
    """
    return [IndexSummary.from_array(name, raster.data[i]) for i, name in enumerate(raster.names)]


def frequency(raster: Raster, layer: int | str = 0) -> pd.DataFrame:
    """Count cells per distinct value.

    :param raster: Input raster
    :param layer: Layer index or name
    :returns: DataFrame with value, count and label (when categorical)
    """
    values = raster.layer(layer).values
    values = values[~np.isnan(values)]
    uniques, counts = np.unique(values, return_counts=True)
    result = pd.DataFrame({"value": uniques, "count": counts})
    if raster.categories:
        result["label"] = [raster.categories.get(int(v), str(v)) for v in uniques]
    return result


def aggregate(raster: Raster, factor: int, func: str = "mean") -> Raster:
    """Coarsen the grid by combining factor x factor blocks of cells.

    The grid is extended with missing cells when its size is not a multiple
    of ``factor``; missing cells are ignored inside each block.

    :param raster: Input raster
    :param factor: Number of cells per block side
    :param func: Aggregation (mean, sum, min, max, median)
    :returns: Coarser raster
    """
    if factor < 1:
        raise ValueError("Aggregation factor must be at least 1")
    if func not in AGGREGATE_FUNCTIONS:
        raise ValueError(f"Unknown aggregation function: {func}")

    layers, rows, cols = raster.data.shape
    out_rows, out_cols = math.ceil(rows / factor), math.ceil(cols / factor)
    padded = np.full((layers, out_rows * factor, out_cols * factor), np.nan, dtype="float32")
    padded[:, :rows, :cols] = raster.data
    blocks = padded.reshape(layers, out_rows, factor, out_cols, factor)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        result = AGGREGATE_FUNCTIONS[func](blocks, axis=(2, 4))
    if func == "sum":
        result[np.all(np.isnan(blocks), axis=(2, 4))] = np.nan

    return Raster(
        data=result,
        transform=raster.transform * Affine.scale(factor),
        crs=raster.crs,
        names=list(raster.names),
    )


def disaggregate(raster: Raster, factor: int, method: str = "nearest") -> Raster:
    """Refine the grid by splitting each cell into factor x factor cells.

    :param raster: Input raster
    :param factor: Number of new cells per old cell side
    :param method: ``nearest`` copies values, anything else is a rasterio resampling name
    :returns: Finer raster
    """
    if factor < 1:
        raise ValueError("Disaggregation factor must be at least 1")
    transform = raster.transform * Affine.scale(1 / factor)
    if method == "nearest":
        data = np.repeat(np.repeat(raster.data, factor, axis=1), factor, axis=2)
        return Raster(
            data=data, transform=transform, crs=raster.crs, names=list(raster.names), categories=raster.categories
        )

    rows, cols = raster.shape
    target = Raster(
        data=np.full((raster.count, rows * factor, cols * factor), np.nan, dtype="float32"),
        transform=transform,
        crs=raster.crs,
        names=list(raster.names),
    )
    return resample(raster, target, method=method)


def resample(raster: Raster, target: Raster, method: str | Resampling = "bilinear") -> Raster:
    """Transfer values onto another raster's grid.

    :param raster: Source raster
    :param target: Raster defining the output grid
    :param method: Resampling method name
    :returns: Raster aligned with ``target``
    """
    layers = [
        resample_band_to_match(
            source_data=raster.data[i],
            source_transform=raster.transform,
            source_crs=raster.crs,
            target_shape=target.shape,
            target_transform=target.transform,
            target_crs=target.crs,
            resampling=_resampling(method),
        )
        for i in range(raster.count)
    ]
    return Raster(
        data=np.stack(layers),
        transform=target.transform,
        crs=target.crs,
        names=list(raster.names),
        categories=raster.categories,
    )


def reproject_raster(raster: Raster, crs: str, method: str | Resampling = "nearest") -> Raster:
    """Project a raster into another coordinate reference system.

    :param raster: Source raster
    :param crs: Target CRS
    :param method: Resampling method name
    :returns: Reprojected raster
    :raises ValueError: If the raster has no CRS
    """
    if raster.crs is None:
        raise ValueError("Cannot reproject a raster without a CRS")
    rows, cols = raster.shape
    dst_transform, width, height = rasterio.warp.calculate_default_transform(
        raster.crs, crs, cols, rows, *raster.bounds
    )
    target = Raster(
        data=np.full((raster.count, height, width), np.nan, dtype="float32"),
        transform=dst_transform,
        crs=crs,
        names=list(raster.names),
    )
    return resample(raster, target, method=method)


def merge(rasters: Sequence[Raster], method: str = "first") -> Raster:
    """Mosaic rasters into one grid covering their combined extent.

    :param rasters: Rasters sharing CRS and layer count
    :param method: Overlap rule passed to ``rasterio.merge.merge``
    :returns: Merged raster on the first raster's resolution
    """
    if not rasters:
        raise ValueError("No rasters to merge")
    first = rasters[0]
    for other in rasters[1:]:
        if other.crs != first.crs:
            raise ValueError(f"Cannot merge rasters in different CRS ({first.crs} vs {other.crs})")
        if other.count != first.count:
            raise ValueError("Cannot merge rasters with different layer counts")

    with ExitStack() as stack:
        datasets = []
        for raster in rasters:
            rows, cols = raster.shape
            memfile = stack.enter_context(MemoryFile())
            dataset = stack.enter_context(
                memfile.open(
                    driver="GTiff",
                    height=rows,
                    width=cols,
                    count=raster.count,
                    dtype="float32",
                    crs=raster.crs,
                    transform=raster.transform,
                    nodata=np.nan,
                )
            )
            dataset.write(raster.data)
            datasets.append(dataset)
        data, transform = rasterio.merge.merge(datasets, nodata=np.nan, method=method)

    return Raster(data=data, transform=transform, crs=first.crs, names=list(first.names), categories=first.categories)


def crop(raster: Raster, geometries: Any, geom_crs: str | None = None) -> Raster:
    """Crop to the bounding box of the given geometries.

    :param raster: Input raster
    :param geometries: GeoDataFrame, GeoSeries, geometry or sequence of geometries
    :param geom_crs: CRS of plain geometries
    :returns: Cropped raster
    """
    geom_dicts = _as_geometries(geometries, raster.crs, geom_crs)
    if not geom_dicts:
        raise ValueError("No geometries to crop to")
    bounds = gpd.GeoSeries([shape(g) for g in geom_dicts]).total_bounds
    rows, cols = raster.shape
    window = _clipped_window(raster.transform, tuple(bounds), rows, cols)
    (row_start, row_stop), (col_start, col_stop) = window.toranges()
    return Raster(
        data=raster.data[:, row_start:row_stop, col_start:col_stop],
        transform=window_transform(window, raster.transform),
        crs=raster.crs,
        names=list(raster.names),
        categories=raster.categories,
    )


def mask(
    raster: Raster,
    geometries: Any,
    geom_crs: str | None = None,
    invert: bool = False,
    all_touched: bool = False,
) -> Raster:
    """Set cells outside (or, with ``invert``, inside) the geometries to NaN.

    :param raster: Input raster
    :param geometries: GeoDataFrame, GeoSeries, geometry or sequence of geometries
    :param geom_crs: CRS of plain geometries
    :param invert: Mask cells inside the geometries instead
    :param all_touched: Include every cell touched by a geometry
    :returns: Masked raster
    """
    geom_dicts = _as_geometries(geometries, raster.crs, geom_crs)
    outside = geometry_mask(
        geom_dicts, transform=raster.transform, out_shape=raster.shape, all_touched=all_touched
    )
    data = raster.data.copy()
    data[:, ~outside if invert else outside] = np.nan
    return raster.with_data(data, keep_categories=True)


def _extract_feature(raster: Raster, geom: BaseGeometry, func: str, all_touched: bool) -> list[float]:
    if geom.geom_type == "Point":
        row, col = rowcol(raster.transform, geom.x, geom.y)
        rows, cols = raster.shape
        _, bottom, right, _ = raster.bounds
        # points on the east or south outer edge belong to the edge cell
        if row == rows and np.isclose(geom.y, bottom):
            row = rows - 1
        if col == cols and np.isclose(geom.x, right):
            col = cols - 1
        if 0 <= row < rows and 0 <= col < cols:
            return [float(v) for v in raster.data[:, row, col]]
        return [np.nan] * raster.count

    clipped = crop(raster, [geom])
    if 0 in clipped.shape:
        return [np.nan] * raster.count
    clipped = mask(clipped, [geom], all_touched=all_touched)
    reducer = AGGREGATE_FUNCTIONS[func]
    values = []
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        for layer in clipped.data:
            valid = layer[~np.isnan(layer)]
            values.append(float(reducer(valid)) if valid.size else np.nan)
    return values


def extract(
    raster: Raster,
    features: gpd.GeoDataFrame,
    func: str = "mean",
    buffer: float | None = None,
    all_touched: bool = False,
    prefix: str = "",
) -> gpd.GeoDataFrame:
    """Extract raster values at vector features.

    Points sample the cell they fall in; polygons (or points with a
    ``buffer``) aggregate the cells whose centres fall inside them.

    :param raster: Value raster
    :param features: Features to extract at
    :param func: Aggregation for polygons (mean, sum, min, max, median)
    :param buffer: Optional buffer distance in raster CRS units
    :param all_touched: Include every cell touched by a polygon
    :param prefix: Prefix for the new value columns
    :returns: Copy of ``features`` with one column per raster layer
    """
    if func not in AGGREGATE_FUNCTIONS:
        raise ValueError(f"Unknown extraction function: {func}")
    geoms = features.geometry
    if raster.crs is not None and geoms.crs is not None and geoms.crs != raster.crs:
        geoms = geoms.to_crs(raster.crs)
    if buffer is not None:
        geoms = geoms.buffer(buffer)

    values = [_extract_feature(raster, geom, func, all_touched) for geom in geoms]
    result = features.copy()
    columns = [f"{prefix}{name}" for name in raster.names]
    for i, column in enumerate(columns):
        result[column] = [row[i] for row in values]
    return result
