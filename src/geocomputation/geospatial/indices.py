"""Spectral vegetation and moisture indices."""

from typing import Any

import numpy as np
import rasterio
from numpy.typing import NDArray

from geocomputation.config.constants import LANDSAT_BAND_MAP
from geocomputation.geospatial.raster_ops import (
    _get_geom_dict,
    _read_and_mask_band,
    resample,
    resample_band_to_match,
)
from geocomputation.models.models import Raster

# index name -> (first band, second band) of (first - second) / (first + second)
SPECTRAL_INDICES: dict[str, tuple[str, str]] = {
    "ndvi": ("nir", "red"),
    "ndwi": ("green", "nir"),
    "ndmi": ("nir", "swir"),
}


def _index_bands(name: str) -> tuple[str, str]:
    try:
        return SPECTRAL_INDICES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown spectral index {name!r}, expected one of {sorted(SPECTRAL_INDICES)}") from None


def normalized_difference(first: NDArray[np.floating], second: NDArray[np.floating]) -> NDArray[np.floating]:
    """Compute (first - second) / (first + second).

    Cells where both bands sum to zero are NaN.

    :param first: First band values
    :param second: Second band values
    :returns: Index array
    """
    first = np.asarray(first, dtype="float32")
    second = np.asarray(second, dtype="float32")
    total = first + second
    with np.errstate(divide="ignore", invalid="ignore"):
        result = np.where(total == 0, np.nan, (first - second) / total)
    return result.astype("float32")


def compute_index(name: str, bands: dict[str, Raster]) -> Raster:
    """Compute a spectral index from single-layer band rasters.

    The second band is resampled onto the first band's grid if they differ.

    :param name: Index name (ndvi, ndwi, ndmi)
    :param bands: Band rasters keyed by band label
    :returns: Single-layer index raster
    """
    first_label, second_label = _index_bands(name)
    missing = [label for label in (first_label, second_label) if label not in bands]
    if missing:
        raise ValueError(f"Could not find required bands {missing} for {name.upper()}")

    first, second = bands[first_label], bands[second_label]
    if not first.is_aligned_with(second):
        second = resample(second, first)

    return first.with_data(normalized_difference(first.values, second.values), names=[name.lower()])


def compute_index_from_multiband(
    name: str, raster: Raster, band_map: dict[str, int] | None = None
) -> Raster:
    """Compute a spectral index from a multiband scene.

    :param name: Index name (ndvi, ndwi, ndmi)
    :param raster: Multiband raster
    :param band_map: Band label to 1-based band number, Landsat by default
    :returns: Single-layer index raster
    """
    band_map = band_map or LANDSAT_BAND_MAP
    first_label, second_label = _index_bands(name)
    missing = [label for label in (first_label, second_label) if label not in band_map]
    if missing:
        raise ValueError(f"Band map has no entry for {missing}")
    bands = {label: raster.layer(band_map[label] - 1) for label in (first_label, second_label)}
    return compute_index(name, bands)


def compute_index_from_files(
    name: str,
    paths: dict[str, str],
    bbox_geom: dict[str, Any] | None = None,
    geom_crs: str = "EPSG:4326",
) -> NDArray[np.floating]:
    """Compute a spectral index from single-band files.

    Resamples the second band to match the first band's grid if shapes differ.

    :param name: Index name (ndvi, ndwi, ndmi)
    :param paths: Band file paths keyed by band label
    :param bbox_geom: Optional geometry to clip and mask to
    :param geom_crs: Geometry CRS
    :returns: Index array
    """
    first_label, second_label = _index_bands(name)
    missing = [label for label in (first_label, second_label) if label not in paths]
    if missing:
        raise ValueError(f"Could not find required bands {missing} for {name.upper()}")
    geom_dict = _get_geom_dict(bbox_geom)

    with rasterio.open(paths[first_label]) as first_src, rasterio.open(paths[second_label]) as second_src:
        first_data, first_transform, first_shape = _read_and_mask_band(first_src, geom_dict, geom_crs)
        second_data, second_transform, _ = _read_and_mask_band(second_src, geom_dict, geom_crs)

        if first_data.shape != second_data.shape:
            second_data = resample_band_to_match(
                source_data=second_data,
                source_transform=second_transform,
                source_crs=second_src.crs,
                target_shape=first_data.shape,
                target_transform=first_transform,
                target_crs=first_src.crs,
                bbox_transformed_shape=first_shape,
            )

    return normalized_difference(first_data, second_data)


def compute_ndvi_from_files(
    red_path: str, nir_path: str, bbox_geom: dict[str, Any] | None = None, geom_crs: str = "EPSG:4326"
) -> NDArray[np.floating]:
    """Compute NDVI from red and NIR band files."""
    return compute_index_from_files("ndvi", {"red": red_path, "nir": nir_path}, bbox_geom, geom_crs)


def compute_ndmi_from_files(
    nir_path: str, swir_path: str, bbox_geom: dict[str, Any] | None = None, geom_crs: str = "EPSG:4326"
) -> NDArray[np.floating]:
    """Compute NDMI from NIR and SWIR band files."""
    return compute_index_from_files("ndmi", {"nir": nir_path, "swir": swir_path}, bbox_geom, geom_crs)
