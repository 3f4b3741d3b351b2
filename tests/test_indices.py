from pathlib import Path

import numpy as np
import pytest
from affine import Affine
from shapely.geometry import Polygon, mapping

from conftest import make_grid
from geocomputation.geospatial import indices
from geocomputation.models.models import Raster
from test_raster_ops import _write_geotiff


def test_compute_ndvi_from_files_matches_expected(tmp_path: Path) -> None:
    """
    Test that NDVI computation produces expected results.

    Verifies the NDVI formula: (NIR - Red) / (NIR + Red)
    with known input values.
    """
    red = np.array([[1, 1], [1, 1]], dtype="float32")
    nir = np.array([[3, 3], [3, 3]], dtype="float32")
    red_path = tmp_path / "red.tif"
    nir_path = tmp_path / "nir.tif"
    _write_geotiff(red_path, red)
    _write_geotiff(nir_path, nir)

    geom = mapping(Polygon([(0, 0), (2, 0), (2, -2), (0, -2), (0, 0)]))
    ndvi = indices.compute_ndvi_from_files(str(red_path), str(nir_path), bbox_geom=geom, geom_crs="EPSG:4326")
    assert ndvi.shape == (2, 2)
    expected = np.full((2, 2), 0.5, dtype="float32")
    np.testing.assert_allclose(ndvi, expected, rtol=1e-5)


def test_compute_ndmi_from_files_resamples_when_shapes_differ(tmp_path: Path) -> None:
    """
    Test that NDMI computation handles bands with different resolutions.

    Verifies that SWIR band is resampled to match NIR band shape
    when they have different dimensions.
    """
    nir = np.array([[4, 4], [4, 4]], dtype="float32")
    swir = np.array([[2]], dtype="float32")
    nir_path = tmp_path / "nir.tif"
    swir_path = tmp_path / "swir.tif"
    _write_geotiff(nir_path, nir)
    # Coarser SWIR pixel covering the full 2x2 NIR footprint
    _write_geotiff(swir_path, swir, transform=Affine.translation(0, 0) * Affine.scale(2, -2))

    geom = mapping(Polygon([(0, 0), (2, 0), (2, -2), (0, -2), (0, 0)]))
    ndmi = indices.compute_ndmi_from_files(str(nir_path), str(swir_path), bbox_geom=geom, geom_crs="EPSG:4326")
    assert ndmi.shape == (2, 2)
    valid = ndmi[~np.isnan(ndmi)]
    assert valid.size > 0
    np.testing.assert_allclose(valid, (4 - 2) / (4 + 2), rtol=1e-2, atol=1e-2)


def test_normalized_difference_zero_denominator_is_nan() -> None:
    result = indices.normalized_difference(np.array([0.0, 3.0]), np.array([0.0, 1.0]))
    assert np.isnan(result[0])
    assert result[1] == pytest.approx(0.5)


def test_compute_index_from_multiband_uses_band_map() -> None:
    red = np.full(36, 0.1)
    nir = np.full(36, 0.5)
    blue = green = np.zeros(36)
    scene = make_grid(np.concatenate([blue, green, red, nir]), names=["blue", "green", "red", "nir"])

    ndvi = indices.compute_index_from_multiband("ndvi", scene)

    assert ndvi.names == ["ndvi"]
    assert ndvi.is_aligned_with(scene)
    np.testing.assert_allclose(ndvi.values, (0.5 - 0.1) / (0.5 + 0.1), rtol=1e-5)


def test_compute_index_resamples_second_band() -> None:
    nir = make_grid(np.full(36, 4.0), names=["nir"])
    coarse = Raster(data=np.full((3, 3), 2.0), transform=nir.transform * Affine.scale(2), crs=nir.crs)

    ndmi = indices.compute_index("ndmi", {"nir": nir, "swir": coarse})

    assert ndmi.shape == (6, 6)
    valid = ndmi.values[~np.isnan(ndmi.values)]
    assert valid.size > 0
    np.testing.assert_allclose(valid, 1 / 3, rtol=1e-2, atol=1e-2)


def test_compute_index_resamples_bands_without_crs() -> None:
    nir = Raster.from_values(np.full(36, 4.0), nrows=6, ncols=6, xmin=-1.5, xmax=1.5, ymin=-1.5, ymax=1.5)
    swir = Raster.from_values(np.full(9, 2.0), nrows=3, ncols=3, xmin=-1.5, xmax=1.5, ymin=-1.5, ymax=1.5)
    assert nir.crs is None and swir.crs is None

    ndmi = indices.compute_index("ndmi", {"nir": nir, "swir": swir})

    assert ndmi.shape == (6, 6)
    assert ndmi.crs is None
    valid = ndmi.values[~np.isnan(ndmi.values)]
    assert valid.size > 0
    np.testing.assert_allclose(valid, 1 / 3, rtol=1e-2, atol=1e-2)


def test_unknown_index_or_missing_band_raises() -> None:
    band = make_grid(np.ones(36))
    with pytest.raises(ValueError, match="Unknown spectral index"):
        indices.compute_index("evi", {"nir": band})
    with pytest.raises(ValueError, match="required bands"):
        indices.compute_index("ndvi", {"nir": band})
