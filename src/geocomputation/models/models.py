"""Data models for geocomputation workflows."""

import operator
from collections.abc import Callable
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field as PydanticField
from rasterio.transform import array_bounds, from_bounds, xy


class Raster(BaseModel):
    """In-memory raster grid with named layers.

    Cell values are float32 with NaN marking missing cells.

    :param data: Cell values, shape (layers, rows, cols)
    :param transform: Affine transform of the upper-left corner
    :param crs: Coordinate reference system
    :param names: Layer names
    :param categories: Optional labels for categorical cell values
    """

    data: Any = PydanticField(..., description="Cell values with shape (layers, rows, cols)")
    transform: Any = PydanticField(..., description="Affine transform of the grid")
    crs: str | None = PydanticField(default=None, description="Coordinate reference system")
    names: list[str] = PydanticField(default_factory=list, description="Layer names")
    categories: dict[int, str] | None = PydanticField(default=None, description="Category labels")

    def model_post_init(self, __context: Any) -> None:
        data = np.asarray(self.data, dtype="float32")
        if data.ndim == 2:
            data = data[np.newaxis, :, :]
        if data.ndim != 3:
            raise ValueError(f"Raster data must be 2D or 3D, got {data.ndim}D")
        self.data = data
        if self.crs is not None:
            self.crs = str(self.crs)
        if not self.names:
            self.names = [f"lyr.{i + 1}" for i in range(data.shape[0])]
        if len(self.names) != data.shape[0]:
            raise ValueError(f"Expected {data.shape[0]} layer names, got {len(self.names)}")

    @classmethod
    def from_values(
        cls,
        values: Any,
        nrows: int,
        ncols: int,
        xmin: float,
        xmax: float,
        ymin: float,
        ymax: float,
        crs: str | None = None,
        names: list[str] | None = None,
        categories: dict[int, str] | None = None,
    ) -> "Raster":
        """Create a raster from literal values in row-major order.

        :param values: Cell values, one layer or a sequence of layers
        :param nrows: Number of rows
        :param ncols: Number of columns
        :param xmin: Western edge
        :param xmax: Eastern edge
        :param ymin: Southern edge
        :param ymax: Northern edge
        :param crs: Coordinate reference system
        :param names: Layer names
        :param categories: Category labels
        :returns: Raster instance
        """
        array = np.asarray(values, dtype="float32")
        cells = nrows * ncols
        if array.size % cells != 0:
            raise ValueError(f"{array.size} values do not fill a {nrows} x {ncols} grid")
        array = array.reshape(-1, nrows, ncols)
        transform = from_bounds(xmin, ymin, xmax, ymax, ncols, nrows)
        return cls(data=array, transform=transform, crs=crs, names=names or [], categories=categories)

    @classmethod
    def from_dataset(cls, src: Any, bands: list[int] | None = None) -> "Raster":
        """Create a raster from an open rasterio dataset.

        :param src: Rasterio dataset
        :param bands: 1-based band indexes, all bands when None
        :returns: Raster instance
        """
        indexes = bands or list(range(1, src.count + 1))
        data = src.read(indexes).astype("float32")
        for position, band in enumerate(indexes):
            nodata = src.nodatavals[band - 1]
            if nodata is not None and not np.isnan(nodata):
                data[position][data[position] == nodata] = np.nan
        descriptions = [src.descriptions[band - 1] for band in indexes]
        names = [d if d else f"band_{band}" for d, band in zip(descriptions, indexes)]
        crs = src.crs.to_string() if src.crs else None
        return cls(data=data, transform=src.transform, crs=crs, names=names)

    @property
    def count(self) -> int:
        return int(self.data.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        return int(self.data.shape[1]), int(self.data.shape[2])

    @property
    def res(self) -> tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Bounds as (left, bottom, right, top)."""
        rows, cols = self.shape
        west, south, east, north = array_bounds(rows, cols, self.transform)
        return west, south, east, north

    @property
    def values(self) -> Any:
        """First layer as a 2D array."""
        return self.data[0]

    def layer(self, key: int | str) -> "Raster":
        """Select a single layer by position or name.

        :param key: Layer index (0-based) or layer name
        :returns: Single-layer raster
        """
        index = self.names.index(key) if isinstance(key, str) else key
        return self.with_data(self.data[index], names=[self.names[index]])

    def with_data(self, data: Any, names: list[str] | None = None, keep_categories: bool = False) -> "Raster":
        """Copy grid georeferencing onto new cell values.

        :param data: New cell values
        :param names: Layer names, kept from this raster when layer count matches
        :param keep_categories: Carry category labels over
        :returns: Raster on the same grid
        """
        data = np.asarray(data, dtype="float32")
        count = 1 if data.ndim == 2 else data.shape[0]
        if names is None:
            names = list(self.names) if count == self.count else []
        return Raster(
            data=data,
            transform=self.transform,
            crs=self.crs,
            names=names,
            categories=self.categories if keep_categories else None,
        )

    def alignment_errors(self, other: "Raster") -> list[str]:
        """List grid properties that differ from another raster."""
        errors = []
        if self.crs != other.crs:
            errors.append(f"CRS differs ({self.crs} vs {other.crs})")
        if not np.allclose(self.res, other.res):
            errors.append(f"resolution differs ({self.res} vs {other.res})")
        if not np.allclose((self.transform.c, self.transform.f), (other.transform.c, other.transform.f)):
            errors.append(
                f"origin differs ({(self.transform.c, self.transform.f)} vs {(other.transform.c, other.transform.f)})"
            )
        if self.shape != other.shape:
            errors.append(f"extent differs ({self.bounds} vs {other.bounds})")
        return errors

    def is_aligned_with(self, other: "Raster") -> bool:
        return not self.alignment_errors(other)

    def assert_aligned_with(self, other: "Raster") -> None:
        """Raise ValueError unless both rasters share one grid.

        :param other: Raster to compare against
        :raises ValueError: If resolution, extent, origin or CRS differ
        """
        errors = self.alignment_errors(other)
        if errors:
            raise ValueError(f"Rasters are not aligned: {'; '.join(errors)}")

    def _combine(self, other: Any, op: Callable[[Any, Any], Any]) -> "Raster":
        if isinstance(other, Raster):
            self.assert_aligned_with(other)
            if other.count not in (1, self.count) and self.count != 1:
                raise ValueError(f"Cannot combine {self.count} layers with {other.count} layers")
            other_data = other.data
        else:
            other_data = other
        with np.errstate(divide="ignore", invalid="ignore"):
            result = op(self.data, other_data)
        return self.with_data(np.asarray(result, dtype="float32"))

    def __add__(self, other: Any) -> "Raster":
        return self._combine(other, operator.add)

    def __radd__(self, other: Any) -> "Raster":
        return self._combine(other, lambda a, b: b + a)

    def __sub__(self, other: Any) -> "Raster":
        return self._combine(other, operator.sub)

    def __rsub__(self, other: Any) -> "Raster":
        return self._combine(other, lambda a, b: b - a)

    def __mul__(self, other: Any) -> "Raster":
        return self._combine(other, operator.mul)

    def __rmul__(self, other: Any) -> "Raster":
        return self._combine(other, lambda a, b: b * a)

    def __truediv__(self, other: Any) -> "Raster":
        return self._combine(other, operator.truediv)

    def __pow__(self, other: Any) -> "Raster":
        return self._combine(other, operator.pow)

    def __neg__(self) -> "Raster":
        return self.with_data(-self.data)

    def _compare(self, other: Any, op: Callable[[Any, Any], Any]) -> "Raster":
        # Missing cells stay missing instead of becoming False
        def masked(a: Any, b: Any) -> Any:
            result = op(a, b).astype("float32")
            missing = np.isnan(a) | np.isnan(b) if isinstance(b, np.ndarray) else np.isnan(a)
            return np.where(missing, np.nan, result)

        return self._combine(other, masked)

    def __gt__(self, other: Any) -> "Raster":  # type: ignore[override]
        return self._compare(other, operator.gt)

    def __ge__(self, other: Any) -> "Raster":  # type: ignore[override]
        return self._compare(other, operator.ge)

    def __lt__(self, other: Any) -> "Raster":  # type: ignore[override]
        return self._compare(other, operator.lt)

    def __le__(self, other: Any) -> "Raster":  # type: ignore[override]
        return self._compare(other, operator.le)

    def __eq__(self, other: Any) -> "Raster":  # type: ignore[override]
        return self._compare(other, operator.eq)

    def __ne__(self, other: Any) -> "Raster":  # type: ignore[override]
        return self._compare(other, operator.ne)

    __hash__ = None  # type: ignore[assignment]

    def to_dataframe(self) -> pd.DataFrame:
        """Flatten to one row per cell with cell-centre coordinates.

        :returns: DataFrame with x, y and one column per layer
        """
        rows, cols = self.shape
        row_idx, col_idx = np.meshgrid(np.arange(rows), np.arange(cols), indexing="ij")
        xs, ys = xy(self.transform, row_idx.ravel(), col_idx.ravel())
        frame = pd.DataFrame({"x": np.asarray(xs), "y": np.asarray(ys)})
        for index, name in enumerate(self.names):
            frame[name] = self.data[index].ravel()
        return frame


class IndexSummary(BaseModel):
    """Summary statistics of a raster layer or index array.

    :param name: Layer or index name
    :param mean: Mean value
    :param std: Standard deviation
    :param min: Minimum value
    :param max: Maximum value
    :param valid_pixel_count: Valid pixel count
    """

    name: str = PydanticField(..., description="Layer or index name")
    mean: float = PydanticField(..., description="Mean of valid cells")
    std: float = PydanticField(..., description="Standard deviation of valid cells")
    min: float = PydanticField(..., description="Minimum of valid cells")
    max: float = PydanticField(..., description="Maximum of valid cells")
    valid_pixel_count: int = PydanticField(..., description="Number of non-missing cells")

    @classmethod
    def from_array(cls, name: str, array: Any) -> "IndexSummary":
        """Create summary from numpy array.

        :param name: Layer or index name
        :param array: Cell values, NaN marks missing cells
        :returns: IndexSummary instance
        """
        array = np.asarray(array, dtype="float32")
        valid_pixels = array[~np.isnan(array)]

        return cls(
            name=name,
            mean=float(np.mean(valid_pixels)) if valid_pixels.size > 0 else 0.0,
            std=float(np.std(valid_pixels)) if valid_pixels.size > 0 else 0.0,
            min=float(np.min(valid_pixels)) if valid_pixels.size > 0 else 0.0,
            max=float(np.max(valid_pixels)) if valid_pixels.size > 0 else 0.0,
            valid_pixel_count=int(valid_pixels.size),
        )


class JoinReport(BaseModel):
    """Row accounting for an attribute join.

    :param how: Join type
    :param left_rows: Rows in the left table
    :param right_rows: Rows in the right table
    :param joined_rows: Rows in the result
    :param expected_rows: Rows the result should have
    :param unmatched_keys: Right-hand keys without a left-hand partner
    """

    how: str = PydanticField(..., description="Join type (left or inner)")
    left_rows: int = PydanticField(..., description="Rows in the left table")
    right_rows: int = PydanticField(..., description="Rows in the right table")
    joined_rows: int = PydanticField(..., description="Rows in the joined table")
    expected_rows: int = PydanticField(..., description="Rows the joined table should have")
    unmatched_keys: list[str] = PydanticField(default_factory=list, description="Keys without a partner")

    @property
    def row_count_matches(self) -> bool:
        return self.joined_rows == self.expected_rows

    @property
    def warning(self) -> str | None:
        if self.row_count_matches:
            return None
        message = f"{self.how} join returned {self.joined_rows} rows, expected {self.expected_rows}"
        if self.unmatched_keys:
            message += f"; unmatched keys: {', '.join(self.unmatched_keys)}"
        return message


class HeightComparison(BaseModel):
    """Agreement between Lidar-derived and field-measured heights.

    :param n: Number of plots compared
    :param slope: Least-squares slope of lidar on field height
    :param intercept: Least-squares intercept
    :param r_squared: Coefficient of determination
    :param rmse: Root mean square difference
    :param bias: Mean of lidar minus field height
    """

    n: int = PydanticField(..., description="Number of complete pairs")
    slope: float = PydanticField(..., description="Slope of the linear fit")
    intercept: float = PydanticField(..., description="Intercept of the linear fit")
    r_squared: float = PydanticField(..., description="Coefficient of determination")
    rmse: float = PydanticField(..., description="Root mean square difference")
    bias: float = PydanticField(..., description="Mean lidar minus field height")
