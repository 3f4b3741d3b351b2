"""
Static plots and thematic maps for the geocomputation workflows.

Every function returns a matplotlib Figure and never calls ``plt.show()``:

    fig = plot_raster(elevation)
    fig.savefig("elevation.png")
"""

import base64
import io

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.colors import BoundaryNorm, ListedColormap
from matplotlib.figure import Figure
from matplotlib.patches import Patch

from geocomputation.models.models import Raster


def plot_raster(
    raster: Raster,
    layer: int | str = 0,
    cmap: str = "viridis",
    title: str | None = None,
    categorical: bool | None = None,
    figsize: tuple[float, float] = (6, 5),
) -> Figure:
    """Plot one raster layer in map coordinates.

    Categorical layers get a discrete legend instead of a colour bar.

    :param raster: Raster to plot
    :param layer: Layer index or name
    :param cmap: Colormap name
    :param title: Plot title, the layer name by default
    :param categorical: Force categorical styling, inferred from categories by default
    :param figsize: Figure size as (width, height)
    :returns: The figure object
    """
    single = raster.layer(layer)
    values = np.ma.masked_invalid(single.values)
    left, bottom, right, top = single.bounds
    categorical = bool(raster.categories) if categorical is None else categorical

    fig, ax = plt.subplots(figsize=figsize)
    if categorical:
        classes = np.unique(values.compressed()).astype(int)
        colors = plt.get_cmap(cmap, max(len(classes), 1))
        listed = ListedColormap([colors(i) for i in range(len(classes))])
        norm = BoundaryNorm(np.append(classes - 0.5, classes[-1] + 0.5) if len(classes) else [0, 1], listed.N)
        ax.imshow(values, extent=(left, right, bottom, top), cmap=listed, norm=norm, interpolation="nearest")
        labels = raster.categories or {}
        handles = [Patch(color=listed(i), label=labels.get(int(c), str(c))) for i, c in enumerate(classes)]
        ax.legend(handles=handles, loc="center left", bbox_to_anchor=(1.0, 0.5), frameon=False)
    else:
        image = ax.imshow(values, extent=(left, right, bottom, top), cmap=cmap, interpolation="nearest")
        fig.colorbar(image, ax=ax, label=single.names[0])

    ax.set_title(title or single.names[0])
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    fig.tight_layout()
    return fig


def plot_histogram(raster: Raster, layer: int | str = 0, bins: int = 30, title: str | None = None) -> Figure:
    """Histogram of the valid cell values of one layer."""
    single = raster.layer(layer)
    values = single.values[~np.isnan(single.values)]

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.hist(values, bins=bins, color="#4a7c59", edgecolor="white")
    ax.set_xlabel(single.names[0])
    ax.set_ylabel("cells")
    ax.set_title(title or f"Distribution of {single.names[0]}")
    fig.tight_layout()
    return fig


def plot_map(
    gdf: gpd.GeoDataFrame,
    column: str | None = None,
    cmap: str = "YlOrBr",
    title: str | None = None,
    legend: bool = True,
    figsize: tuple[float, float] = (10, 5),
) -> Figure:
    """Thematic map of a vector layer.

    Features with a missing value in ``column`` are drawn in light grey.

    :param gdf: Features to draw
    :param column: Attribute to colour by, plain outlines when None
    :param cmap: Colormap name
    :param title: Plot title
    :param legend: Draw a legend or colour bar
    :param figsize: Figure size as (width, height)
    :returns: The figure object
    """
    fig, ax = plt.subplots(figsize=figsize)
    if column is None:
        gdf.plot(ax=ax, facecolor="none", edgecolor="black", linewidth=0.5)
    else:
        gdf.plot(
            ax=ax,
            column=column,
            cmap=cmap,
            legend=legend,
            edgecolor="black",
            linewidth=0.3,
            missing_kwds={"color": "lightgrey", "label": "no data"},
        )
    ax.set_title(title or (column or ""))
    ax.set_axis_off()
    fig.tight_layout()
    return fig


def plot_scatter(
    df: pd.DataFrame,
    x: str,
    y: str,
    fit: bool = True,
    one_to_one: bool = False,
    title: str | None = None,
    xlabel: str | None = None,
    ylabel: str | None = None,
) -> Figure:
    """Scatter plot with optional least-squares line and 1:1 reference line.

    :param df: Data
    :param x: Column on the horizontal axis
    :param y: Column on the vertical axis
    :param fit: Draw the least-squares line
    :param one_to_one: Draw the y = x line
    :param title: Plot title
    :param xlabel: Horizontal axis label
    :param ylabel: Vertical axis label
    :returns: The figure object
    """
    data = df[[x, y]].dropna()
    fig, ax = plt.subplots(figsize=(6, 5))
    ax.scatter(data[x], data[y], s=12, color="#2b6a99")

    if fit and len(data) >= 2:
        slope, intercept = np.polyfit(data[x], data[y], 1)
        xs = np.linspace(data[x].min(), data[x].max(), 100)
        ax.plot(xs, slope * xs + intercept, color="#c0392b", label=f"fit: y = {slope:.2f}x + {intercept:.2f}")
    if one_to_one and len(data):
        low = float(min(data[x].min(), data[y].min()))
        high = float(max(data[x].max(), data[y].max()))
        ax.plot([low, high], [low, high], linestyle="--", color="grey", label="1:1")
    if ax.get_legend_handles_labels()[0]:
        ax.legend()

    ax.set_xlabel(xlabel or x)
    ax.set_ylabel(ylabel or y)
    if title:
        ax.set_title(title)
    fig.tight_layout()
    return fig


def figure_to_markdown(fig: Figure, dpi: int = 80) -> str:
    """Encode a figure as an inline PNG markdown image and close it.

    :param fig: Figure to encode
    :param dpi: Output resolution
    :returns: Markdown image string
    """
    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=dpi)
    plt.close(fig)
    encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"![figure](data:image/png;base64,{encoded})"
