import geopandas as gpd
import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from shapely.geometry import box

from conftest import make_grid
from geocomputation import visualization
from geocomputation.models.models import Raster


def test_plot_raster_continuous_has_colorbar(elevation: Raster) -> None:
    fig = visualization.plot_raster(elevation, title="Elevation")

    assert isinstance(fig, Figure)
    assert len(fig.axes) == 2
    assert fig.axes[0].get_title() == "Elevation"


def test_plot_raster_categorical_has_legend() -> None:
    grain = make_grid([1, 2, 3] * 12, names=["grain"], categories={1: "clay", 2: "silt", 3: "sand"})

    fig = visualization.plot_raster(grain)

    legend = fig.axes[0].get_legend()
    assert [text.get_text() for text in legend.get_texts()] == ["clay", "silt", "sand"]


def test_plot_histogram_ignores_missing(elevation: Raster) -> None:
    data = elevation.data.copy()
    data[0, 0, :] = np.nan
    fig = visualization.plot_histogram(elevation.with_data(data), bins=5)

    counts = [patch.get_height() for patch in fig.axes[0].patches]
    assert sum(counts) == 30


def test_plot_map_and_scatter() -> None:
    gdf = gpd.GeoDataFrame(
        {"value": [1.0, np.nan]}, geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1)], crs="EPSG:4326"
    )
    table = pd.DataFrame({"x": [1.0, 2.0, 3.0], "y": [2.0, 4.0, 6.0]})

    map_fig = visualization.plot_map(gdf, column="value", title="Values")
    scatter_fig = visualization.plot_scatter(table, "x", "y", one_to_one=True)

    assert map_fig.axes[0].get_title() == "Values"
    labels = [line.get_label() for line in scatter_fig.axes[0].get_lines()]
    assert labels[0].startswith("fit: y = 2.00x")
    assert "1:1" in labels


def test_figure_to_markdown_embeds_png(elevation: Raster) -> None:
    markdown = visualization.figure_to_markdown(visualization.plot_raster(elevation))
    assert markdown.startswith("![figure](data:image/png;base64,")
