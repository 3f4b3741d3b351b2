from types import SimpleNamespace
from typing import Any

import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")

from geocomputation.models.models import Raster  # noqa: E402


def make_grid(values: Any, names: list[str] | None = None, categories: dict[int, str] | None = None) -> Raster:
    """
    Build a 6 x 6 raster of 0.5-unit cells spanning -1.5..1.5 in both axes.

    Args:
      values: 36 cell values in row-major order
      names: Layer names
      categories: Optional category labels
    """
    return Raster.from_values(
        values,
        nrows=6,
        ncols=6,
        xmin=-1.5,
        xmax=1.5,
        ymin=-1.5,
        ymax=1.5,
        crs="EPSG:4326",
        names=names,
        categories=categories,
    )


@pytest.fixture
def elevation() -> Raster:
    return make_grid(np.arange(1, 37), names=["elev"])


@pytest.fixture
def fake_context() -> Any:
    logs: list[tuple[str, str]] = []
    logger = SimpleNamespace(
        debug=lambda msg, *_, **__: logs.append(("debug", msg)),
        info=lambda msg, *_, **__: logs.append(("info", msg)),
        warning=lambda msg, *_, **__: logs.append(("warning", msg)),
        error=lambda msg, *_, **__: logs.append(("error", msg)),
    )
    return SimpleNamespace(log=logger, logs=logs)
