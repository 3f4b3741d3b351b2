from pathlib import Path
from typing import Any

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point

from geocomputation import storage
from geocomputation.connectors.settings import SettingsResource
from test_raster_ops import _write_geotiff


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> SettingsResource:
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("PLOT_CENTROIDS_FILE", "plots.geojson")
    monkeypatch.setenv("FIELD_SURVEY_FILE", "survey.csv")
    monkeypatch.setenv("DSM_FILE", "dsm.tif")
    monkeypatch.setenv("PLOT_BUFFER_RADIUS", "20")
    return SettingsResource.create()


def test_resolve_data_path_missing_file_raises(settings: SettingsResource) -> None:
    with pytest.raises(FileNotFoundError, match="field_survey_file"):
        storage.resolve_data_path(settings, "field_survey_file")


def test_resolve_data_path_accepts_absolute_path(
    monkeypatch: pytest.MonkeyPatch, settings: SettingsResource, tmp_path: Path
) -> None:
    survey = tmp_path / "elsewhere.csv"
    survey.write_text("plotid,stemheight\n")
    monkeypatch.setenv("FIELD_SURVEY_FILE", str(survey))

    assert storage.resolve_data_path(SettingsResource.create(), "field_survey_file") == survey


def test_read_table_logs_row_count(fake_context: Any, settings: SettingsResource, tmp_path: Path) -> None:
    """
    Test that read_table loads a CSV from the data directory.

    Verifies the returned rows and the info log line.
    """
    pd.DataFrame({"plotid": ["A", "B"], "stemheight": [10.0, 12.0]}).to_csv(tmp_path / "survey.csv", index=False)

    table = storage.read_table(fake_context, settings, "field_survey_file")

    assert table["stemheight"].tolist() == [10.0, 12.0]
    assert ("info", "Loaded 2 rows from survey.csv") in fake_context.logs


def test_read_vector_layer_reprojects(fake_context: Any, settings: SettingsResource, tmp_path: Path) -> None:
    plots = gpd.GeoDataFrame({"Plot_ID": ["SJER1"]}, geometry=[Point(10.0, 50.0)], crs="EPSG:4326")
    plots.to_file(tmp_path / "plots.geojson", driver="GeoJSON")

    loaded = storage.read_vector_layer(fake_context, settings, "plot_centroids_file", crs="EPSG:3857")

    assert loaded["Plot_ID"].tolist() == ["SJER1"]
    assert loaded.crs.to_epsg() == 3857
    assert any(level == "info" and "Loaded 1 features" in msg for level, msg in fake_context.logs)


def test_read_raster_layer(fake_context: Any, settings: SettingsResource, tmp_path: Path) -> None:
    _write_geotiff(tmp_path / "dsm.tif", np.array([[100, 101], [102, 103]], dtype="float32"))

    raster = storage.read_raster_layer(fake_context, settings, "dsm_file")

    assert raster.shape == (2, 2)
    assert raster.values[1, 1] == 103
    assert any("1 layer(s) of 2x2 cells" in msg for _, msg in fake_context.logs)
