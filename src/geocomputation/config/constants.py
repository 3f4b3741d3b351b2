"""Constants for data locations, band mappings and workflow parameters."""

DEFAULT_DATA_DIR = "data"
DEFAULT_PLOT_BUFFER_RADIUS = 20.0

DEFAULT_WORLD_FILE = "world/world.shp"
DEFAULT_COFFEE_FILE = "world/coffee_data.csv"
DEFAULT_LANDSAT_FILE = "landsat/landsat.tif"
DEFAULT_DSM_FILE = "SJER/DigitalSurfaceModel/SJER2013_DSM.tif"
DEFAULT_DTM_FILE = "SJER/DigitalTerrainModel/SJER2013_DTM.tif"
DEFAULT_PLOT_CENTROIDS_FILE = "SJER/PlotCentroids/SJER_plot_centroids.shp"
DEFAULT_FIELD_SURVEY_FILE = "SJER/VegetationData/D17_2013_vegStr.csv"

SETTINGS_DEFAULTS: dict[str, object] = {
    "data_dir": DEFAULT_DATA_DIR,
    "world_file": DEFAULT_WORLD_FILE,
    "coffee_file": DEFAULT_COFFEE_FILE,
    "landsat_file": DEFAULT_LANDSAT_FILE,
    "dsm_file": DEFAULT_DSM_FILE,
    "dtm_file": DEFAULT_DTM_FILE,
    "plot_centroids_file": DEFAULT_PLOT_CENTROIDS_FILE,
    "field_survey_file": DEFAULT_FIELD_SURVEY_FILE,
    "plot_buffer_radius": DEFAULT_PLOT_BUFFER_RADIUS,
}

# Country keys
WORLD_KEY = "name_long"
COFFEE_KEY = "name_long"
COUNTRY_NAME_FIXES: dict[str, str] = {
    "Congo, Dem. Rep. of": "Democratic Republic of the Congo",
}

# Field survey columns
PLOT_ID_COLUMN = "Plot_ID"
SURVEY_PLOT_ID_COLUMN = "plotid"
SURVEY_HEIGHT_COLUMN = "stemheight"

# Landsat band numbers (1-based) for the four-band multispectral scene
LANDSAT_BAND_MAP: dict[str, int] = {
    "blue": 1,
    "green": 2,
    "red": 3,
    "nir": 4,
}

# Literal example grids: 6 x 6 cells of 0.5 units centred on the origin
EXAMPLE_GRID_SIZE = 6
EXAMPLE_GRID_EXTENT = (-1.5, 1.5, -1.5, 1.5)
EXAMPLE_GRID_CRS = "EPSG:4326"
GRAIN_CATEGORIES: dict[int, str] = {1: "clay", 2: "silt", 3: "sand"}
GRAIN_VALUES: list[int] = [
    1, 1, 2, 1, 3, 2,
    2, 1, 1, 3, 2, 2,
    3, 2, 1, 1, 2, 3,
    1, 3, 2, 2, 1, 1,
    2, 2, 3, 1, 3, 2,
    3, 1, 2, 3, 1, 2,
]

# (from, to, becomes), intervals closed on the right
ELEVATION_RECLASS_RULES: list[tuple[float, float, float]] = [
    (0, 12, 1),
    (12, 24, 2),
    (24, 36, 3),
]

# Blackbody radiation
STEFAN_BOLTZMANN = 5.7e-8
WIEN_CONSTANT = 2898.0
