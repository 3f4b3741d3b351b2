"""Settings resource for managing configuration from environment variables."""

import os
from pathlib import Path
from typing import Any, Union, get_args, get_origin, get_type_hints

from dagster import ConfigurableResource, EnvVar

from geocomputation.config.constants import DEFAULT_PLOT_BUFFER_RADIUS, SETTINGS_DEFAULTS


class SettingsResource(ConfigurableResource[Any]):
    """Settings resource using EnvVar for runtime resolution in Dagster."""

    data_dir: str = EnvVar("DATA_DIR")
    world_file: str = EnvVar("WORLD_FILE")
    coffee_file: str = EnvVar("COFFEE_FILE")
    landsat_file: str = EnvVar("LANDSAT_FILE")
    dsm_file: str = EnvVar("DSM_FILE")
    dtm_file: str = EnvVar("DTM_FILE")
    plot_centroids_file: str = EnvVar("PLOT_CENTROIDS_FILE")
    field_survey_file: str = EnvVar("FIELD_SURVEY_FILE")
    plot_buffer_radius: float = EnvVar("PLOT_BUFFER_RADIUS")  # type: ignore[assignment]

    @staticmethod
    def create(swallow_errors: bool = False) -> "SettingsResource":
        """Create SettingsResource from environment variables.

        Unset variables fall back to the defaults in ``config.constants``.

        :param swallow_errors: If True, ignore validation errors
        :returns: SettingsResource instance
        """
        env_values: dict[str, Any] = {}
        for attr_name, attr_type in get_type_hints(SettingsResource).items():
            raw = os.environ.get(attr_name.upper())
            if raw is None:
                env_values[attr_name] = SETTINGS_DEFAULTS.get(attr_name)
            elif attr_type is float:
                env_values[attr_name] = float(raw) if raw else None
            else:
                env_values[attr_name] = raw

        settings = SettingsResource(**env_values)
        try:
            settings._post_init()
        except (TypeError, ValueError):
            if not swallow_errors:
                raise
        return settings

    def _resolve(self, value: Any) -> Any:
        return value.get_value() if isinstance(value, EnvVar) else value

    def get_data_dir(self) -> Path:
        """Get data directory, resolving EnvVar if needed.

        :returns: Data directory path
        """
        return Path(self._resolve(self.data_dir) or SETTINGS_DEFAULTS["data_dir"])  # type: ignore[arg-type]

    def get_file(self, attr_name: str) -> str:
        """Get a configured file name, resolving EnvVar if needed.

        :param attr_name: Settings attribute holding the file name
        :returns: File name relative to the data directory
        """
        value = self._resolve(getattr(self, attr_name))
        if not value:
            value = SETTINGS_DEFAULTS.get(attr_name)
        if not value:
            raise ValueError(f"No file configured for {attr_name}")
        return str(value)

    def get_plot_buffer_radius(self) -> float:
        """Get plot buffer radius in map units, resolving EnvVar if needed.

        :returns: Buffer radius
        """
        radius = self._resolve(self.plot_buffer_radius)
        if radius is None or radius == "":
            return DEFAULT_PLOT_BUFFER_RADIUS
        return float(radius)

    def validate_settings(self) -> None:
        """Validate all required settings are present."""
        missing_vars = []
        for attr_name, attr_type in get_type_hints(self.__class__).items():
            attr_value = getattr(self, attr_name, None)
            if isinstance(attr_value, EnvVar):
                is_optional = get_origin(attr_type) is Union and type(None) in get_args(attr_type)
                if not is_optional and attr_value.get_value() is None:
                    missing_vars.append(attr_value.env_var_name)
        if missing_vars:
            raise ValueError(f"Missing mandatory environment variables: {', '.join(missing_vars)}")
        if self.get_plot_buffer_radius() <= 0:
            raise ValueError("PLOT_BUFFER_RADIUS must be positive")

    def _post_init(self) -> None:
        self.validate_settings()
