"""Dagster definitions for the geocomputation workflows."""

from dagster import Definitions, load_assets_from_modules

from geocomputation import assets  # noqa: TID252
from geocomputation.connectors.settings import SettingsResource
from geocomputation.triggers.jobs import all_jobs

all_assets = load_assets_from_modules([assets])

settings = SettingsResource.create(swallow_errors=True)

defs = Definitions(
    assets=all_assets,
    jobs=all_jobs,
    resources={
        "settings": settings,
    },
)
