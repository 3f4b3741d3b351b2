"""Dagster job definitions for asset materialization."""

from dagster import AssetSelection, define_asset_job

vector_job = define_asset_job(name="vector_job", selection=AssetSelection.groups("vector"))
raster_job = define_asset_job(name="raster_job", selection=AssetSelection.groups("raster"))
vegetation_job = define_asset_job(name="vegetation_job", selection=AssetSelection.groups("vegetation"))
canopy_job = define_asset_job(name="canopy_job", selection=AssetSelection.groups("canopy"))
radiation_job = define_asset_job(name="radiation_job", selection=AssetSelection.groups("radiation"))

all_jobs = [vector_job, raster_job, vegetation_job, canopy_job, radiation_job]
