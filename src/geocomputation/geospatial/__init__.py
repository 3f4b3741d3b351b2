"""
Geospatial operations for the geocomputation workflows.

This module contains:
- Vector operations (construction, attribute manipulation, joins)
- Raster operations (map algebra, reclassification, focal/zonal statistics, resampling)
- Spectral indices (NDVI, NDWI, NDMI)
- Canopy height models and field comparison
- Blackbody radiation tables
"""
