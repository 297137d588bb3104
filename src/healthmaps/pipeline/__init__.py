# -*- coding: utf-8 -*-
"""
Health Board Mapping Pipeline

This package provides the steps of the mapping walk-through as modules:
loading boundaries and open data tables, joining and summarising them,
and rendering interactive and static maps.
"""

from .config import (
    DATA_DIR, OUTPUT_DIR, REPORT_DIR, MAPS_DIR, WGS84_CRS, BNG_CRS
)

from .data_loading import (
    read_table, load_boundaries, load_practices, load_postcode_lookup,
    load_health_board_lookup, load_population, load_area_lookup,
    load_prescribing, load_dispensers, load_dispensing,
)
from .preprocessing import (
    standardise_columns, normalise_postcode, add_postcode_key, attach_coordinates,
    reproject, simplify_geometries, filter_health_boards, aggregate_population,
    summarise_practices, summarise_prescribing, summarise_dispensing,
    join_area_attributes, assign_health_board, dissolve_areas, rate_per_population,
)
from .visualization import (
    build_colormap, create_base_map, add_boundary_layer, add_choropleth_layer,
    add_point_layer, add_heatmap_layer, add_legend, add_layer_control,
    create_interactive_map, plot_static_choropleth, plot_board_summary,
)
from .reporting import join_diagnostics, summarise_table, generate_data_report

__all__ = [
    'read_table',
    'load_boundaries',
    'load_practices',
    'load_postcode_lookup',
    'load_health_board_lookup',
    'load_population',
    'load_area_lookup',
    'load_prescribing',
    'load_dispensers',
    'load_dispensing',
    'standardise_columns',
    'normalise_postcode',
    'add_postcode_key',
    'attach_coordinates',
    'reproject',
    'simplify_geometries',
    'filter_health_boards',
    'aggregate_population',
    'summarise_practices',
    'summarise_prescribing',
    'summarise_dispensing',
    'join_area_attributes',
    'assign_health_board',
    'dissolve_areas',
    'rate_per_population',
    'build_colormap',
    'create_base_map',
    'add_boundary_layer',
    'add_choropleth_layer',
    'add_point_layer',
    'add_heatmap_layer',
    'add_legend',
    'add_layer_control',
    'create_interactive_map',
    'plot_static_choropleth',
    'plot_board_summary',
    'join_diagnostics',
    'summarise_table',
    'generate_data_report',
]
