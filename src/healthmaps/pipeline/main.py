# -*- coding: utf-8 -*-
"""
Main Health Board Mapping Pipeline

This script runs the complete walk-through: load boundaries and open data
tables, join and summarise them, render the interactive map, optionally
draw static figures, and write a data report.
"""

import os
import sys
import time
import argparse
import logging
import traceback

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from . import config
from .config import (
    DEFAULT_CLASSES, DEFAULT_PALETTE, DEFAULT_SCHEME, LOG_LEVEL, VALUE_COLUMNS,
    WGS84_CRS, ensure_directories, get_timestamp,
)
from .data_loading import (
    is_url, load_area_lookup, load_boundaries, load_dispensers, load_dispensing,
    load_health_board_lookup, load_population, load_postcode_lookup,
    load_practices, load_prescribing,
)
from .preprocessing import (
    add_postcode_key, aggregate_population, assign_health_board, attach_coordinates,
    filter_health_boards, join_area_attributes, rate_per_population,
    simplify_geometries, summarise_dispensing, summarise_practices,
    summarise_prescribing,
)
from .reporting import generate_data_report, join_diagnostics
from .utils import convert_time_format, setup_logging
from .visualization import SCHEMES, create_interactive_map, plot_board_summary, plot_static_choropleth

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Map GP practices and health board data')

    group = parser.add_argument_group('Input')
    group.add_argument('--boundaries', type=str, default=config.BOUNDARIES_PATH,
                       help='Health board boundary file (.shp, .zip, .gpkg, .geojson)')
    group.add_argument('--layer', type=str, help='Layer to read from a GeoPackage')
    group.add_argument('--board-lookup', type=str, help='CSV of health board codes and names')
    group.add_argument('--practices', type=str, help='CSV of GP practices and list sizes (path or URL)')
    group.add_argument('--postcodes', type=str, help='CSV of postcode coordinates (path or URL)')
    group.add_argument('--population', type=str, help='CSV of population estimates (path or URL)')
    group.add_argument('--area-lookup', type=str, help='CSV mapping small areas to health boards')
    group.add_argument('--prescribing', type=str, help='CSV of prescribing volumes by practice')
    group.add_argument('--dispensers', type=str, help='CSV of dispenser locations')
    group.add_argument('--dispensing', type=str, help='CSV of dispensed volumes by dispenser')

    group = parser.add_argument_group('Filtering')
    group.add_argument('--health-board', action='append', default=[],
                       help='Health board code or name to keep (repeatable)')
    group.add_argument('--year', type=int, help='Population year (default: latest)')
    group.add_argument('--sex', type=str, default='All', help='Population sex category')
    group.add_argument('--item-filter', type=str, help='Only count prescribing items whose description contains this text')

    group = parser.add_argument_group('Map')
    group.add_argument('--value-column', type=str, default='population', choices=sorted(VALUE_COLUMNS),
                       help='Board value used for the choropleth')
    group.add_argument('--palette', type=str, default=DEFAULT_PALETTE, help='branca palette name')
    group.add_argument('--scheme', type=str, default=DEFAULT_SCHEME, choices=SCHEMES, help='Colour classification')
    group.add_argument('--classes', type=int, default=DEFAULT_CLASSES, help='Number of quantile classes')
    group.add_argument('--cluster', action='store_true', help='Cluster practice markers')
    group.add_argument('--heatmap', action='store_true', help='Add a practice density heat map layer')
    group.add_argument('--simplify', type=float, default=config.SIMPLIFY_TOLERANCE,
                       help='Boundary simplification tolerance in degrees (0 to disable)')
    group.add_argument('--title', type=str, help='Map title')

    group = parser.add_argument_group('Output')
    group.add_argument('--output-dir', type=str, default=config.OUTPUT_DIR, help='Output directory')
    group.add_argument('--static-plots', action='store_true', help='Also save static PNG figures')
    group.add_argument('--no-basemap', action='store_true', help='Skip basemap tiles in static figures')
    group.add_argument('--log-level', type=str, default=LOG_LEVEL, help='Logging level')
    group.add_argument('--log-file', type=str, help='Also write the log to this file')

    return parser.parse_args(argv)


def resolve_source(value, key, default_path=None, required=False):
    """
    Pick the input for a table: the CLI value, then the configured URL, then
    the default file under data/raw.

    Returns:
        Tuple of (source, cache_path); source is None for a skipped table
    """
    source = value or config.SOURCE_URLS.get(key)
    if source is None and default_path is not None:
        if required or os.path.exists(default_path):
            source = default_path
    if source is None and required:
        raise FileNotFoundError(f"No input given for required table '{key}'")

    cache_path = None
    if source and is_url(source):
        cache_path = os.path.join(config.CACHE_DIR, f"{key}.csv")
    return source, cache_path


def run_pipeline(args):
    """
    Run every step of the walk-through.

    Returns:
        Dictionary with the boards, practices and dispensers frames and the
        paths of everything written
    """
    timestamp = get_timestamp()
    maps_dir = os.path.join(args.output_dir, "maps")
    figures_dir = os.path.join(args.output_dir, "figures")
    report_dir = os.path.join(args.output_dir, "reports")
    ensure_directories(args.output_dir, maps_dir, report_dir)

    tables = {}
    diagnostics = {}
    outputs = {}

    # 1. Boundaries
    logger.info("Loading health board boundaries...")
    boards = load_boundaries(args.boundaries, layer=args.layer, crs=WGS84_CRS)
    if "hb_code" not in boards.columns:
        raise KeyError(f"Boundary file has no health board code column: {list(boards.columns)}")

    lookup_source, _ = resolve_source(args.board_lookup, "board_lookup", config.HEALTH_BOARD_LOOKUP_PATH)
    if lookup_source:
        board_lookup = load_health_board_lookup(lookup_source)
        diagnostics['boundaries -> board lookup'] = join_diagnostics(boards, board_lookup, 'hb_code')
        boards = join_area_attributes(boards, board_lookup, on='hb_code')
        tables['board_lookup'] = board_lookup

    if args.simplify:
        boards = simplify_geometries(boards, args.simplify)

    # 2. Practices and their coordinates
    logger.info("Loading GP practices and postcode coordinates...")
    source, cache_path = resolve_source(args.practices, "practices", config.PRACTICES_PATH, required=True)
    practice_table = load_practices(source, cache_path=cache_path)
    source, cache_path = resolve_source(args.postcodes, "postcodes", config.POSTCODES_PATH, required=True)
    postcodes = load_postcode_lookup(source, cache_path=cache_path)
    tables['practice_list'] = practice_table
    tables['postcodes'] = postcodes

    diagnostics['practices -> postcodes'] = join_diagnostics(
        add_postcode_key(practice_table), add_postcode_key(postcodes), 'postcode_key'
    )
    practices = attach_coordinates(practice_table, postcodes)
    practices = assign_health_board(practices, boards)

    # 3. Prescribing volumes per practice
    source, cache_path = resolve_source(args.prescribing, "prescribing", config.PRESCRIBING_PATH)
    if source:
        logger.info("Summarising prescribing volumes...")
        prescribing = load_prescribing(source, cache_path=cache_path)
        tables['prescribing'] = prescribing
        diagnostics['prescribing -> practices'] = join_diagnostics(prescribing, practice_table, 'practice_code')
        per_practice = summarise_prescribing(prescribing, by='practice_code', item_filter=args.item_filter)
        practices = practices.merge(per_practice, on='practice_code', how='left')
        practices = rate_per_population(practices, 'paid_items', 'list_size', per=1000, name='items_per_1000')
    else:
        logger.info("No prescribing data given; skipping prescribing summary")

    # 4. Restrict to the requested boards
    boards = filter_health_boards(boards, args.health_board)
    practices = filter_health_boards(practices, args.health_board)

    # 5. Board level attributes
    logger.info("Summarising per health board...")
    board_summary = summarise_practices(practices)
    if 'paid_items' in practices.columns:
        rx_board = summarise_prescribing(practices, by='hb_code')[['hb_code', 'paid_items']]
        board_summary = board_summary.merge(rx_board, on='hb_code', how='left')
        board_summary = rate_per_population(board_summary, 'paid_items', 'list_size', per=1000, name='items_per_1000')

    source, cache_path = resolve_source(args.population, "population", config.POPULATION_PATH)
    if source:
        population = load_population(source, cache_path=cache_path)
        tables['population'] = population
        area_lookup = None
        lookup_source, _ = resolve_source(args.area_lookup, "area_lookup", config.AREA_LOOKUP_PATH)
        if lookup_source:
            area_lookup = load_area_lookup(lookup_source)
            tables['area_lookup'] = area_lookup
            if 'area_code' in population.columns:
                diagnostics['population -> area lookup'] = join_diagnostics(population, area_lookup, 'area_code')
        board_population = aggregate_population(population, area_lookup=area_lookup, year=args.year, sex=args.sex)
        board_summary = board_summary.merge(board_population, on='hb_code', how='outer')
    else:
        logger.info("No population data given; skipping population totals")

    diagnostics['boundaries -> board summary'] = join_diagnostics(boards, board_summary, 'hb_code')
    boards = join_area_attributes(boards, board_summary, on='hb_code')

    # 6. Dispensers
    dispensers = None
    source, cache_path = resolve_source(args.dispensers, "dispensers", config.DISPENSERS_PATH)
    if source:
        logger.info("Loading dispensers...")
        dispenser_table = load_dispensers(source, cache_path=cache_path)
        volume_source, volume_cache = resolve_source(args.dispensing, "dispensing", config.DISPENSING_PATH)
        if volume_source:
            dispensing = load_dispensing(volume_source, cache_path=volume_cache)
            tables['dispensing'] = dispensing
            diagnostics['dispensing -> dispensers'] = join_diagnostics(dispensing, dispenser_table, 'dispenser_code')
            diagnostics['dispensers -> dispensing'] = join_diagnostics(dispenser_table, dispensing, 'dispenser_code')
            dispenser_table = summarise_dispensing(dispensing, dispenser_table)
        tables['dispenser_list'] = dispenser_table
        diagnostics['dispensers -> postcodes'] = join_diagnostics(
            add_postcode_key(dispenser_table), add_postcode_key(postcodes), 'postcode_key'
        )
        dispensers = attach_coordinates(dispenser_table, postcodes)
        dispensers = assign_health_board(dispensers, boards)
        dispensers = filter_health_boards(dispensers, args.health_board)
        tables['dispensers'] = dispensers

    tables['boards'] = boards
    tables['practices'] = practices

    # 7. Interactive map
    logger.info("Rendering interactive map...")
    map_path = os.path.join(maps_dir, f"health_map_{timestamp}.html")
    create_interactive_map(
        boards,
        practices=practices,
        dispensers=dispensers,
        value_column=args.value_column,
        palette=args.palette,
        scheme=args.scheme,
        k=args.classes,
        cluster=args.cluster,
        heatmap=args.heatmap,
        title=args.title,
        output_path=map_path,
    )
    outputs['interactive_map'] = map_path

    # 8. Static figures
    figures = {}
    if args.static_plots:
        if args.value_column in boards.columns and boards[args.value_column].notna().any():
            logger.info("Saving static figures...")
            choropleth_path = os.path.join(figures_dir, f"{args.value_column}_map_{timestamp}.png")
            fig, _ = plot_static_choropleth(
                boards, args.value_column, points=practices,
                basemap=not args.no_basemap, save_path=choropleth_path,
            )
            plt.close(fig)
            figures['choropleth'] = choropleth_path

            summary_path = os.path.join(figures_dir, f"{args.value_column}_by_board_{timestamp}.png")
            fig, _ = plot_board_summary(boards, args.value_column, save_path=summary_path)
            plt.close(fig)
            figures['board_summary'] = summary_path
        else:
            logger.warning(f"No values for '{args.value_column}'; static figures skipped")
    outputs.update(figures)

    # 9. Report
    report_files = generate_data_report(tables, diagnostics, output_dir=report_dir,
                                        timestamp=timestamp, outputs=outputs)
    logger.info(f"Data report written to {report_files['markdown']}")

    return {
        'boards': boards,
        'practices': practices,
        'dispensers': dispensers,
        'diagnostics': diagnostics,
        'map_path': map_path,
        'figures': figures,
        'reports': report_files,
    }


def main(argv=None):
    """Command line entry point; returns the exit status."""
    args = parse_args(argv)
    setup_logging(args.log_file, args.log_level)

    start_time = time.time()
    logger.info("===== Health board mapping pipeline =====")
    try:
        results = run_pipeline(args)
    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        logger.error(traceback.format_exc())
        return 1

    logger.info(f"Map saved to: {results['map_path']}")
    logger.info(f"Completed in {convert_time_format(time.time() - start_time)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
