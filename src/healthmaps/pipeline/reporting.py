# -*- coding: utf-8 -*-
"""
Reporting and Quality Assessment

This module contains functions for describing the tables used in a run and
how well they joined, written out as JSON and Markdown reports.
"""

import os
from datetime import datetime

import geopandas as gpd
import pandas as pd

from .config import get_timestamp
from .utils import save_json

MAX_UNMATCHED_SAMPLE = 20


def join_diagnostics(left, right, left_on, right_on=None):
    """
    Describe how the keys of ``left`` match the keys of ``right``.

    Args:
        left: DataFrame being enriched
        right: Lookup DataFrame
        left_on: Key column in ``left``
        right_on: Key column in ``right`` (defaults to ``left_on``)

    Returns:
        Dictionary with row counts and a sample of unmatched keys
    """
    right_on = right_on or left_on
    left_keys = left[left_on]
    right_keys = set(right[right_on].dropna())

    matched = left_keys.isin(right_keys)
    unmatched_keys = sorted({str(k) for k in left_keys[~matched].dropna()})

    return {
        'left_rows': int(len(left)),
        'right_rows': int(len(right)),
        'matched': int(matched.sum()),
        'unmatched': int((~matched).sum()),
        'match_rate': float(matched.mean()) if len(left) else 0.0,
        'unmatched_keys': unmatched_keys[:MAX_UNMATCHED_SAMPLE],
    }


def summarise_table(df):
    """Rows, columns and null counts of a table; CRS for geo tables."""
    summary = {
        'rows': int(len(df)),
        'columns': [str(c) for c in df.columns],
        'null_counts': {
            str(col): int(count)
            for col, count in pd.DataFrame(df).isna().sum().items()
            if count
        },
    }
    if isinstance(df, gpd.GeoDataFrame):
        summary['crs'] = df.crs.to_string() if df.crs is not None else None
        summary['geometry_types'] = sorted(str(t) for t in df.geometry.geom_type.dropna().unique())
    return summary


def generate_data_report(tables, diagnostics=None, output_dir='reports', timestamp=None, outputs=None):
    """
    Generate a report of the tables and joins used to build a map.

    Args:
        tables: Dict of name -> DataFrame/GeoDataFrame
        diagnostics: Dict of join name -> join_diagnostics() result
        output_dir: Directory to save reports
        timestamp: Timestamp used in file names
        outputs: Dict of output name -> path, listed in the report

    Returns:
        Dictionary with report paths
    """
    os.makedirs(output_dir, exist_ok=True)
    timestamp = timestamp or get_timestamp()
    diagnostics = diagnostics or {}
    outputs = outputs or {}

    report = {
        'timestamp': timestamp,
        'generated': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        'tables': {name: summarise_table(df) for name, df in tables.items() if df is not None},
        'joins': diagnostics,
        'outputs': {k: str(v) for k, v in outputs.items() if v},
    }

    report_files = {}
    json_path = os.path.join(output_dir, f"data_report_{timestamp}.json")
    save_json(report, json_path)
    report_files['json'] = json_path

    md_path = os.path.join(output_dir, f"data_report_{timestamp}.md")
    with open(md_path, 'w', encoding='utf-8') as f:
        f.write("# Health Board Map Data Report\n\n")
        f.write(f"**Generated:** {report['generated']}\n\n")

        f.write("## Tables\n\n")
        f.write("| Table | Rows | Columns | CRS |\n")
        f.write("|-------|------|---------|-----|\n")
        for name, summary in report['tables'].items():
            f.write(f"| {name} | {summary['rows']} | {len(summary['columns'])} | {summary.get('crs') or '-'} |\n")
        f.write("\n")

        if diagnostics:
            f.write("## Joins\n\n")
            f.write("| Join | Rows | Matched | Unmatched | Match rate |\n")
            f.write("|------|------|---------|-----------|------------|\n")
            for name, diag in diagnostics.items():
                f.write(
                    f"| {name} | {diag['left_rows']} | {diag['matched']} | "
                    f"{diag['unmatched']} | {diag['match_rate']:.1%} |\n"
                )
            f.write("\n")

            for name, diag in diagnostics.items():
                if diag['unmatched_keys']:
                    f.write(f"- **{name}** unmatched keys: {', '.join(diag['unmatched_keys'])}\n")
            f.write("\n")

        if report['outputs']:
            f.write("## Outputs\n\n")
            for name, path in report['outputs'].items():
                f.write(f"- **{name.replace('_', ' ').title()}:** {os.path.basename(path)}\n")

    report_files['markdown'] = md_path
    return report_files
