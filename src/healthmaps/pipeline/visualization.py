# -*- coding: utf-8 -*-
"""
Visualization Functions for Health Board Maps

This module builds the interactive folium map (tile layers, choropleth
polygons, practice and dispenser markers, legends, layer control) and the
static matplotlib figures.
"""

import html
import logging
import os

import folium
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
import contextily as cx
from branca.colormap import LinearColormap, linear
from folium.plugins import Fullscreen, HeatMap, MarkerCluster, MeasureControl, MiniMap

from .config import (
    BOUNDARY_STYLE, DEFAULT_CLASSES, DEFAULT_DPI, DEFAULT_PALETTE, DEFAULT_SCHEME,
    DEFAULT_TILES, DEFAULT_ZOOM, DISPENSER_STYLE, MAP_CENTER, MISSING_COLOR,
    PRACTICE_STYLE, STATIC_CMAP, VALUE_COLUMNS, VIZ_FIGSIZE, WGS84_CRS,
)

logger = logging.getLogger(__name__)

SCHEMES = ("linear", "quantiles")


def _to_web(gdf):
    """Copy of ``gdf`` in WGS84 without empty geometries, safe for GeoJSON."""
    data = gdf.copy()
    if data.crs is not None and not data.crs.equals(WGS84_CRS):
        data = data.to_crs(WGS84_CRS)
    data = data[data.geometry.notna() & ~data.geometry.is_empty]
    for col in data.columns:
        if col != data.geometry.name and pd.api.types.is_datetime64_any_dtype(data[col]):
            data[col] = data[col].astype(str)
    return data


def _is_missing(value):
    return value is None or (isinstance(value, float) and np.isnan(value))


def _bounds(gdf):
    minx, miny, maxx, maxy = gdf.total_bounds
    return [[miny, minx], [maxy, maxx]]


def _tooltip(data, fields, aliases=None):
    if not fields:
        return None
    pairs = [
        (field, alias)
        for field, alias in zip(fields, aliases or fields)
        if field in data.columns
    ]
    if not pairs:
        return None
    return folium.GeoJsonTooltip(
        fields=[field for field, _ in pairs],
        aliases=[f"{alias}:" for _, alias in pairs],
        localize=True,
        sticky=False,
    )


def _popup_html(row, fields):
    lines = []
    for field in fields:
        if field not in row.index or _is_missing(row[field]):
            continue
        label = VALUE_COLUMNS.get(field, field.replace("_", " ").title())
        value = row[field]
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        lines.append(f"<b>{html.escape(str(label))}:</b> {html.escape(str(value))}")
    return "<br>".join(lines)


def build_colormap(values, palette=DEFAULT_PALETTE, caption=None, scheme=DEFAULT_SCHEME, k=DEFAULT_CLASSES):
    """
    Build a branca colour scale over the non-null values.

    Args:
        values: Iterable of numbers
        palette: Name of a branca linear palette (e.g. "YlOrRd_09")
        caption: Legend caption
        scheme: "linear" for a continuous scale, "quantiles" for k classes
        k: Number of classes for the quantile scheme

    Returns:
        LinearColormap or StepColormap
    """
    base = getattr(linear, palette, None)
    if not isinstance(base, LinearColormap):
        raise ValueError(f"Unknown palette: {palette}")
    if scheme not in SCHEMES:
        raise ValueError(f"Unknown classification scheme: {scheme} (expected one of {', '.join(SCHEMES)})")

    series = pd.to_numeric(pd.Series(list(values)), errors="coerce").dropna()
    if series.empty:
        raise ValueError("No numeric values to build a colour scale from")

    vmin, vmax = float(series.min()), float(series.max())
    if vmin == vmax:
        vmax = vmin + 1.0

    colormap = base.scale(vmin, vmax)
    if scheme == "quantiles":
        breaks = np.unique(np.quantile(series, np.linspace(0, 1, k + 1)))
        if len(breaks) < 2:
            breaks = np.array([vmin, vmax])
        colormap = colormap.to_step(index=[float(b) for b in breaks])

    if caption:
        colormap.caption = caption
    return colormap


def create_base_map(center=None, bounds=None, zoom_start=DEFAULT_ZOOM, tiles=None, controls=True):
    """
    Create a folium map with switchable tile providers.

    Args:
        center: [lat, lon] map centre; defaults to Scotland
        bounds: [[south, west], [north, east]] to fit the view to
        zoom_start: Initial zoom when no bounds are given
        tiles: List of (provider, label) pairs; the first is shown
        controls: Add fullscreen, minimap and measure controls

    Returns:
        folium.Map
    """
    m = folium.Map(location=center or MAP_CENTER, zoom_start=zoom_start, tiles=None, control_scale=True)

    for i, (provider, label) in enumerate(tiles or DEFAULT_TILES):
        folium.TileLayer(provider, name=label, overlay=False, control=True, show=(i == 0)).add_to(m)

    if controls:
        Fullscreen().add_to(m)
        MiniMap(toggle_display=True).add_to(m)
        MeasureControl(position='bottomleft', primary_length_unit='kilometers').add_to(m)

    if bounds is not None:
        m.fit_bounds(bounds)

    return m


def add_boundary_layer(m, gdf, name, style=None, tooltip_fields=None, aliases=None, show=True):
    """Add area outlines as a toggleable layer."""
    data = _to_web(gdf)
    style = dict(BOUNDARY_STYLE, **(style or {}))
    if tooltip_fields is None:
        tooltip_fields = [c for c in ("hb_name", "hb_code") if c in data.columns]

    layer = folium.GeoJson(
        data.to_json(),
        name=name,
        style_function=lambda feature, style=style: style,
        tooltip=_tooltip(data, tooltip_fields, aliases),
        show=show,
    )
    layer.add_to(m)
    return layer


def add_choropleth_layer(m, gdf, column, name=None, colormap=None, palette=DEFAULT_PALETTE,
                         scheme=DEFAULT_SCHEME, k=DEFAULT_CLASSES, tooltip_fields=None,
                         aliases=None, show=True, fill_opacity=0.7):
    """
    Add polygons coloured by ``column``, with the colour scale as legend.

    Areas without a value are drawn in a neutral grey.

    Returns:
        Tuple of (feature group, colormap)
    """
    if column not in gdf.columns:
        raise KeyError(f"Column not found: {column}")

    name = name or VALUE_COLUMNS.get(column, column)
    data = _to_web(gdf)
    if colormap is None:
        colormap = build_colormap(data[column], palette=palette, caption=name, scheme=scheme, k=k)

    def style_function(feature):
        value = feature['properties'].get(column)
        return {
            'fillColor': MISSING_COLOR if _is_missing(value) else colormap(value),
            'color': '#333333',
            'weight': 1,
            'fillOpacity': fill_opacity,
        }

    if tooltip_fields is None:
        tooltip_fields = [c for c in ("hb_name", "hb_code") if c in data.columns] + [column]
        aliases = [c.replace("_", " ").title() for c in tooltip_fields[:-1]] + [name]

    group = folium.FeatureGroup(name=name, show=show)
    folium.GeoJson(
        data.to_json(),
        style_function=style_function,
        highlight_function=lambda feature: {'weight': 3, 'color': '#000000'},
        tooltip=_tooltip(data, tooltip_fields, aliases),
    ).add_to(group)
    group.add_to(m)
    colormap.add_to(m)
    return group, colormap


def scale_radius(values, min_radius=PRACTICE_STYLE['min_radius'], max_radius=PRACTICE_STYLE['max_radius']):
    """Marker radii proportional to the square root of the values."""
    sizes = pd.to_numeric(pd.Series(values), errors="coerce").fillna(0).clip(lower=0)
    roots = np.sqrt(sizes)
    if roots.max() == 0:
        return pd.Series(float(min_radius), index=sizes.index)
    return min_radius + (max_radius - min_radius) * roots / roots.max()


def add_point_layer(m, gdf, name, size_column=None, color=PRACTICE_STYLE['color'], popup_fields=None,
                    tooltip_field=None, cluster=False, icon=None, show=True, radius=5):
    """
    Add point markers as a toggleable layer.

    Args:
        m: folium.Map
        gdf: Point GeoDataFrame
        name: Layer name shown in the layer control
        size_column: Column scaling circle radius; None for fixed ``radius``
        color: Marker colour
        popup_fields: Columns listed in the popup
        tooltip_field: Column shown on hover
        cluster: Group markers with MarkerCluster
        icon: Font Awesome icon name; draws pin markers instead of circles

    Returns:
        The FeatureGroup or MarkerCluster holding the markers
    """
    data = _to_web(gdf)
    parent = MarkerCluster(name=name, show=show) if cluster else folium.FeatureGroup(name=name, show=show)

    if size_column and size_column in data.columns:
        radii = scale_radius(data[size_column])
    else:
        radii = pd.Series(float(radius), index=data.index)

    for idx, row in data.iterrows():
        location = [row.geometry.y, row.geometry.x]
        popup_text = _popup_html(row, popup_fields or [])
        popup = folium.Popup(popup_text, max_width=300) if popup_text else None
        tooltip = None
        if tooltip_field and tooltip_field in row.index and not _is_missing(row[tooltip_field]):
            tooltip = str(row[tooltip_field])

        if icon:
            folium.Marker(
                location=location,
                popup=popup,
                tooltip=tooltip,
                icon=folium.Icon(color=color, icon=icon, prefix='fa'),
            ).add_to(parent)
        else:
            folium.CircleMarker(
                location=location,
                radius=float(radii.loc[idx]),
                color=color,
                weight=1,
                fill=True,
                fill_color=color,
                fill_opacity=0.6,
                popup=popup,
                tooltip=tooltip,
            ).add_to(parent)

    parent.add_to(m)
    logger.info(f"Added {len(data)} markers to layer '{name}'")
    return parent


def add_heatmap_layer(m, gdf, name, weight_column=None, show=False):
    """Add a density heat map of point locations."""
    data = _to_web(gdf)
    if weight_column and weight_column in data.columns:
        weights = pd.to_numeric(data[weight_column], errors="coerce").fillna(0)
    else:
        weights = pd.Series(1.0, index=data.index)

    heat_data = [
        [geom.y, geom.x, float(weight)]
        for geom, weight in zip(data.geometry, weights)
    ]
    layer = HeatMap(data=heat_data, name=name, radius=15, blur=10, show=show)
    layer.add_to(m)
    return layer


def legend_html(title, items, position="bottomright"):
    """
    HTML for a fixed-position legend.

    ``items`` are (label, colour) or (label, colour, shape) tuples, shape one
    of "circle", "square" or "line".
    """
    vertical, horizontal = ("bottom", "right")
    if position.startswith("top"):
        vertical = "top"
    if position.endswith("left"):
        horizontal = "left"

    rows = []
    for item in items:
        label, color = item[0], item[1]
        shape = item[2] if len(item) > 2 else "square"
        if shape == "circle":
            swatch = f"background: {color}; border-radius: 50%; width: 12px; height: 12px;"
        elif shape == "line":
            swatch = f"background: {color}; width: 18px; height: 3px;"
        else:
            swatch = f"background: {color}; border: 1px solid #555; width: 14px; height: 14px;"
        rows.append(
            f'<i style="{swatch} display: inline-block; margin-right: 6px;"></i>{html.escape(str(label))}<br>'
        )

    return f"""
    <div style="position: fixed;
                {vertical}: 40px; {horizontal}: 20px;
                border: 2px solid grey; z-index: 9999; font-size: 13px;
                background-color: white; padding: 8px; opacity: 0.9;">
    <b>{html.escape(str(title))}</b><br>
    {''.join(rows)}
    </div>
    """


def add_legend(m, title, items, position="bottomright"):
    """Attach a categorical legend to the map."""
    element = folium.Element(legend_html(title, items, position))
    m.get_root().html.add_child(element)
    return element


def add_title(m, title):
    title_html = f'<h3 align="center" style="font-size:16px"><b>{html.escape(title)}</b></h3>'
    m.get_root().html.add_child(folium.Element(title_html))


def add_layer_control(m, collapsed=False):
    control = folium.LayerControl(collapsed=collapsed)
    control.add_to(m)
    return control


def create_interactive_map(boards, practices=None, dispensers=None, value_column="population",
                           palette=DEFAULT_PALETTE, scheme=DEFAULT_SCHEME, k=DEFAULT_CLASSES,
                           cluster=False, heatmap=False, title=None, output_path=None):
    """
    Create the interactive health board map.

    Args:
        boards: Health board GeoDataFrame, optionally with value columns
        practices: Point GeoDataFrame of GP practices, or None
        dispensers: Point GeoDataFrame of dispensers, or None
        value_column: Board column used for the choropleth; boards are
            drawn as outlines when it is absent or empty
        palette, scheme, k: Colour scale options (see build_colormap)
        cluster: Cluster practice markers
        heatmap: Add a practice density heat map layer (hidden by default)
        title: Map title
        output_path: Path to save the HTML map

    Returns:
        folium.Map
    """
    boards_web = _to_web(boards)
    m = create_base_map(bounds=_bounds(boards_web) if len(boards_web) else None)

    if title:
        add_title(m, title)

    if value_column in boards_web.columns and boards_web[value_column].notna().any():
        add_choropleth_layer(m, boards_web, value_column, palette=palette, scheme=scheme, k=k)
    else:
        if value_column:
            logger.warning(f"No values for '{value_column}'; drawing board outlines only")
        add_boundary_layer(m, boards_web, name="Health boards")

    legend_items = []

    if practices is not None and len(practices):
        popup_fields = [
            c for c in ("practice_name", "practice_code", "postcode", "hb_name", "list_size",
                        "paid_items", "items_per_1000")
            if c in practices.columns
        ]
        add_point_layer(
            m, practices, name="GP practices", size_column="list_size",
            color=PRACTICE_STYLE['color'], popup_fields=popup_fields,
            tooltip_field="practice_name", cluster=cluster,
        )
        legend_items.append(("GP practice (sized by list size)", PRACTICE_STYLE['color'], "circle"))
        if heatmap:
            add_heatmap_layer(m, practices, name="Practice density", weight_column="list_size")

    if dispensers is not None and len(dispensers):
        popup_fields = [
            c for c in ("dispenser_name", "dispenser_code", "postcode", "paid_items")
            if c in dispensers.columns
        ]
        add_point_layer(
            m, dispensers, name="Dispensers", color=DISPENSER_STYLE['color'],
            popup_fields=popup_fields, tooltip_field="dispenser_name",
            icon=DISPENSER_STYLE['icon'], show=False,
        )
        legend_items.append(("Dispenser", DISPENSER_STYLE['color'], "circle"))

    if legend_items:
        add_legend(m, "Locations", legend_items)

    add_layer_control(m)

    if output_path:
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        m.save(output_path)
        logger.info(f"Interactive map saved to {output_path}")

    return m


def plot_static_choropleth(gdf, column, title=None, cmap=STATIC_CMAP, points=None, basemap=True,
                           save_path=None, figsize=VIZ_FIGSIZE):
    """
    Plot a static choropleth with matplotlib.

    Args:
        gdf: Area GeoDataFrame
        column: Column to shade by
        title: Figure title
        cmap: Matplotlib colormap name
        points: Optional point GeoDataFrame drawn on top
        basemap: Add contextily tiles; download failures are logged only
        save_path: Path to save the figure, or None

    Returns:
        Figure and axes objects
    """
    fig, ax = plt.subplots(figsize=figsize)

    data = gdf.to_crs(epsg=3857) if basemap else gdf
    data.plot(
        column=column,
        cmap=cmap,
        legend=True,
        edgecolor='#333333',
        linewidth=0.5,
        alpha=0.8,
        ax=ax,
        missing_kwds={'color': MISSING_COLOR, 'label': 'No data'},
    )

    if points is not None and len(points):
        points.to_crs(data.crs).plot(ax=ax, markersize=4, color=PRACTICE_STYLE['color'], alpha=0.7)

    if basemap:
        try:
            cx.add_basemap(ax, crs=data.crs, source=cx.providers.CartoDB.Positron)
        except Exception as e:
            logger.warning(f"Could not add basemap: {e}")

    ax.set_title(title or VALUE_COLUMNS.get(column, column), fontsize=16)
    ax.set_axis_off()

    if save_path:
        os.makedirs(os.path.dirname(save_path) or ".", exist_ok=True)
        fig.savefig(save_path, dpi=DEFAULT_DPI, bbox_inches='tight')

    return fig, ax


def plot_board_summary(table, value_column, label_column="hb_name", title=None, save_path=None):
    """Horizontal bar chart of a value per health board."""
    data = pd.DataFrame(table).drop(columns="geometry", errors="ignore")
    data = data.dropna(subset=[value_column]).sort_values(value_column, ascending=False)
    if label_column not in data.columns:
        label_column = "hb_code"
    data[label_column] = data[label_column].astype(str)

    fig, ax = plt.subplots(figsize=(10, max(4, 0.4 * len(data))))
    sns.barplot(data=data, x=value_column, y=label_column, color=PRACTICE_STYLE['color'], ax=ax)
    ax.set_xlabel(VALUE_COLUMNS.get(value_column, value_column))
    ax.set_ylabel("")
    ax.set_title(title or f"{VALUE_COLUMNS.get(value_column, value_column)} by health board", fontsize=14)

    if save_path:
        os.makedirs(os.path.dirname(save_path) or ".", exist_ok=True)
        fig.savefig(save_path, dpi=DEFAULT_DPI, bbox_inches='tight')

    return fig, ax
