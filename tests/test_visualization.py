"""Tests for the interactive map and static figure builders."""

import os

import folium
import matplotlib.pyplot as plt
import numpy as np
import pytest
from branca.colormap import LinearColormap, StepColormap
from folium.plugins import Fullscreen, HeatMap, MarkerCluster, MeasureControl, MiniMap

from healthmaps.pipeline import config
from healthmaps.pipeline.preprocessing import assign_health_board
from healthmaps.pipeline.visualization import (
    add_boundary_layer,
    add_choropleth_layer,
    add_heatmap_layer,
    add_legend,
    add_point_layer,
    build_colormap,
    create_base_map,
    create_interactive_map,
    legend_html,
    plot_board_summary,
    plot_static_choropleth,
    scale_radius,
)


def _children_of(parent, kind):
    return [child for child in parent._children.values() if isinstance(child, kind)]


@pytest.fixture
def valued_boards(boards):
    boards = boards.copy()
    boards["population"] = [1500.0, np.nan]
    return boards


@pytest.fixture
def located_practices(practice_points, boards):
    return assign_health_board(practice_points, boards)


class TestBuildColormap:
    """Colour scales over board values."""

    def test_linear_scale_spans_values(self):
        colormap = build_colormap([10, 20, None, 40], caption="Population")

        assert isinstance(colormap, LinearColormap)
        assert colormap.vmin == 10
        assert colormap.vmax == 40
        assert colormap.caption == "Population"

    def test_constant_values_get_a_non_empty_range(self):
        colormap = build_colormap([5, 5, 5])
        assert colormap.vmax > colormap.vmin

    def test_quantiles_give_step_colormap(self):
        colormap = build_colormap(range(1, 101), scheme="quantiles", k=4)

        assert isinstance(colormap, StepColormap)
        assert len(colormap.index) == 5
        assert colormap.index[0] == 1
        assert colormap.index[-1] == 100

    def test_unknown_palette(self):
        with pytest.raises(ValueError, match="palette"):
            build_colormap([1, 2], palette="NotAPalette")

    def test_unknown_scheme(self):
        with pytest.raises(ValueError, match="scheme"):
            build_colormap([1, 2], scheme="jenks")

    def test_no_numeric_values(self):
        with pytest.raises(ValueError):
            build_colormap([None, "n/a"])


class TestBaseMap:
    """The folium map skeleton."""

    def test_tile_layers_and_controls(self):
        m = create_base_map()

        tiles = _children_of(m, folium.TileLayer)
        assert [t.layer_name for t in tiles] == [label for _, label in config.DEFAULT_TILES]
        assert tiles[0].show is True
        assert all(t.show is False for t in tiles[1:])
        assert _children_of(m, Fullscreen)
        assert _children_of(m, MiniMap)
        assert _children_of(m, MeasureControl)

    def test_controls_can_be_disabled(self):
        m = create_base_map(controls=False, tiles=[("OpenStreetMap", "OSM")])
        assert not _children_of(m, Fullscreen)
        assert len(_children_of(m, folium.TileLayer)) == 1


class TestChoroplethLayer:
    """Polygons coloured by a value column."""

    def test_missing_values_are_grey(self, valued_boards):
        m = create_base_map(controls=False)
        group, colormap = add_choropleth_layer(m, valued_boards, "population")

        geojson = _children_of(group, folium.GeoJson)[0]
        missing = geojson.style_function({"properties": {"population": None}})
        present = geojson.style_function({"properties": {"population": 1500.0}})

        assert missing["fillColor"] == config.MISSING_COLOR
        assert present["fillColor"] == colormap(1500.0)
        assert group.layer_name == config.VALUE_COLUMNS["population"]

    def test_unknown_column(self, boards):
        with pytest.raises(KeyError):
            add_choropleth_layer(create_base_map(controls=False), boards, "population")

    def test_boundary_layer_tooltip(self, boards):
        layer = add_boundary_layer(create_base_map(controls=False), boards, name="Boards")
        tooltip = _children_of(layer, folium.GeoJsonTooltip)[0]
        assert tooltip.fields == ["hb_name", "hb_code"]


class TestPointLayer:
    """Practice and dispenser markers."""

    def test_circle_markers(self, located_practices):
        m = create_base_map(controls=False)
        layer = add_point_layer(m, located_practices, "GP practices", size_column="list_size",
                                popup_fields=["practice_name", "list_size"], tooltip_field="practice_name")

        markers = _children_of(layer, folium.CircleMarker)
        assert isinstance(layer, folium.FeatureGroup)
        assert len(markers) == 3
        radii = sorted(marker.options["radius"] for marker in markers)
        assert radii[-1] == pytest.approx(config.PRACTICE_STYLE["max_radius"])

    def test_cluster(self, located_practices):
        layer = add_point_layer(create_base_map(controls=False), located_practices, "GP practices", cluster=True)
        assert isinstance(layer, MarkerCluster)
        assert len(_children_of(layer, folium.CircleMarker)) == 3

    def test_icon_markers(self, located_practices):
        layer = add_point_layer(create_base_map(controls=False), located_practices, "Dispensers", icon="plus")
        assert len(_children_of(layer, folium.Marker)) == 3
        assert not _children_of(layer, folium.CircleMarker)

    def test_heatmap_points(self, located_practices):
        layer = add_heatmap_layer(create_base_map(controls=False), located_practices, "Density",
                                  weight_column="list_size")
        assert isinstance(layer, HeatMap)
        assert len(layer.data) == 3


def test_scale_radius():
    radii = scale_radius([0, 25, 100, None], min_radius=2, max_radius=12)

    assert radii.iloc[0] == pytest.approx(2)
    assert radii.iloc[1] == pytest.approx(7)
    assert radii.iloc[2] == pytest.approx(12)
    assert radii.iloc[3] == pytest.approx(2)
    assert (scale_radius([0, 0], min_radius=3) == 3).all()


class TestLegend:
    """Fixed-position HTML legends."""

    def test_labels_are_escaped(self):
        text = legend_html("Key", [("<script>", "#ff0000", "circle")])
        assert "&lt;script&gt;" in text
        assert "<script>" not in text
        assert "border-radius: 50%" in text

    def test_position(self):
        text = legend_html("Key", [("A", "#000000")], position="topleft")
        assert "top: 40px" in text
        assert "left: 20px" in text

    def test_added_to_map_html(self):
        m = create_base_map(controls=False)
        add_legend(m, "Locations", [("GP practice", "#2b8cbe", "circle")])
        assert "GP practice" in m.get_root().render()


class TestInteractiveMap:
    """The complete map written to HTML."""

    def test_saves_layers(self, tmp_path, valued_boards, located_practices):
        output = tmp_path / "maps" / "map.html"
        m = create_interactive_map(
            valued_boards, practices=located_practices, dispensers=located_practices,
            heatmap=True, title="Scotland & Tayside", output_path=str(output),
        )

        assert isinstance(m, folium.Map)
        assert output.exists()
        page = output.read_text(encoding="utf-8")
        for text in ("GP practices", "Dispensers", "Practice density", "Locations",
                     config.VALUE_COLUMNS["population"], "Scotland &amp; Tayside"):
            assert text in page
        assert _children_of(m, folium.LayerControl)

    def test_outlines_when_value_missing(self, boards):
        m = create_interactive_map(boards, value_column="population")
        layers = [child for child in m._children.values() if isinstance(child, folium.GeoJson)]
        assert [layer.layer_name for layer in layers] == ["Health boards"]


class TestStaticFigures:
    """matplotlib and seaborn figures."""

    def test_static_choropleth(self, tmp_path, valued_boards, located_practices):
        path = tmp_path / "figures" / "population.png"
        fig, ax = plot_static_choropleth(valued_boards, "population", points=located_practices,
                                         basemap=False, save_path=str(path))
        assert os.path.exists(path)
        assert ax.get_title() == config.VALUE_COLUMNS["population"]
        plt.close(fig)

    def test_board_summary(self, tmp_path, valued_boards):
        path = tmp_path / "summary.png"
        fig, ax = plot_board_summary(valued_boards, "population", save_path=str(path))
        assert os.path.exists(path)
        assert [t.get_text() for t in ax.get_yticklabels()] == ["NHS Grampian"]
        plt.close(fig)
