import pytest

from netcontrol.errors import ValidationError
from netcontrol.models.domain import Zone
from netcontrol.services.geospatial import (
    contains,
    contains_radius,
    haversine_km,
    suggest_zone,
    validate_coordinate,
    validate_polygon,
)

SQUARE = [(10.0, 45.0), (10.01, 45.0), (10.01, 45.01), (10.0, 45.01)]


def test_haversine_one_degree_of_latitude() -> None:
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, rel=1e-3)


@pytest.mark.parametrize("value", [(200.0, 10.0), (10.0, 95.0), (-180.5, 0.0), (0.0, -90.1)])
def test_validate_coordinate_rejects_out_of_range(value) -> None:
    with pytest.raises(ValidationError):
        validate_coordinate(value)


def test_validate_coordinate_accepts_bounds_and_returns_tuple() -> None:
    assert validate_coordinate([10, 45]) == (10.0, 45.0)
    assert validate_coordinate((180, -90)) == (180.0, -90.0)


def test_validate_coordinate_rejects_wrong_shape() -> None:
    with pytest.raises(ValidationError):
        validate_coordinate([10.0])
    with pytest.raises(ValidationError):
        validate_coordinate("10,45")


def test_every_vertex_is_inside_its_own_polygon() -> None:
    for vertex in SQUARE:
        assert contains(SQUARE, vertex)


def test_edge_points_count_as_inside() -> None:
    assert contains(SQUARE, (10.005, 45.0))
    assert contains(SQUARE, (10.0, 45.005))


@pytest.mark.parametrize(
    "point, expected",
    [((10.005, 45.005), True), ((10.02, 45.005), False), ((9.999, 45.0), False)],
)
def test_containment_survives_translation(point, expected) -> None:
    dx, dy = 3.5, -2.25
    shifted = [(lon + dx, lat + dy) for lon, lat in SQUARE]
    assert contains(SQUARE, point) is expected
    assert contains(shifted, (point[0] + dx, point[1] + dy)) is expected


def test_contains_accepts_zone_objects() -> None:
    zone = Zone(id="z", name="Start", type="MEDICAL", coordinates=SQUARE)
    assert contains(zone, (10.002, 45.002))


def test_contains_radius_uses_great_circle_distance() -> None:
    # 0.001 degrees of latitude is roughly 111 metres
    assert contains_radius((0.0, 0.0), 200.0, (0.0, 0.001))
    assert not contains_radius((0.0, 0.0), 100.0, (0.0, 0.001))
    assert contains_radius((0.0, 0.0), 0.0, (0.0, 0.0))


def test_validate_polygon_drops_closing_vertex() -> None:
    ring = validate_polygon(SQUARE + [SQUARE[0]])
    assert ring == SQUARE


def test_validate_polygon_rejects_collinear_points() -> None:
    with pytest.raises(ValidationError, match="collinear"):
        validate_polygon([(0, 0), (1, 1), (2, 2)])


def test_validate_polygon_rejects_too_few_vertices() -> None:
    with pytest.raises(ValidationError, match="at least 3"):
        validate_polygon([(0, 0), (1, 1), (0, 0)])


def test_validate_polygon_rejects_self_intersection() -> None:
    bowtie = [(0, 0), (2, 2), (2, 0), (0, 1)]
    with pytest.raises(ValidationError, match="intersect"):
        validate_polygon(bowtie)


def test_suggest_zone_returns_first_match() -> None:
    first = Zone(id="a", name="A", type="GENERAL", coordinates=SQUARE)
    second = Zone(id="b", name="B", type="GENERAL", coordinates=SQUARE)
    assert suggest_zone([first, second], (10.005, 45.005)) is first
    assert suggest_zone([first, second], (11.0, 46.0)) is None
