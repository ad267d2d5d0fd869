import re

from road import Coordinate, MalformedInputError

# 3D geometry carries an extra "Z" marker after the keyword. The space
# before the parenthesis is optional.
PREFIXES = ["LINESTRING Z (", "LINESTRING Z(", "LINESTRING (", "LINESTRING("]

NUMBER = re.compile(r"[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")


def is_number(s):
    return NUMBER.fullmatch(s) is not None


def strip_linestring(wkt):
    """
    Returns the point list between the parentheses of a WKT linestring,
    accepting both "LINESTRING Z (...)" and "LINESTRING (...)" with or
    without the space before the parenthesis.
    """
    if not isinstance(wkt, str):
        raise MalformedInputError("Geometry is not a string: {!r}".format(wkt))

    for prefix in PREFIXES:
        if wkt.startswith(prefix):
            break
    else:
        raise MalformedInputError("Not a linestring: {!r}".format(wkt))

    if not wkt.endswith(")"):
        raise MalformedInputError("Linestring is not closed: {!r}".format(wkt))

    return wkt[len(prefix):-1]


def parse_linestring(wkt):
    body = strip_linestring(wkt)
    if body == "":
        return []

    coordinates = []
    for token in body.split(", "):
        parts = token.split(" ")

        if len(parts) not in (2, 3) or not all(is_number(p) for p in parts):
            raise MalformedInputError("Bad coordinate {!r} in {!r}".format(token, wkt))

        if len(parts) == 3:
            coordinates.append(Coordinate(*parts))
        else:
            coordinates.append(Coordinate(parts[0], parts[1], Coordinate.NO_HEIGHT))

    return coordinates


def first_coordinate(wkt):
    coordinates = parse_linestring(wkt)
    if not coordinates:
        raise MalformedInputError("Could not get start coordinate from linestring {!r}".format(wkt))
    return coordinates[0]


def last_coordinate(wkt):
    coordinates = parse_linestring(wkt)
    if not coordinates:
        raise MalformedInputError("Could not get end coordinate from linestring {!r}".format(wkt))
    return coordinates[-1]
