import json

import pytest

from nvdb2graph import readLinks


def make_record(ref, start, end, wkt):
    return {
        "startnode": start,
        "sluttnode": end,
        "geometri": {"wkt": wkt},
        "vegreferanse": {"kortform": ref},
    }


# Points around Trondheim in UTM zone 33
A = "270514.9 7040934.2 5.2"
B = "270560.1 7040990.8 6.0"
C = "270601.7 7041050.3 7.4"
D = "270650.0 7041100.0 8.1"


@pytest.fixture
def record():
    return make_record


@pytest.fixture
def chain_doc():
    """A -> B via L1, B -> C via L2"""
    return {"objekter": [
        make_record("L1", "A", "B", "LINESTRING Z ({}, {})".format(A, B)),
        make_record("L2", "B", "C", "LINESTRING Z ({}, {})".format(B, C)),
    ]}


@pytest.fixture
def chain(chain_doc):
    return readLinks(chain_doc)


@pytest.fixture
def network_doc():
    """
    Two connected triangles sharing node B plus a separate link X -> Y,
    mixing 2D and 3D geometry.
    """
    return {"objekter": [
        make_record("0 E6 hp1 m0-50", "A", "B", "LINESTRING Z ({}, {})".format(A, B)),
        make_record("0 E6 hp1 m50-120", "B", "C", "LINESTRING Z ({}, {})".format(B, C)),
        make_record("0 E6 hp2 m0-80", "C", "A", "LINESTRING Z ({}, {})".format(C, A)),
        make_record("1 Fv704 hp1 m0-40", "D", "B", "LINESTRING (270650.0 7041100.0, 270560.1 7040990.8)"),
        make_record("1 Fv704 hp1 m40-90", "C", "D", "LINESTRING (270601.7 7041050.3, 270650.0 7041100.0)"),
        make_record("2 Kv1 hp1 m0-10", "X", "Y", "LINESTRING (271000.0 7042000.0, 271010.0 7042010.0)"),
    ]}


@pytest.fixture
def network(network_doc):
    return readLinks(network_doc)


@pytest.fixture
def chain_file(tmp_path, chain_doc):
    path = tmp_path / "links.json"
    path.write_text(json.dumps(chain_doc), encoding="utf-8")
    return path
