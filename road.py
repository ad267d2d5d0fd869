from collections import namedtuple

import utm


class MalformedInputError(ValueError):
    pass


class MissingFieldError(MalformedInputError, KeyError):

    def __init__(self, field, record=None):
        self.field = field
        self.record = record
        super().__init__("Missing or non-string field '{}'".format(field))

    def __str__(self):
        return self.args[0]


class TraversalError(RuntimeError):
    pass


class Coordinate(namedtuple("Coordinate", ["e", "n", "h"])):
    """
    A single point of a link geometry. Easting, northing and height are
    kept as the text found in the source so output matches it exactly.
    Height is "N/A" for 2D geometry.
    """

    __slots__ = ()

    NO_HEIGHT = "N/A"

    def has_height(self):
        return self.h != Coordinate.NO_HEIGHT

    def to_latlon(self, zone, letter):
        # NVDB eastings west of the zone go below 100000 or negative
        return utm.to_latlon(float(self.e), float(self.n), zone, letter, strict=False)

    def __str__(self):
        return "{:<16}\t{:<16}\t{}".format(self.e, self.n, self.h)


class Node:

    def __init__(self, id, coordinate):
        self.id = id
        self.coordinate = coordinate
        self.outgoing = []
        self.incoming = []

    def add_outgoing(self, linkref):
        self.outgoing.append(linkref)

    def add_incoming(self, linkref):
        self.incoming.append(linkref)

    def __repr__(self):
        return "Node(id={!r}, out={}, in={})".format(self.id, self.outgoing, self.incoming)


class RoadLink:

    def __init__(self, id, start, end, coordinates):
        self.id = id
        self.start = start
        self.end = end
        self.coordinates = list(coordinates)

    def __repr__(self):
        return "RoadLink(id={!r}, {!r} -> {!r}, points={})".format(
            self.id, self.start, self.end, len(self.coordinates))


class RoadGraph:
    """
    Owns every Node and RoadLink of a run. Both maps keep insertion order,
    and entries are only ever added: the first occurrence of an identifier
    wins and is never replaced.
    """

    def __init__(self):
        self.nodes = {}
        self.links = {}

    def get_or_create_node(self, id, coordinate):
        node = self.nodes.get(id)
        if node is None:
            node = Node(id, coordinate)
            self.nodes[id] = node
        return node

    def get_or_create_link(self, id, start, end, coordinates):
        link = self.links.get(id)
        if link is None:
            # Endpoints have to be registered before the link
            assert start in self.nodes, "start node {} not in graph".format(start)
            assert end in self.nodes, "end node {} not in graph".format(end)
            link = RoadLink(id, start, end, coordinates)
            self.links[id] = link
        return link

    def has_link(self, id):
        return id in self.links

    def node_ids(self):
        return list(self.nodes)

    def node(self, id):
        assert id in self.nodes, "unknown node {}".format(id)
        return self.nodes[id]

    def link(self, id):
        assert id in self.links, "unknown link {}".format(id)
        return self.links[id]

    def check_consistency(self):
        for link in self.links.values():
            assert link.start in self.nodes, "link {} has dangling start {}".format(link.id, link.start)
            assert link.end in self.nodes, "link {} has dangling end {}".format(link.id, link.end)

        for node in self.nodes.values():
            for ref in node.outgoing:
                assert self.link(ref).start == node.id, "{} is not outgoing from {}".format(ref, node.id)
            for ref in node.incoming:
                assert self.link(ref).end == node.id, "{} is not incoming to {}".format(ref, node.id)

    def __len__(self):
        return len(self.nodes)
