import argparse
import datetime
import json
import logging
import random
import sys
from collections import deque, namedtuple
from enum import Enum

import numpy as np
from geopy import distance
from lxml import etree
from tqdm import tqdm

from linestring import first_coordinate, last_coordinate, parse_linestring
from road import MalformedInputError, MissingFieldError, RoadGraph, TraversalError

logger = logging.getLogger(__name__)

# NVDB serves geometry in EUREF89 UTM zone 33
utmz = {"zone":33, "letter":"W", "full":"33W"}

# Where each value lives in an NVDB road link export. Dotted paths walk
# into nested objects.
DEFAULT_FIELDS = {
    "objects": "objekter",
    "startnode": "startnode",
    "endnode": "sluttnode",
    "geometry": "geometri.wkt",
    "reference": "vegreferanse.kortform",
}


# ---------------------------------------------------------------
# Reading input
# ---------------------------------------------------------------

def readJSON(filename):
    logger.info("Reading file %s", filename)

    try:
        with open(filename, encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise MalformedInputError("Could not read file {}: {}".format(filename, e)) from e
    except ValueError as e:
        raise MalformedInputError("Could not parse {} as json: {}".format(filename, e)) from e


def read_config(filename):
    """
    Reads a field mapping, one "field,path" pair per line, e.g.

        endnode,sluttnode
        geometry,geometri.wkt

    Fields not mentioned, or given an empty path, keep their default.
    """
    fields = dict(DEFAULT_FIELDS)

    with open(filename) as f:
        for l in f:
            l = l.strip()
            if l == "" or l.startswith("#"):
                continue

            s = l.split(",")
            s[0] = s[0].lower().replace(" ", "")
            if s[0] not in fields:
                raise ValueError("Unknown field \"{}\" in {}".format(s[0], filename))

            if len(s) > 1 and s[1].strip() != "":
                fields[s[0]] = s[1].strip()

    return fields


def get_field(record, path):
    value = record
    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            raise MissingFieldError(path, record)
        value = value[key]

    if not isinstance(value, str):
        raise MissingFieldError(path, record)

    return value


# ---------------------------------------------------------------
# Building the graph
# ---------------------------------------------------------------

def add_record(graph, record, fields=DEFAULT_FIELDS):
    """
    Adds one road link record to the graph. Returns False when a link with
    the same reference is already present, in which case nothing changes.
    """
    start = get_field(record, fields["startnode"])
    end = get_field(record, fields["endnode"])
    wkt = get_field(record, fields["geometry"])
    ref = get_field(record, fields["reference"])

    # Parse before the duplicate check so a broken geometry is never accepted
    start_coordinate = first_coordinate(wkt)
    end_coordinate = last_coordinate(wkt)

    if graph.has_link(ref):
        logger.warning("Link %s already read, ignoring later record", ref)
        return False

    # Nodes first, the link refers to both of them
    graph.get_or_create_node(start, start_coordinate).add_outgoing(ref)
    graph.get_or_create_node(end, end_coordinate).add_incoming(ref)
    graph.get_or_create_link(ref, start, end, parse_linestring(wkt))

    return True


def readLinks(doc, fields=None, progress=False):
    if fields is None:
        fields = DEFAULT_FIELDS

    records = doc.get(fields["objects"]) if isinstance(doc, dict) else None
    if not isinstance(records, list):
        raise MalformedInputError("Document has no \"{}\" list".format(fields["objects"]))

    graph = RoadGraph()
    for record in tqdm(records, disable=not progress):
        add_record(graph, record, fields)

    logger.info("Finished reading links, found %d nodes and %d links.", len(graph.nodes), len(graph.links))

    return graph


# ---------------------------------------------------------------
# Breadth first traversal
# ---------------------------------------------------------------

class Side(Enum):
    """Endpoint of a queued link that has not been explored yet."""
    START = "start"
    END = "end"


# origin and target are node ids in the order the link was walked
TraversalStep = namedtuple("TraversalStep", ["origin", "link", "target", "side"])


def explore(graph, node, visited, queue):
    visited.add(node.id)

    for ref in node.outgoing:
        far = graph.link(ref).end
        if far not in visited:
            visited.add(far)
            queue.append((ref, Side.END))

    for ref in node.incoming:
        far = graph.link(ref).start
        if far not in visited:
            visited.add(far)
            queue.append((ref, Side.START))


def pick_start(graph, rng):
    ids = graph.node_ids()
    return ids[rng.randrange(len(ids))]


def breadth_first(graph, rng=None, seed=None, start=None):
    """
    Walks the graph breadth first from a random node (or ``start``),
    following links in both directions. Returns the links walked as
    TraversalSteps, in visiting order. Nodes not connected to the start
    node are never reached.
    """
    if len(graph) < 2:
        raise TraversalError("Need at least two nodes to traverse, graph has {}".format(len(graph)))

    if start is None:
        if rng is None:
            rng = random.Random(seed)
        start = pick_start(graph, rng)
    elif start not in graph.nodes:
        raise TraversalError("Unknown start node {}".format(start))

    logger.debug("Starting traversal at node %s", start)

    visited = set()
    queue = deque()
    steps = []

    explore(graph, graph.node(start), visited, queue)

    while queue:
        ref, side = queue.popleft()
        link = graph.link(ref)

        if side is Side.START:
            # Walked against the link direction
            step = TraversalStep(link.end, ref, link.start, side)
        else:
            step = TraversalStep(link.start, ref, link.end, side)

        logger.debug("Visiting %s via %s", step.target, ref)
        steps.append(step)

        explore(graph, graph.node(step.target), visited, queue)

    logger.info("Traversal visited %d of %d nodes", len(visited), len(graph))

    return steps


# ---------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------

def format_coord(n):
    return "{:.9e}".format(n)


def parse_zone(gz):
    zone = {"zone": int(gz[0:-1]), "letter": str(gz[-1]).upper(), "full": gz}

    if zone["zone"] > 60 or zone["zone"] < 1:
        raise ValueError("Zone number out of range, must be between 1 and 60")

    if not zone["letter"].isalpha() or zone["letter"] in ["A", "B", "Y", "Z"]:
        raise ValueError("Zone letter out of range, must be between C and X")

    return zone


# Calculate road length
def road_length(coordinates, zone=None):
    if zone is None:
        zone = utmz

    points = [c.to_latlon(zone["zone"], zone["letter"]) for c in coordinates]

    length = 0
    for i in range(len(points)-1):
        length += distance.distance(points[i], points[i+1]).m
    return length


def link_length(coordinates, zone=None):
    """Like road_length, but None when the points fall outside what geopy accepts."""
    try:
        return road_length(coordinates, zone)
    except ValueError as e:
        logger.debug("No length for geometry starting at %s: %s", coordinates[0], e)
        return None


def graph_bounds(graph, zone=None):
    if zone is None:
        zone = utmz

    points = np.array([c.to_latlon(zone["zone"], zone["letter"])
                       for link in graph.links.values()
                       for c in link.coordinates])
    if len(points) == 0:
        return None

    return {
        "north": points[:, 0].max(),
        "south": points[:, 0].min(),
        "east": points[:, 1].max(),
        "west": points[:, 1].min(),
    }


# ---------------------------------------------------------------
# Output
# ---------------------------------------------------------------

def format_step(step):
    if step.side is Side.START:
        return "{:<10}\t<------    \t{:<30}\t<------    \t{}".format(step.origin, step.link, step.target)
    return "{:<10}\t------> \t{:<30}\t------> \t{}".format(step.origin, step.link, step.target)


def format_steps(steps):
    return "\n".join(format_step(s) for s in steps)


def format_node_links(node):
    return "Incoming links: {}\nOutgoing links: {}\n".format(
        ", ".join(node.incoming), ", ".join(node.outgoing))


def format_link(graph, link, zone=None):
    coordinates = "".join(str(c) + "\n" for c in link.coordinates) + "\n"

    # Length is only shown for a known zone
    length = ""
    if zone is not None:
        metres = link_length(link.coordinates, zone)
        if metres is not None:
            length = "Length: {:.1f} m\n\n".format(metres)

    return "Link {}:\n\nStartnode: {}\n{}\nEndnode: {}\n{}\n{}Coordinates:\n{}\n\n".format(
        link.id,
        link.start,
        format_node_links(graph.node(link.start)),
        link.end,
        format_node_links(graph.node(link.end)),
        length,
        coordinates,
    )


def format_graph(graph, zone=None):
    return "".join(format_link(graph, link, zone) for link in graph.links.values())


def buildXML(graph, filename=None, pretty=False, zone=None, name="nvdb"):
    if zone is None:
        zone = utmz

    logger.info("Building XML output...")

    root = etree.Element("RoadGraph")
    tree = etree.ElementTree(root)

    header = etree.SubElement(root, "header")
    header.set("name", name)
    header.set("version", "1.0")
    header.set("date", datetime.datetime.now().strftime("%Y-%m-%dT%H:%M:%S"))
    header.set("zone", zone["full"])

    bounds = graph_bounds(graph, zone)
    if bounds is not None:
        for side in ["north", "south", "east", "west"]:
            header.set(side, format_coord(bounds[side]))

    for node in graph.nodes.values():
        n = etree.SubElement(root, "node")
        n.set("id", node.id)

        lat, lon = node.coordinate.to_latlon(zone["zone"], zone["letter"])
        n.set("lat", format_coord(lat))
        n.set("lon", format_coord(lon))

        incoming = etree.SubElement(n, "incoming")
        for ref in node.incoming:
            etree.SubElement(incoming, "linkRef").set("id", ref)

        outgoing = etree.SubElement(n, "outgoing")
        for ref in node.outgoing:
            etree.SubElement(outgoing, "linkRef").set("id", ref)

    for link in graph.links.values():
        l = etree.SubElement(root, "link")
        l.set("id", link.id)
        l.set("start", link.start)
        l.set("end", link.end)
        metres = link_length(link.coordinates, zone)
        if metres is not None:
            l.set("length", str(metres))

        ps = etree.SubElement(l, "pointSet")
        for c in link.coordinates:
            p = etree.SubElement(ps, "point")
            p.set("x", c.e)
            p.set("y", c.n)
            if c.has_height():
                p.set("z", c.h)

    if filename is not None:
        logger.info("XML successfully generated, writing to '%s'", filename)
        tree.write(filename, xml_declaration=True, pretty_print=pretty, encoding='UTF-8')

    return tree


def main(argv=None):
    parser = argparse.ArgumentParser(description="Build a road graph from an NVDB road link export")

    parser.add_argument('file', help="Input filename")
    parser.add_argument('--config', '-c', help="Read record field names from a \"field,path\" file")
    parser.add_argument('--zone', '-z', action="store", type=str, help="UTM zone of the geometry, example: -z 33W")
    parser.add_argument('--mode', '-m', choices=["bfs", "print"], help="Traverse the graph or print every link")
    parser.add_argument('--seed', '-s', type=int, help="Seed for picking the traversal start node")
    parser.add_argument('--start', help="Start the traversal at this node")
    parser.add_argument('--xml', '-x', help="Also write the graph as XML to this file")
    parser.add_argument('--pretty', '-p', action='store_true', help="Prettify XML output")
    parser.add_argument('--verbose', '-v', action='store_true', help="Log every traversal step")
    parser.set_defaults(mode="bfs", pretty=False, verbose=False)

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s: %(message)s")

    zone = dict(utmz)
    if args.zone:
        try:
            zone = parse_zone(args.zone)
        except (TypeError, ValueError) as e:
            logger.warning("Erroneous UTM zone \"%s\" (%s), using default \"%s\".", args.zone, e, zone["full"])

    fields = DEFAULT_FIELDS
    if args.config:
        try:
            fields = read_config(args.config)
        except (OSError, ValueError) as e:
            logger.error("Could not read config %s: %s", args.config, e)
            return 1

    try:
        graph = readLinks(readJSON(args.file), fields, progress=True)

        if args.mode == "print":
            print(format_graph(graph, zone))
        else:
            print(format_steps(breadth_first(graph, seed=args.seed, start=args.start)))

        if args.xml:
            buildXML(graph, args.xml, args.pretty, zone, name=args.file.split(".")[0].split("/")[-1])
    except (MalformedInputError, TraversalError) as e:
        logger.error("%s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
