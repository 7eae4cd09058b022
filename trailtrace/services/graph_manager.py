# trailtrace/services/graph_manager.py
import asyncio
from dataclasses import dataclass
from itertools import islice
from typing import Any, Dict, List, Optional, Sequence, Tuple

import networkx as nx
import osmnx as ox

from trailtrace.core.logger import logger
from trailtrace.models.geometry import GeoPoint
from trailtrace.models.routing import RoadSegment, RouteCandidate, RouteProfile
from trailtrace.services.geo import haversine_m
from trailtrace.services.oracle import OracleUnavailableError

# (north, south, east, west)
BBox = Tuple[float, float, float, float]


@dataclass
class _LoadedGraph:
    graph: nx.MultiDiGraph
    digraph: nx.DiGraph
    bbox: BBox


def _as_text(value: Any) -> str:
    # OSM tags collapsed by simplification come back as lists
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ";".join(str(v) for v in value)
    return str(value)


class GraphManager:
    """
    Routing oracle backed by a local OSM road graph.

    Graphs are downloaded with osmnx on demand (one per travel profile)
    around the query points, or a prebuilt networkx graph can be injected;
    an injected graph is used for every profile and never replaced.
    """

    # Maximum radius (meters) for any downloaded graph
    MAX_GRAPH_RADIUS_M = 15_000.0  # 15 km, good for city-scale routing

    NETWORK_TYPES: Dict[RouteProfile, str] = {
        RouteProfile.WALKING: "walk",
        RouteProfile.CYCLING: "bike",
        RouteProfile.DRIVING: "drive",
    }

    # Constant speeds for converting distance -> duration
    SPEEDS_KMH: Dict[RouteProfile, float] = {
        RouteProfile.WALKING: 5.0,
        RouteProfile.CYCLING: 15.0,
        RouteProfile.DRIVING: 40.0,
    }

    def __init__(self, graph: Optional[nx.MultiDiGraph] = None) -> None:
        self._graphs: Dict[RouteProfile, _LoadedGraph] = {}
        self._fixed: Optional[_LoadedGraph] = None

        if graph is not None:
            graph = self._ensure_numeric_weights(graph)
            self._fixed = _LoadedGraph(graph, self._to_digraph(graph), self._bbox_of(graph))
            logger.info(
                f"GraphManager initialised with a fixed graph: "
                f"{graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges"
            )
        else:
            logger.info("GraphManager initialised (graphs will be built on demand).")

    # ------------------------------------------------------------------ #
    # Oracle API
    # ------------------------------------------------------------------ #

    async def nearest(self, point: GeoPoint, profile: RouteProfile) -> GeoPoint:
        loaded = await self._graph_for(profile, [point])
        node_id = self.find_nearest_node(loaded.graph, point)
        try:
            data = loaded.graph.nodes[node_id]
            return GeoPoint(lat=data["y"], lng=data["x"])
        except (KeyError, TypeError, ValueError) as exc:
            raise OracleUnavailableError(f"Road graph node {node_id!r} has no usable position: {exc}") from exc

    async def route(
        self,
        waypoints: Sequence[GeoPoint],
        profile: RouteProfile,
        alternatives: int = 0,
        steps: bool = False,
        simplified: bool = False,
    ) -> List[RouteCandidate]:
        """
        Shortest path(s) through the waypoints by edge length.

        Alternatives (k shortest simple paths) are only computed for a
        single origin/destination pair. `simplified` has no effect here:
        edge geometries are always returned in full.
        """
        if len(waypoints) < 2:
            raise ValueError("At least two waypoints are required to compute a route.")

        loaded = await self._graph_for(profile, waypoints)
        nodes = [self.find_nearest_node(loaded.graph, p) for p in waypoints]

        try:
            if len(nodes) == 2 and alternatives > 0 and nodes[0] != nodes[1]:
                paths = list(
                    islice(
                        nx.shortest_simple_paths(loaded.digraph, nodes[0], nodes[1], weight="weight"),
                        alternatives,
                    )
                )
            else:
                paths = [self._chain_shortest_paths(loaded.digraph, nodes)]
        except nx.NetworkXException as exc:
            raise OracleUnavailableError(f"No path in road graph: {exc}") from exc

        try:
            candidates = [
                self._candidate_from_path(loaded.graph, path, profile, with_segments=steps)
                for path in paths
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise OracleUnavailableError(f"Road graph path has unpositioned nodes: {exc}") from exc
        logger.debug(
            f"Graph routing produced {len(candidates)} candidate(s) for {len(waypoints)} waypoints"
        )
        return candidates

    async def aclose(self) -> None:
        self._graphs.clear()

    def find_nearest_node(self, graph: nx.MultiDiGraph, coord: GeoPoint) -> Any:
        """
        Find nearest node in the graph to the given coordinate.

        Graphs downloaded by osmnx carry a CRS and use
        osmnx.distance.nearest_nodes; injected graphs without one are
        searched linearly by great-circle distance.
        """
        if "crs" in graph.graph:
            try:
                return ox.distance.nearest_nodes(graph, X=coord.lng, Y=coord.lat)
            except Exception as exc:
                raise OracleUnavailableError(f"Nearest-node lookup failed: {exc}") from exc

        nearest_node = None
        best_dist = float("inf")
        for node_id, data in graph.nodes(data=True):
            x = data.get("x")
            y = data.get("y")
            if x is None or y is None:
                continue
            try:
                d = haversine_m(coord, GeoPoint(lat=y, lng=x))
            except (TypeError, ValueError) as exc:
                raise OracleUnavailableError(f"Road graph node {node_id!r} has a bad position: {exc}") from exc
            if d < best_dist:
                best_dist = d
                nearest_node = node_id

        if nearest_node is None:
            raise OracleUnavailableError("Road graph has no positioned nodes.")
        return nearest_node

    # ------------------------------------------------------------------ #
    # Graph lifecycle
    # ------------------------------------------------------------------ #

    async def _graph_for(self, profile: RouteProfile, points: Sequence[GeoPoint]) -> _LoadedGraph:
        """
        Ensure we have a graph for `profile` that covers all points.
        """
        if self._fixed is not None:
            return self._fixed

        loaded = self._graphs.get(profile)
        if loaded is None or not self._bbox_contains(loaded.bbox, points):
            loaded = await asyncio.to_thread(self._build_graph_for_points, points, profile)
            self._graphs[profile] = loaded
        return loaded

    def _build_graph_for_points(
        self, points: Sequence[GeoPoint], profile: RouteProfile
    ) -> _LoadedGraph:
        """
        Download a graph around the points' centre.

        radius = min(1.5 * extent + 2000 m, MAX_GRAPH_RADIUS_M), where the
        extent is twice the farthest point's distance from the centre.
        """
        center = GeoPoint(
            lat=sum(p.lat for p in points) / len(points),
            lng=sum(p.lng for p in points) / len(points),
        )
        extent_m = 2.0 * max(haversine_m(center, p) for p in points)

        if extent_m > 2.0 * self.MAX_GRAPH_RADIUS_M:
            logger.warning(
                f"Requested extent ~{extent_m:.1f} m exceeds 2x MAX_GRAPH_RADIUS_M="
                f"{2.0 * self.MAX_GRAPH_RADIUS_M:.1f} m; routing may fail at the edges."
            )

        radius_m = min(1.5 * extent_m + 2_000.0, self.MAX_GRAPH_RADIUS_M)
        network_type = self.NETWORK_TYPES[profile]

        logger.info(
            f"Building new OSM '{network_type}' graph around "
            f"({center.lat:.6f}, {center.lng:.6f}) with radius={radius_m:.1f} m"
        )

        try:
            G: nx.MultiDiGraph = ox.graph_from_point(
                center_point=(center.lat, center.lng),
                dist=radius_m,
                network_type=network_type,
                simplify=True,
            )
        except Exception as exc:
            raise OracleUnavailableError(f"OSM graph download failed: {exc}") from exc

        G = self._ensure_numeric_weights(G)
        bbox = self._bbox_of(G)

        logger.info(
            f"Graph ready: {G.number_of_nodes()} nodes, {G.number_of_edges()} edges; "
            f"bbox N={bbox[0]:.6f}, S={bbox[1]:.6f}, E={bbox[2]:.6f}, W={bbox[3]:.6f}"
        )
        return _LoadedGraph(G, self._to_digraph(G), bbox)

    @staticmethod
    def _bbox_of(G: nx.MultiDiGraph) -> BBox:
        xs = [data["x"] for _, data in G.nodes(data=True) if data.get("x") is not None]
        ys = [data["y"] for _, data in G.nodes(data=True) if data.get("y") is not None]
        if not xs or not ys:
            return (90.0, -90.0, 180.0, -180.0)
        return (max(ys), min(ys), max(xs), min(xs))

    @staticmethod
    def _bbox_contains(bbox: BBox, points: Sequence[GeoPoint]) -> bool:
        north, south, east, west = bbox
        return all(south <= p.lat <= north and west <= p.lng <= east for p in points)

    def _ensure_numeric_weights(self, G: nx.MultiDiGraph) -> nx.MultiDiGraph:
        """
        Ensure that every edge has a numeric 'weight' attribute (float, metres).
        """
        num_fixed = 0
        num_missing = 0

        for u, v, k, data in G.edges(keys=True, data=True):
            length = data.get("length", None)

            if isinstance(length, str):
                try:
                    length = float(length)
                except ValueError:
                    length = None

            # If no valid length, compute from node coordinates
            if length is None:
                nu, nv = G.nodes[u], G.nodes[v]
                if None in (nu.get("y"), nu.get("x"), nv.get("y"), nv.get("x")):
                    num_missing += 1
                    continue
                length = haversine_m(
                    GeoPoint(lat=nu["y"], lng=nu["x"]),
                    GeoPoint(lat=nv["y"], lng=nv["x"]),
                )

            data["weight"] = float(length)
            num_fixed += 1

        logger.info(
            f"Edge weights normalised: {num_fixed} edges with numeric weights, "
            f"{num_missing} edges without valid length/coords."
        )
        return G

    @staticmethod
    def _to_digraph(G: nx.MultiDiGraph) -> nx.DiGraph:
        """
        Collapse parallel edges to the lightest one (simple-path search
        does not support multigraphs).
        """
        D = nx.DiGraph()
        D.add_nodes_from(G.nodes(data=True))
        for u, v, k, data in G.edges(keys=True, data=True):
            w = data.get("weight")
            if w is None:
                continue
            if not D.has_edge(u, v) or w < D[u][v]["weight"]:
                D.add_edge(u, v, weight=w, key=k)
        return D

    # ------------------------------------------------------------------ #
    # Path -> candidate
    # ------------------------------------------------------------------ #

    @staticmethod
    def _chain_shortest_paths(D: nx.DiGraph, nodes: List[Any]) -> List[Any]:
        path: List[Any] = [nodes[0]]
        for u, v in zip(nodes[:-1], nodes[1:]):
            if u == v:
                continue
            leg = nx.shortest_path(D, source=u, target=v, weight="weight")
            path.extend(leg[1:])
        return path

    @staticmethod
    def _edge_data(G: nx.MultiDiGraph, u: Any, v: Any) -> Dict[str, Any]:
        edge_dict = G.get_edge_data(u, v, default=None)
        if not edge_dict:
            return {}
        # Lightest parallel edge, matching the digraph used for search
        return min(edge_dict.values(), key=lambda d: d.get("weight", float("inf")))

    def _candidate_from_path(
        self,
        G: nx.MultiDiGraph,
        path: List[Any],
        profile: RouteProfile,
        with_segments: bool,
    ) -> RouteCandidate:
        coords = self._build_coordinates_from_path(G, path)
        if len(coords) == 1:
            coords = [coords[0], coords[0]]

        segments: List[RoadSegment] = []
        distance_m = 0.0
        for u, v in zip(path[:-1], path[1:]):
            data = self._edge_data(G, u, v)
            length = float(data.get("weight", 0.0))
            distance_m += length

            if not with_segments:
                continue
            name = _as_text(data.get("name"))
            ref = _as_text(data.get("ref"))
            road_class = _as_text(data.get("highway"))
            last = segments[-1] if segments else None
            if last and (last.name, last.ref, last.road_class) == (name, ref, road_class):
                last.distance_m += length
            else:
                segments.append(
                    RoadSegment(distance_m=length, name=name, ref=ref, road_class=road_class)
                )

        speed_mps = self.SPEEDS_KMH[profile] * 1000.0 / 3600.0
        return RouteCandidate(
            coordinates=coords,
            distance_m=distance_m,
            duration_s=distance_m / speed_mps,
            segments=segments,
        )

    def _build_coordinates_from_path(self, G: nx.MultiDiGraph, path: List[Any]) -> List[GeoPoint]:
        """
        Build polyline coordinates for the route using edge geometries.

        - If an edge has a 'geometry' attribute (shapely LineString), we take
          all its points.
        - If not, we fall back to straight segments between node coordinates.
        """
        if not path:
            return []

        def node_point(node_id: Any) -> GeoPoint:
            nd = G.nodes[node_id]
            return GeoPoint(lat=nd["y"], lng=nd["x"])

        coords: List[GeoPoint] = [node_point(path[0])]

        for u, v in zip(path[:-1], path[1:]):
            geom = self._edge_data(G, u, v).get("geometry")
            if geom is not None:
                # shapely coords are (x, y) = (lng, lat); skip the shared first point
                coords.extend(GeoPoint(lat=y, lng=x) for x, y in list(geom.coords)[1:])
            else:
                coords.append(node_point(v))

        return coords
