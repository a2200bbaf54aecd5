import sys
import threading
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping

from monoslam.core.keyframe import KeyFrame
from monoslam.core.map_point import MapPoint
from monoslam.exceptions import IdSpaceExhausted, NotFound

MAX_ID = sys.maxsize // 2


class IdAllocator:
    """
    Hands out identities for both keyframes and map points.

    Keyframes and map points intentionally share one counter, so an id is
    unique across the whole map, not only within one entity type.
    """
    def __init__(self, start=0, limit=MAX_ID):
        self._next = start
        self._limit = limit
        self._lock = threading.Lock()

    def __call__(self):
        return self.next_id()

    def next_id(self):
        """
        Returns the next identity.

        Raises:
            IdSpaceExhausted: once the counter would pass the limit.
        """
        with self._lock:
            if self._next > self._limit:
                raise IdSpaceExhausted(self._limit)
            current = self._next
            self._next += 1
        return current

    @property
    def peek(self):
        """The id the next call would return."""
        return self._next


class Map:
    """
    Represents the map graph storing KeyFrames and MapPoints.

    Keyframes refer to map points by id and map point references refer to
    keyframes by id; both are resolved here. Mutation is expected from a
    single writer.
    """
    def __init__(self, allocator=None):
        """
        Initialize an empty map.

        Args:
            allocator: IdAllocator to draw identities from. Maps built from
                the same session should share one.
        """
        self._keyframes: Dict[int, KeyFrame] = {}
        self._map_points: Dict[int, MapPoint] = {}
        self.allocator = allocator if allocator is not None else IdAllocator()

    @property
    def keyframes(self) -> Mapping[int, KeyFrame]:
        """Read-only view of keyframe id -> KeyFrame."""
        return MappingProxyType(self._keyframes)

    @property
    def map_points(self) -> Mapping[int, MapPoint]:
        """Read-only view of map point id -> MapPoint."""
        return MappingProxyType(self._map_points)

    @property
    def num_keyframes(self):
        return len(self._keyframes)

    @property
    def num_map_points(self):
        return len(self._map_points)

    def next_id(self):
        """Allocate a fresh identity for a keyframe or a map point."""
        return self.allocator.next_id()

    def insert_keyframe(self, keyframe):
        """
        Adds a keyframe to the map, replacing any keyframe with the same id.

        Args:
            keyframe: KeyFrame object to be added.
        """
        self._keyframes[keyframe.id] = keyframe

    def insert_map_point(self, map_point):
        """
        Adds a map point to the map. Keyframes that observe it hold its id.

        Args:
            map_point: MapPoint object to be added.
        """
        self._map_points[map_point.id] = map_point

    def keyframe(self, keyframe_id) -> KeyFrame:
        """
        Retrieves a keyframe by its ID.

        Raises:
            NotFound: if no keyframe has that id.
        """
        try:
            return self._keyframes[keyframe_id]
        except KeyError:
            raise NotFound("KeyFrame", keyframe_id) from None

    def map_point(self, map_point_id) -> MapPoint:
        """
        Retrieves a map point by its ID.

        Raises:
            NotFound: if no map point has that id.
        """
        try:
            return self._map_points[map_point_id]
        except KeyError:
            raise NotFound("MapPoint", map_point_id) from None

    def points(self) -> List[MapPoint]:
        """Snapshot of all map points."""
        return list(self._map_points.values())

    def iter_observations(self, keyframe_id) -> Iterator[MapPoint]:
        """Yields the map points observed by a keyframe, in observation order."""
        for map_point_id in self.keyframe(keyframe_id).observations:
            yield self.map_point(map_point_id)

    def validate(self):
        """
        Checks that every cross reference resolves:
        - every MapPointReference names a keyframe in the map
        - every keyframe observation names a map point in the map

        Raises:
            NotFound: for the first dangling reference.
        """
        for map_point in self._map_points.values():
            for reference in map_point.references:
                if reference.id not in self._keyframes:
                    raise NotFound("KeyFrame", reference.id)
        for keyframe in self._keyframes.values():
            for map_point_id in keyframe.observations:
                if map_point_id not in self._map_points:
                    raise NotFound("MapPoint", map_point_id)

    def __repr__(self):
        return f"Map({self.num_keyframes} keyframes, {self.num_map_points} map points)"
