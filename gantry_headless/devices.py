from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from gantry_headless.errors import DeviceNotFoundError
from gantry_headless.kinematics import (
    CORNERS,
    SIDE_OFFSETS,
    SIDES,
    Corner,
    GantryGeometry,
    Side,
    closest_reachable_point,
    height_from_vertical_extensions,
    piston_extensions,
    vertical_extension,
)

LOGGER = logging.getLogger(__name__)

NAME_PREFIX = "[BP] "
PISTON_NAME_BASE = "Pist: "
HINGE_NAME_BASE = "Hing: "
LIGHT_NAME_BASE = "Lght: "
SENSOR_NAME_BASE = "Sens: "
HORIZONTAL_TAG = "H"
VERTICAL_TAG = "V"
BASE_TAG = "B"
WELDER_TAG = "W"
CONTROL_SEAT_NAME = "Control Seat"
DEBUG_SURFACE_INDEX = 0
MAP_SURFACE_INDEX = 1

RGB = Tuple[int, int, int]


def piston_name(corner: Corner, vertical: bool, index: int) -> str:
    axis_tag = VERTICAL_TAG if vertical else HORIZONTAL_TAG
    return f"{NAME_PREFIX}{PISTON_NAME_BASE}{axis_tag}{corner.value} {index + 1}"


def hinge_name(corner: Corner, at_welder: bool) -> str:
    mount_tag = WELDER_TAG if at_welder else BASE_TAG
    return f"{NAME_PREFIX}{HINGE_NAME_BASE}{mount_tag}{corner.value}"


def sensor_name(side: Side) -> str:
    return f"{NAME_PREFIX}{SENSOR_NAME_BASE}{WELDER_TAG}{side.value}"


def light_names() -> Tuple[str, str]:
    return (
        f"{NAME_PREFIX}{LIGHT_NAME_BASE}{WELDER_TAG}{Side.TOP.value}",
        f"{NAME_PREFIX}{LIGHT_NAME_BASE}{WELDER_TAG}{Side.BOTTOM.value}",
    )


class SimulatedPiston:
    """Linear actuator: moves at `velocity` while enabled, stopping at the limit window."""

    def __init__(self, name: str, position: float = 0.0) -> None:
        self.name = name
        self.current_position = float(position)
        self.min_limit = 0.0
        self.max_limit = 10.0
        self.velocity = 0.0
        self.enabled = True

    def advance(self, dt_s: float) -> None:
        if not self.enabled or self.velocity == 0.0 or dt_s <= 0.0:
            return
        moved = self.current_position + self.velocity * dt_s
        if self.velocity > 0.0:
            self.current_position = max(self.current_position, min(moved, self.max_limit))
        else:
            self.current_position = min(self.current_position, max(moved, self.min_limit))


class SimulatedHinge:
    def __init__(self, name: str) -> None:
        self.name = name
        self.target_velocity_rpm = 0.0
        self.lower_limit_deg = -90.0
        self.upper_limit_deg = 90.0
        self.enabled = True


class SimulatedSensor:
    """Proximity sensor on the welder head, looking down along its front axis."""

    def __init__(self, name: str, side: Side, world: Optional["SimulatedGantry"] = None) -> None:
        self.name = name
        self.side = side
        self.enabled = True
        self.front_extend = 0.0
        self.back_extend = 0.0
        self.left_extend = 0.0
        self.right_extend = 0.0
        self.top_extend = 0.0
        self.bottom_extend = 0.0
        self.detect_subgrids = False
        self.detect_large_ships = False
        self.detect_small_ships = False
        self.detect_stations = False
        self.detect_floating_objects = True
        self.detect_asteroids = True
        self.detect_players = True
        self._world = world

    @property
    def is_active(self) -> bool:
        if not self.enabled or self._world is None:
            return False
        return self._world.sensor_detects(self)


class TextSurface:
    def __init__(self) -> None:
        self.text = ""

    def write_text(self, text: str, append: bool = False) -> None:
        self.text = self.text + text if append else text

    @property
    def lines(self) -> List[str]:
        return self.text.splitlines()


class TextSurfaceProvider:
    def __init__(self, name: str, surface_count: int = 2) -> None:
        self.name = name
        self._surfaces = [TextSurface() for _ in range(surface_count)]

    def get_surface(self, index: int) -> TextSurface:
        return self._surfaces[index]


class StatusLight:
    def __init__(self, name: str) -> None:
        self.name = name
        self.color: RGB = (255, 255, 255)


class DeviceDirectory:
    """Name-to-device lookup standing in for the host's block directory."""

    def __init__(self) -> None:
        self._devices: Dict[str, object] = {}

    def register(self, device) -> None:
        self._devices[device.name] = device

    def __contains__(self, name: str) -> bool:
        return name in self._devices

    def __len__(self) -> int:
        return len(self._devices)

    def get(self, name: str):
        device = self._devices.get(name)
        if device is None:
            raise DeviceNotFoundError(name)
        return device


@dataclass
class ActuatorRig:
    horizontal: Dict[Corner, List[SimulatedPiston]]
    vertical: Dict[Corner, List[SimulatedPiston]]
    base_hinges: Dict[Corner, SimulatedHinge]
    welder_hinges: Dict[Corner, SimulatedHinge]
    sensors: Dict[Side, SimulatedSensor]
    lights: List[StatusLight] = field(default_factory=list)
    debug_surface: Optional[TextSurface] = None
    map_surface: Optional[TextSurface] = None

    def all_pistons(self) -> Iterator[SimulatedPiston]:
        for corner in CORNERS:
            yield from self.horizontal[corner]
            yield from self.vertical[corner]

    def piston_groups(self) -> Iterator[List[SimulatedPiston]]:
        for corner in CORNERS:
            yield self.vertical[corner]
            yield self.horizontal[corner]

    def horizontal_positions(self) -> Dict[Corner, List[float]]:
        return {c: [p.current_position for p in self.horizontal[c]] for c in CORNERS}

    def vertical_positions(self) -> Dict[Corner, List[float]]:
        return {c: [p.current_position for p in self.vertical[c]] for c in CORNERS}

    def stop_all(self) -> None:
        for piston in self.all_pistons():
            piston.velocity = 0.0


def init_vertical_piston(piston: SimulatedPiston, geometry: GantryGeometry) -> None:
    piston.min_limit = geometry.min_vertical_extension_m
    piston.max_limit = geometry.max_vertical_extension_m
    piston.velocity = 0.0
    piston.enabled = True


def init_horizontal_piston(piston: SimulatedPiston, geometry: GantryGeometry) -> None:
    piston.min_limit = 0.0
    piston.max_limit = geometry.max_horizontal_extension_m
    piston.velocity = 0.0
    piston.enabled = True


def init_hinge(hinge: SimulatedHinge) -> None:
    hinge.target_velocity_rpm = 0.0
    hinge.lower_limit_deg = -90.0
    hinge.upper_limit_deg = 90.0
    hinge.enabled = False


def init_sensor(sensor: SimulatedSensor) -> None:
    sensor.enabled = True

    sensor.front_extend = 0.0
    sensor.back_extend = 0.0
    sensor.left_extend = 0.0
    sensor.right_extend = 0.0
    sensor.top_extend = 0.0
    sensor.bottom_extend = 0.0

    sensor.detect_subgrids = True
    sensor.detect_large_ships = True
    sensor.detect_small_ships = True
    sensor.detect_stations = True

    sensor.detect_floating_objects = False
    sensor.detect_asteroids = False
    sensor.detect_players = False


def bind_rig(directory: DeviceDirectory, geometry: GantryGeometry) -> ActuatorRig:
    """Look up every device by its conventional name and apply start-up defaults."""
    horizontal: Dict[Corner, List[SimulatedPiston]] = {}
    vertical: Dict[Corner, List[SimulatedPiston]] = {}
    for corner in CORNERS:
        horizontal[corner] = [
            directory.get(piston_name(corner, vertical=False, index=i))
            for i in range(geometry.num_horizontal_pistons)
        ]
        vertical[corner] = [
            directory.get(piston_name(corner, vertical=True, index=i))
            for i in range(geometry.num_vertical_pistons)
        ]
        for piston in horizontal[corner]:
            init_horizontal_piston(piston, geometry)
        for piston in vertical[corner]:
            init_vertical_piston(piston, geometry)

    base_hinges = {c: directory.get(hinge_name(c, at_welder=False)) for c in CORNERS}
    welder_hinges = {c: directory.get(hinge_name(c, at_welder=True)) for c in CORNERS}
    for hinge in list(base_hinges.values()) + list(welder_hinges.values()):
        init_hinge(hinge)

    sensors = {side: directory.get(sensor_name(side)) for side in SIDES}
    for sensor in sensors.values():
        init_sensor(sensor)

    lights = [directory.get(name) for name in light_names()]
    seat = directory.get(NAME_PREFIX + CONTROL_SEAT_NAME)

    return ActuatorRig(
        horizontal=horizontal,
        vertical=vertical,
        base_hinges=base_hinges,
        welder_hinges=welder_hinges,
        sensors=sensors,
        lights=lights,
        debug_surface=seat.get_surface(DEBUG_SURFACE_INDEX),
        map_surface=seat.get_surface(MAP_SURFACE_INDEX),
    )


class SimulatedGantry:
    """
    Stand-in for the physical installation.

    Owns a named device directory whose pistons start at the kinematic
    extensions of a logical start position (plus optional per-device drift),
    integrates piston motion over time and answers sensor queries against a
    terrain height grid indexed [y, x].
    """

    def __init__(
        self,
        geometry: GantryGeometry,
        start: Tuple[float, float, float],
        terrain: Optional[np.ndarray] = None,
        drift: Optional[Mapping[str, float]] = None,
    ) -> None:
        self.geometry = geometry
        self.directory = DeviceDirectory()
        if terrain is None:
            terrain = np.zeros((geometry.area_height, geometry.area_width), dtype=np.float64)
        if terrain.shape != (geometry.area_height, geometry.area_width):
            raise ValueError(
                f"Terrain shape {terrain.shape} does not match grid "
                f"({geometry.area_height}, {geometry.area_width})"
            )
        self.terrain = terrain

        offsets = dict(drift or {})
        start_x, start_y, start_z = start
        extensions = piston_extensions(geometry, start_x, start_y)
        height = vertical_extension(geometry, start_z)

        for corner in CORNERS:
            for i in range(geometry.num_horizontal_pistons):
                name = piston_name(corner, vertical=False, index=i)
                self.directory.register(SimulatedPiston(name, extensions[corner] + offsets.get(name, 0.0)))
            for i in range(geometry.num_vertical_pistons):
                name = piston_name(corner, vertical=True, index=i)
                self.directory.register(SimulatedPiston(name, height + offsets.get(name, 0.0)))
            self.directory.register(SimulatedHinge(hinge_name(corner, at_welder=False)))
            self.directory.register(SimulatedHinge(hinge_name(corner, at_welder=True)))

        for side in SIDES:
            self.directory.register(SimulatedSensor(sensor_name(side), side, world=self))
        for name in light_names():
            self.directory.register(StatusLight(name))
        self.directory.register(TextSurfaceProvider(NAME_PREFIX + CONTROL_SEAT_NAME))

    def pistons(self) -> List[SimulatedPiston]:
        return [
            self.directory.get(piston_name(corner, vertical, i))
            for corner in CORNERS
            for vertical, count in (
                (False, self.geometry.num_horizontal_pistons),
                (True, self.geometry.num_vertical_pistons),
            )
            for i in range(count)
        ]

    def advance(self, dt_s: float) -> None:
        for piston in self.pistons():
            piston.advance(dt_s)

    def head_position(self) -> Optional[Tuple[int, int, float]]:
        horizontal = {
            c: [self.directory.get(piston_name(c, False, i)).current_position
                for i in range(self.geometry.num_horizontal_pistons)]
            for c in CORNERS
        }
        vertical = {
            c: [self.directory.get(piston_name(c, True, i)).current_position
                for i in range(self.geometry.num_vertical_pistons)]
            for c in CORNERS
        }
        found = closest_reachable_point(self.geometry, horizontal)
        if found is None:
            return None
        (x, y), _ = found
        return x, y, height_from_vertical_extensions(self.geometry, vertical)

    def sensor_detects(self, sensor: SimulatedSensor) -> bool:
        head = self.head_position()
        if head is None:
            return False
        x, y, z = head
        dx, dy = SIDE_OFFSETS[sensor.side]
        nx, ny = x + dx, y + dy
        if 0 <= nx < self.geometry.area_width and 0 <= ny < self.geometry.area_height:
            ground = float(self.terrain[ny, nx])
        else:
            ground = 0.0
        return ground >= z - sensor.front_extend
