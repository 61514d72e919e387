# models.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

LatLng = Tuple[float, float]


# region Page
@dataclass(frozen=True)
class Container:
    element_id: str
    width: int
    height: int


@dataclass
class Page:
    containers: List[Container] = field(default_factory=list)

    def find(self, element_id: str) -> Optional[Container]:
        for c in self.containers:
            if c.element_id == element_id:
                return c
        return None
# endregion


# region Map
@dataclass(frozen=True)
class TileLayerConfig:
    url_template: str
    min_zoom: int
    max_zoom: int

    def __post_init__(self):
        for ph in ("{z}", "{x}", "{y}"):
            if ph not in self.url_template:
                raise ValueError(f"url_template missing {ph} placeholder: {self.url_template!r}")
        if self.min_zoom > self.max_zoom:
            raise ValueError(f"min_zoom {self.min_zoom} > max_zoom {self.max_zoom}")

    def allows(self, z: int) -> bool:
        return self.min_zoom <= z <= self.max_zoom


@dataclass
class MapView:
    """Viewport bound to one container; layers are notified on every view change."""
    container: Container
    center: LatLng
    zoom: int
    layers: list = field(default_factory=list)

    @property
    def container_id(self) -> str:
        return self.container.element_id

    def add_layer(self, layer) -> None:
        self.layers.append(layer)
        layer.on_add(self)

    def set_view(self, center: LatLng, zoom: int) -> None:
        self.center = (float(center[0]), float(center[1]))
        self.zoom = int(zoom)
        for layer in self.layers:
            layer.on_view_changed(self)
# endregion


# region Weather stations
@dataclass(frozen=True)
class WindMeasurement:
    kind: str                         # "calm", "variable" or "normal"
    speed: Optional[float] = None     # m/s
    direction: Optional[int] = None   # degrees

    @classmethod
    def calm(cls):
        return cls("calm")

    @classmethod
    def variable(cls):
        return cls("variable")

    @classmethod
    def normal(cls, speed: float, direction: int):
        return cls("normal", speed, direction)


@dataclass
class WeatherMeasurement:
    datetime: datetime
    wind: Optional[WindMeasurement]
    air_temperature: Optional[float]  # deg C
    air_pressure: Optional[float]     # hPa


@dataclass
class WeatherStation:
    usaf: str
    wban: str
    latitude: float = -1000.0
    longitude: float = -1000.0
    elevation: Optional[int] = None
    measurements: List[WeatherMeasurement] = field(default_factory=list)
# endregion
