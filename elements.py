import itertools
import math
import numbers
from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np

from utils import vec2

_pin_ids = itertools.count(1)


def generate_pin_id():
    return f"warp_pin_{next(_pin_ids)}"


class Material(Enum):
    RIGID = "rigid"
    RUBBER = "rubber"
    CLOTH = "cloth"
    GEL = "gel"


@dataclass(frozen=True)
class MaterialPreset:
    name: str
    description: str
    rigidity_weight: float  # scales every edge weight of the Laplacian
    stretch_limit: float
    shear_control: float
    bending_weight: float


MATERIAL_PRESETS = {
    Material.RIGID: MaterialPreset(
        "Rigid Plate", "Almost as-rigid-as-possible, bends only in broad arcs",
        1.0, 0.05, 1.0, 0.5),
    Material.RUBBER: MaterialPreset(
        "Rubber", "More stretch allowed, local pulls propagate more",
        0.7, 0.3, 0.5, 0.3),
    Material.CLOTH: MaterialPreset(
        "Cloth", "Shear-friendly, stretch-limited, wrinkles implied",
        0.5, 0.15, 0.2, 0.2),
    Material.GEL: MaterialPreset(
        "Gel", "Very smooth, blobby, useful for stylized effects",
        0.3, 0.5, 0.1, 0.1),
}


@dataclass(frozen=True)
class ARAPSolverOptions:
    material: Material = Material.RUBBER
    iterations: int = 3
    cg_iterations: int = 40
    cg_tolerance: float = 1e-4
    warm_start: bool = True
    pin_weight: float = 1e3

    def __post_init__(self):
        if not isinstance(self.material, Material):
            # accept the plain preset name, e.g. "gel"
            try:
                object.__setattr__(self, "material", Material(self.material))
            except ValueError:
                raise ValueError(f"unknown material {self.material!r}") from None
        for name in ("iterations", "cg_iterations"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        if not 1 <= self.iterations <= 20:
            raise ValueError(f"iterations must be in [1, 20], got {self.iterations}")
        if not 10 <= self.cg_iterations <= 100:
            raise ValueError(f"cg_iterations must be in [10, 100], got {self.cg_iterations}")
        if not (self.cg_tolerance > 0 and math.isfinite(self.cg_tolerance)):
            raise ValueError(f"cg_tolerance must be positive and finite, got {self.cg_tolerance!r}")
        if not (self.pin_weight > 0 and math.isfinite(self.pin_weight)):
            raise ValueError(f"pin_weight must be positive and finite, got {self.pin_weight!r}")

    @property
    def preset(self) -> MaterialPreset:
        return MATERIAL_PRESETS[self.material]

    def with_changes(self, **changes):
        return replace(self, **changes)


DEFAULT_SOLVER_OPTIONS = ARAPSolverOptions()


@dataclass(frozen=True)
class SeamBarrierOptions:
    """
    Content-aware edge attenuation.

    boundary_field is a (rows, cols) image of boundary strength sampled at
    mesh coordinates (x is the column, y the row); uint8 fields are read as
    0..255, float fields as 0..1. Each edge weight is multiplied by
    exp(-strength * mean boundary strength along the edge).
    """
    boundary_field: np.ndarray = field(default=None, compare=False)
    strength: float = 5.0
    enabled: bool = True

    def __post_init__(self):
        if not (self.strength >= 0 and math.isfinite(self.strength)):
            raise ValueError(f"barrier strength must be finite and >= 0, got {self.strength!r}")
        if self.boundary_field is not None:
            field_ = np.asarray(self.boundary_field)
            if field_.ndim != 2 or field_.size == 0:
                raise ValueError("boundary field must be a non-empty 2D array")
            object.__setattr__(self, "boundary_field", field_)

    @property
    def active(self):
        return self.enabled and self.boundary_field is not None and self.strength > 0


class PinKind(Enum):
    ANCHOR = "anchor"
    POSE = "pose"
    RAIL = "rail"


@dataclass
class AnchorPin:
    """Fixed target position for the vertices around pos."""
    pos: np.ndarray
    target: np.ndarray = None
    radius: float = 50.0
    stiffness: float = 1.0
    vertex: int = None
    id: str = field(default_factory=generate_pin_id)
    kind: PinKind = field(default=PinKind.ANCHOR, init=False)

    def __post_init__(self):
        self.pos = vec2(self.pos)
        self.target = self.pos.copy() if self.target is None else vec2(self.target)


@dataclass
class PosePin:
    """Target position plus a rotation (and optional scale) of the neighbourhood."""
    pos: np.ndarray
    target: np.ndarray = None
    angle: float = 0.0
    radius: float = 60.0
    stiffness: float = 1.0
    scale: float = 1.0
    vertex: int = None
    id: str = field(default_factory=generate_pin_id)
    kind: PinKind = field(default=PinKind.POSE, init=False)

    def __post_init__(self):
        self.pos = vec2(self.pos)
        self.target = self.pos.copy() if self.target is None else vec2(self.target)


@dataclass
class RailPin:
    """Keeps the vertices near a polyline on that polyline."""
    poly: np.ndarray
    radius: float = 20.0
    stiffness: float = 1.0
    id: str = field(default_factory=generate_pin_id)
    kind: PinKind = field(default=PinKind.RAIL, init=False)

    def __post_init__(self):
        self.poly = np.asarray(self.poly, dtype=np.float64).reshape(-1, 2)
        if len(self.poly) == 0:
            raise ValueError("rail pin needs at least one polyline point")


def pin_from_dict(d):
    d = dict(d)
    kind = PinKind(d.pop("kind"))
    if kind is PinKind.ANCHOR:
        return AnchorPin(**d)
    if kind is PinKind.POSE:
        return PosePin(**d)
    if kind is PinKind.RAIL:
        return RailPin(**d)
    raise TypeError(f"unhandled pin kind {kind}")


class SolverState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SOLVING = "solving"
    SOLVED = "solved"


@dataclass
class SolveResult:
    success: bool
    positions: np.ndarray
    energy: float = 0.0
    cg_iterations: int = 0
    message: str = ""
