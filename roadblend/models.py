from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

Point = Tuple[float, float]
SectionRef = Tuple[int, int]

ENDPOINT = "endpoint"
T_JUNCTION = "t_junction"
Y_JUNCTION = "y_junction"
CROSSROADS = "crossroads"
COMPLEX = "complex"
MIDSPLINE_CROSSING = "midspline_crossing"
ROUNDABOUT = "roundabout"
JUNCTION_TYPES = (ENDPOINT, T_JUNCTION, Y_JUNCTION, CROSSROADS, COMPLEX, MIDSPLINE_CROSSING, ROUNDABOUT)

NORMAL = "normal"
MAINTAIN_BANKING = "maintain_banking"
ADAPT_TO_HIGHER_PRIORITY = "adapt_to_higher_priority"
SUPPRESS_BANKING = "suppress_banking"
BANKING_BEHAVIORS = (NORMAL, MAINTAIN_BANKING, ADAPT_TO_HIGHER_PRIORITY, SUPPRESS_BANKING)

ENTRY = "entry"
EXIT = "exit"
BIDIRECTIONAL = "bidirectional"

MIN_VALID_ELEVATION = -1000.0


def is_valid_elevation(value: Optional[float]) -> bool:
    if value is None:
        return False
    return math.isfinite(value) and value >= MIN_VALID_ELEVATION


@dataclass
class BankingParams:
    enabled: bool = True
    max_bank_angle_deg: float = 8.0
    strength: float = 0.5
    falloff: float = 0.6
    curvature_scale: float = 500.0
    transition_length_m: float = 30.0

    def validate(self) -> List[str]:
        errors = []
        if not 0.0 <= self.max_bank_angle_deg <= 45.0:
            errors.append("max_bank_angle_deg must be between 0 and 45")
        if not 0.0 <= self.strength <= 1.0:
            errors.append("strength must be between 0 and 1")
        if not 0.1 <= self.falloff <= 3.0:
            errors.append("falloff must be between 0.1 and 3.0")
        if not 1.0 <= self.curvature_scale <= 2000.0:
            errors.append("curvature_scale must be between 1 and 2000")
        if not 1.0 <= self.transition_length_m <= 200.0:
            errors.append("transition_length_m must be between 1 and 200")
        return errors


@dataclass
class CrossSection:
    center: Point
    tangent: Point
    normal: Point
    distance_along: float = 0.0
    curvature: float = 0.0
    target_elevation: float = float("nan")
    bank_angle: float = 0.0
    left_edge_elevation: Optional[float] = None
    right_edge_elevation: Optional[float] = None
    # set only when an edge is pinned to a neighbouring junction surface
    constrained_left: Optional[float] = None
    constrained_right: Optional[float] = None
    banking_behavior: str = NORMAL
    banking_factor: float = 1.0
    higher_priority_spline_id: Optional[int] = None
    distance_to_nearest_junction: float = math.inf
    is_excluded: bool = False

    @property
    def has_constraint(self) -> bool:
        return self.constrained_left is not None or self.constrained_right is not None

    @property
    def effective_left(self) -> Optional[float]:
        if self.constrained_left is not None:
            return self.constrained_left
        return self.left_edge_elevation

    @property
    def effective_right(self) -> Optional[float]:
        if self.constrained_right is not None:
            return self.constrained_right
        return self.right_edge_elevation


@dataclass
class Spline:
    spline_id: int
    sections: List[CrossSection] = field(default_factory=list)
    priority: int = 0
    road_width_m: float = 8.0
    blend_range_m: float = 15.0
    blend_function: str = "cosine"
    junction_detection_radius_m: Optional[float] = None
    banking: Optional[BankingParams] = None
    is_roundabout: bool = False
    oneway: bool = False
    name: str = ""

    @property
    def half_width(self) -> float:
        return self.road_width_m / 2.0

    @property
    def start_point(self) -> Optional[Point]:
        return self.sections[0].center if self.sections else None

    @property
    def end_point(self) -> Optional[Point]:
        return self.sections[-1].center if self.sections else None


@dataclass
class RoadNetwork:
    splines: List[Spline] = field(default_factory=list)
    _by_id: Dict[int, Spline] = field(init=False, repr=False, default_factory=dict)

    def __post_init__(self) -> None:
        for s in self.splines:
            # -1 marks unowned pixels in the ownership grid
            if s.spline_id < 0:
                raise ValueError(f"spline_id_negative:{s.spline_id}")
            if s.spline_id in self._by_id:
                raise ValueError(f"duplicate_spline_id:{s.spline_id}")
            self._by_id[s.spline_id] = s

    def spline(self, spline_id: int) -> Spline:
        try:
            return self._by_id[spline_id]
        except KeyError:
            raise KeyError(f"spline_not_found:{spline_id}") from None

    def section(self, ref: SectionRef) -> CrossSection:
        spline_id, index = ref
        return self.spline(spline_id).sections[index]

    def iter_sections(self) -> Iterator[Tuple[SectionRef, CrossSection]]:
        for s in self.splines:
            for i, cs in enumerate(s.sections):
                yield (s.spline_id, i), cs

    @property
    def section_count(self) -> int:
        return sum(len(s.sections) for s in self.splines)

    def copy(self) -> "RoadNetwork":
        return copy.deepcopy(self)


@dataclass
class JunctionContributor:
    spline_id: int
    index: int
    is_spline_start: bool = False
    is_spline_end: bool = False

    @property
    def ref(self) -> SectionRef:
        return (self.spline_id, self.index)

    @property
    def is_endpoint(self) -> bool:
        return self.is_spline_start or self.is_spline_end

    @property
    def is_continuous(self) -> bool:
        return not self.is_endpoint


@dataclass
class RoundaboutConnection:
    ring_spline_id: int
    road_spline_id: int
    angle_deg: float
    distance_along_ring: float
    direction: str = BIDIRECTIONAL
    is_road_start: bool = False
    ring_center: Point = (0.0, 0.0)
    ring_radius: float = 0.0


@dataclass
class Junction:
    junction_id: int = -1
    position: Point = (0.0, 0.0)
    junction_type: str = ""
    contributors: List[JunctionContributor] = field(default_factory=list)
    is_excluded: bool = False
    roundabout: Optional[RoundaboutConnection] = None
    harmonized_elevation: float = float("nan")

    def spline_ids(self) -> List[int]:
        seen: List[int] = []
        for c in self.contributors:
            if c.spline_id not in seen:
                seen.append(c.spline_id)
        return seen

    def has_continuous_for(self, spline_id: int) -> bool:
        return any(c.spline_id == spline_id and c.is_continuous for c in self.contributors)

    def has_endpoint_for(self, spline_id: int) -> bool:
        return any(c.spline_id == spline_id and c.is_endpoint for c in self.contributors)


__all__ = [
    "ADAPT_TO_HIGHER_PRIORITY",
    "BANKING_BEHAVIORS",
    "BIDIRECTIONAL",
    "BankingParams",
    "COMPLEX",
    "CROSSROADS",
    "CrossSection",
    "ENDPOINT",
    "ENTRY",
    "EXIT",
    "JUNCTION_TYPES",
    "Junction",
    "JunctionContributor",
    "MAINTAIN_BANKING",
    "MIDSPLINE_CROSSING",
    "MIN_VALID_ELEVATION",
    "NORMAL",
    "Point",
    "ROUNDABOUT",
    "RoadNetwork",
    "RoundaboutConnection",
    "SUPPRESS_BANKING",
    "SectionRef",
    "Spline",
    "T_JUNCTION",
    "Y_JUNCTION",
    "is_valid_elevation",
]
