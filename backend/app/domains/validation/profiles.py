"""
Conformance profiles (custom schemas) layered on top of base validation.

A profile names the segments a message must carry, fixed cardinalities
for segments that may appear, and the local Z-segments it defines.
"""
import logging
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from app.core.exceptions import ProfileNotFoundError

logger = logging.getLogger(__name__)

CARDINALITY_PATTERN = re.compile(r"^\[(?P<min>\d+)\.\.(?P<max>\d+|\*)\]$")


def parse_cardinality(cardinality: str) -> tuple[int, int | None]:
    """Parse "[min..max]" ("*" for unbounded) into bounds."""
    match = CARDINALITY_PATTERN.match(cardinality.strip())
    if not match:
        raise ValueError(f"invalid cardinality {cardinality!r}, expected e.g. [1..1] or [0..*]")
    low = int(match.group("min"))
    high = None if match.group("max") == "*" else int(match.group("max"))
    if high is not None and high < low:
        raise ValueError(f"invalid cardinality {cardinality!r}, max is below min")
    return low, high


class ZSegmentDefinition(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    fields: list[str] = []


class ConformanceProfile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    version: str
    description: str = ""
    mandatory_segments: list[str] = []
    optional_segments: list[str] = []
    segment_cardinality: dict[str, str] = {}
    z_segments: dict[str, ZSegmentDefinition] = {}

    @field_validator("segment_cardinality")
    @classmethod
    def check_cardinality(cls, value: dict[str, str]) -> dict[str, str]:
        for cardinality in value.values():
            parse_cardinality(cardinality)
        return value

    def cardinality_bounds(self, segment: str) -> tuple[int, int | None] | None:
        cardinality = self.segment_cardinality.get(segment)
        return parse_cardinality(cardinality) if cardinality else None


UK_ITK_PROFILE = ConformanceProfile(
    name="UK_ITK",
    version="2.2",
    description="UK Interoperability Toolkit for NHS",
    mandatory_segments=["MSH", "EVN"],
    optional_segments=["PID", "PV1", "ZU1", "ZU3"],
    segment_cardinality={
        "QAK": "[1..1]",
        "EVN": "[1..1]",
    },
    z_segments={
        "ZU1": ZSegmentDefinition(name="Additional PV info", fields=["ZU1.1", "ZU1.2", "ZU1.3"]),
        "ZU3": ZSegmentDefinition(name="Attendance Details", fields=["ZU3.1", "ZU3.2"]),
    },
)

BUILTIN_PROFILES = (UK_ITK_PROFILE,)


class ProfileRegistry:
    """Named conformance profiles available to validation."""

    def __init__(self, profiles: tuple[ConformanceProfile, ...] | list[ConformanceProfile] = BUILTIN_PROFILES):
        self._profiles: dict[str, ConformanceProfile] = {}
        for profile in profiles:
            self.register(profile)

    def register(self, profile: ConformanceProfile) -> None:
        if profile.name in self._profiles:
            logger.info(f"Replacing conformance profile {profile.name}")
        self._profiles[profile.name] = profile

    def get(self, name: str) -> ConformanceProfile:
        try:
            return self._profiles[name]
        except KeyError:
            raise ProfileNotFoundError(name) from None

    def names(self) -> list[str]:
        return sorted(self._profiles)

    def load_directory(self, directory: Path) -> int:
        """
        Register every *.json profile in a directory.

        Returns:
            Number of profiles loaded
        """
        loaded = 0
        for path in sorted(Path(directory).glob("*.json")):
            profile = ConformanceProfile.model_validate_json(path.read_text(encoding="utf-8"))
            self.register(profile)
            loaded += 1
            logger.info(f"Loaded conformance profile {profile.name} from {path.name}")
        return loaded
