"""Records for fallback-chain extraction method attempts."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Union


def known_fields(cls: type, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only the keys of ``data`` that are dataclass fields of ``cls``."""
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


@dataclass(slots=True)
class Dimensions:
    width: int
    height: int

    @classmethod
    def coerce(cls, value: Union["Dimensions", Mapping[str, Any], None]) -> Optional["Dimensions"]:
        if value is None or isinstance(value, Dimensions):
            return value
        return cls(width=int(value["width"]), height=int(value["height"]))


@dataclass(slots=True)
class DomState:
    """What the page looked like when an extraction method ran."""

    canvas_found: bool = False
    shadow_root_found: bool = False
    embed_found: bool = False
    canvas_dimensions: Optional[Dimensions] = None
    selectors: List[str] = field(default_factory=list)

    @classmethod
    def coerce(cls, value: Union["DomState", Mapping[str, Any], None]) -> Optional["DomState"]:
        if value is None or isinstance(value, DomState):
            return value
        data = known_fields(cls, value)
        data["canvas_dimensions"] = Dimensions.coerce(data.get("canvas_dimensions"))
        data["selectors"] = list(data.get("selectors") or [])
        return cls(**data)

    def describe(self) -> str:
        """Compact one-line form used in log messages."""
        canvas = "no"
        if self.canvas_found:
            dims = self.canvas_dimensions
            canvas = f"{dims.width}x{dims.height}" if dims else "yes"
        return (
            f"canvas={canvas} shadow={'yes' if self.shadow_root_found else 'no'} "
            f"embed={'yes' if self.embed_found else 'no'}"
        )


@dataclass(slots=True)
class ExtractionDetail:
    """Properties of the image produced by a successful method."""

    format: Optional[str] = None
    size: Optional[int] = None
    dimensions: Optional[Dimensions] = None
    checksum_stable: Optional[bool] = None

    @classmethod
    def coerce(
        cls, value: Union["ExtractionDetail", Mapping[str, Any], None]
    ) -> Optional["ExtractionDetail"]:
        if value is None or isinstance(value, ExtractionDetail):
            return value
        data = known_fields(cls, value)
        data["dimensions"] = Dimensions.coerce(data.get("dimensions"))
        return cls(**data)


@dataclass(slots=True)
class MethodAttempt:
    """One ranked method invocation within the fallback chain."""

    method_name: str
    rank: int
    start_time: int
    end_time: Optional[int] = None
    duration: Optional[int] = None
    success: bool = False
    error: Optional[str] = None
    dom_state: Optional[DomState] = None
    extraction_detail: Optional[ExtractionDetail] = None

    @property
    def finished(self) -> bool:
        return self.end_time is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MethodAttempt":
        values = known_fields(cls, data)
        values["dom_state"] = DomState.coerce(values.get("dom_state"))
        values["extraction_detail"] = ExtractionDetail.coerce(values.get("extraction_detail"))
        return cls(**values)
