"""Pipeline stages and the detail payload each stage carries."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from .attempts import MethodAttempt, known_fields

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Known extraction pipeline stages."""

    QUEUE_ADDED = "queue_added"
    BROWSER_LAUNCH = "browser_launch"
    NAVIGATION = "navigation"
    COOKIE_BANNER = "cookie_banner"
    INITIAL_WAIT = "initial_wait"
    METADATA_EXTRACTION = "metadata_extraction"
    METADATA_NORMALIZATION = "metadata_normalization"
    SHADOW_ROOT_SETUP = "shadow_root_setup"
    CSS_EXPANSION = "css_expansion"
    VIEWPORT_RESIZE = "viewport_resize"
    CANVAS_EXTRACTION = "canvas_extraction"
    IMAGE_STORAGE = "image_storage"


@dataclass(slots=True)
class NavigationDetail:
    navigation_attempt: int = 1
    max_attempts: int = 1


@dataclass(slots=True)
class CookieBannerDetail:
    dismissed: bool = False


@dataclass(slots=True)
class InitialWaitDetail:
    wait_duration: int = 0


@dataclass(slots=True)
class MetadataExtractionDetail:
    success: bool = False
    fields_extracted: List[str] = field(default_factory=list)
    fields_missing: List[str] = field(default_factory=list)
    timed_out: bool = False


@dataclass(slots=True)
class MetadataNormalizationDetail:
    caption_generated: bool = False
    missing_fields: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ViewportStep:
    size: str
    wait_ms: int


@dataclass(slots=True)
class ViewportResizeDetail:
    steps: List[ViewportStep] = field(default_factory=list)


@dataclass(slots=True)
class CanvasExtractionDetail:
    """Fallback chain state. Updated in place as attempts are recorded."""

    mode: str = "unknown"
    total_attempts: int = 0
    successful_method: Optional[str] = None
    methods: List[MethodAttempt] = field(default_factory=list)


@dataclass(slots=True)
class ImageStorageDetail:
    saved: bool = False
    path: Optional[str] = None


StageDetail = Union[
    NavigationDetail,
    CookieBannerDetail,
    InitialWaitDetail,
    MetadataExtractionDetail,
    MetadataNormalizationDetail,
    ViewportResizeDetail,
    CanvasExtractionDetail,
    ImageStorageDetail,
]

# Stages missing here carry no detail
STAGE_DETAIL_TYPES: Dict[Stage, type] = {
    Stage.NAVIGATION: NavigationDetail,
    Stage.COOKIE_BANNER: CookieBannerDetail,
    Stage.INITIAL_WAIT: InitialWaitDetail,
    Stage.METADATA_EXTRACTION: MetadataExtractionDetail,
    Stage.METADATA_NORMALIZATION: MetadataNormalizationDetail,
    Stage.VIEWPORT_RESIZE: ViewportResizeDetail,
    Stage.CANVAS_EXTRACTION: CanvasExtractionDetail,
    Stage.IMAGE_STORAGE: ImageStorageDetail,
}


def detail_from_mapping(detail_type: type, data: Mapping[str, Any]) -> StageDetail:
    """Build a stage detail field by field from a plain mapping."""
    unknown = set(data) - {f.name for f in fields(detail_type)}
    if unknown:
        logger.debug("Dropping unknown %s fields: %s", detail_type.__name__, sorted(unknown))

    values = known_fields(detail_type, data)
    if detail_type is ViewportResizeDetail:
        values["steps"] = [
            step if isinstance(step, ViewportStep) else ViewportStep(**known_fields(ViewportStep, step))
            for step in values.get("steps") or []
        ]
    elif detail_type is CanvasExtractionDetail:
        values["methods"] = [
            method if isinstance(method, MethodAttempt) else MethodAttempt.from_mapping(method)
            for method in values.get("methods") or []
        ]
    return detail_type(**values)


def coerce_detail(
    stage: Stage, detail: Union[StageDetail, Mapping[str, Any], None]
) -> Optional[StageDetail]:
    """Convert ``detail`` to the detail type registered for ``stage``.

    Raises:
        ValueError: If the stage takes no detail
        TypeError: If the detail does not match the stage
    """
    if detail is None:
        return None

    detail_type = STAGE_DETAIL_TYPES.get(stage)
    if detail_type is None:
        raise ValueError(f"Stage '{stage.value}' does not take a detail payload")
    if isinstance(detail, detail_type):
        return detail
    if isinstance(detail, Mapping):
        return detail_from_mapping(detail_type, detail)
    raise TypeError(
        f"Stage '{stage.value}' expects {detail_type.__name__}, got {type(detail).__name__}"
    )


def parse_stage(value: Union[Stage, str]) -> Stage:
    """Return the Stage for ``value``. Raises ValueError for unknown names."""
    if isinstance(value, Stage):
        return value
    return Stage(value)


def detail_to_dict(detail: Optional[StageDetail]) -> Dict[str, Any]:
    return asdict(detail) if detail is not None else {}
