"""Data contracts for extraction diagnostics."""

from .attempts import Dimensions, DomState, ExtractionDetail, MethodAttempt
from .stages import (
    CanvasExtractionDetail,
    CookieBannerDetail,
    ImageStorageDetail,
    InitialWaitDetail,
    MetadataExtractionDetail,
    MetadataNormalizationDetail,
    NavigationDetail,
    Stage,
    StageDetail,
    ViewportResizeDetail,
    ViewportStep,
    coerce_detail,
    parse_stage,
)
from .session import (
    SUMMARY_FIELDS,
    DebugSession,
    Diagnostics,
    MemoryMark,
    MemorySnapshot,
    Outcome,
    ProcessState,
    ProcessStateUpdate,
    StageCheckpoint,
)

__all__ = [
    "CanvasExtractionDetail",
    "CookieBannerDetail",
    "DebugSession",
    "Diagnostics",
    "Dimensions",
    "DomState",
    "ExtractionDetail",
    "ImageStorageDetail",
    "InitialWaitDetail",
    "MemoryMark",
    "MemorySnapshot",
    "MetadataExtractionDetail",
    "MetadataNormalizationDetail",
    "MethodAttempt",
    "NavigationDetail",
    "Outcome",
    "ProcessState",
    "ProcessStateUpdate",
    "SUMMARY_FIELDS",
    "Stage",
    "StageCheckpoint",
    "StageDetail",
    "ViewportResizeDetail",
    "ViewportStep",
    "coerce_detail",
    "parse_stage",
]
