import pytest

from src.functions.extraction_diagnostics.core.contracts import (
    CanvasExtractionDetail,
    DomState,
    MethodAttempt,
    NavigationDetail,
    ProcessState,
    ProcessStateUpdate,
    Stage,
    StageCheckpoint,
    ViewportResizeDetail,
    ViewportStep,
    coerce_detail,
)


def test_coerce_detail_builds_typed_detail_from_mapping():
    detail = coerce_detail(
        Stage.VIEWPORT_RESIZE,
        {"steps": [{"size": "1920x1080", "wait_ms": 500}], "extra": True},
    )

    assert detail == ViewportResizeDetail(steps=[ViewportStep(size="1920x1080", wait_ms=500)])


def test_coerce_detail_rejects_mismatches():
    with pytest.raises(TypeError):
        coerce_detail(Stage.NAVIGATION, CanvasExtractionDetail())
    with pytest.raises(ValueError):
        coerce_detail(Stage.BROWSER_LAUNCH, {"anything": 1})
    assert coerce_detail(Stage.BROWSER_LAUNCH, None) is None


def test_checkpoint_dict_flattens_detail():
    checkpoint = StageCheckpoint(
        name=Stage.NAVIGATION,
        timestamp=1700000000500,
        elapsed=500,
        detail=NavigationDetail(navigation_attempt=2, max_attempts=3),
    )

    assert checkpoint.to_dict() == {
        "name": "navigation",
        "timestamp": 1700000000500,
        "elapsed": 500,
        "memory": None,
        "navigation_attempt": 2,
        "max_attempts": 3,
    }


def test_method_attempt_from_mapping_coerces_nested_records():
    attempt = MethodAttempt.from_mapping(
        {
            "method_name": "canvas-to-blob",
            "rank": 2,
            "start_time": 10,
            "dom_state": {"canvas_found": True, "canvas_dimensions": {"width": 1200, "height": 800}},
            "extraction_detail": {"format": "png", "size": 2048},
        }
    )

    assert attempt.dom_state.describe() == "canvas=1200x800 shadow=no embed=no"
    assert attempt.extraction_detail.format == "png"
    assert attempt.finished is False


def test_dom_state_describe_without_dimensions():
    state = DomState(canvas_found=True, shadow_root_found=True)

    assert state.describe() == "canvas=yes shadow=yes embed=no"


def test_process_state_merge_only_sets_given_fields():
    state = ProcessState(browser_restarts=2, task_number=4, queue_position=9)

    state.merge(ProcessStateUpdate(task_number=5, will_recycle=False))

    assert state.browser_restarts == 2
    assert state.task_number == 5
    assert state.queue_position == 9
    assert state.will_recycle is False
