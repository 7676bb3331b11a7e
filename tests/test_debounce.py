from types import SimpleNamespace

import pytest

from previews.debounce import Reason, decide


def snap(source=None, clip=None, image=None):
    return SimpleNamespace(source_video_ref=source, preview_clip_url=clip, preview_image_url=image)


DONE = dict(clip="https://b/clip.mp4", image="https://b/img.jpg")


@pytest.mark.parametrize(
    "before, after, required, reason",
    [
        (None, None, False, Reason.NOT_ELIGIBLE),
        (snap("v1", **DONE), None, False, Reason.NOT_ELIGIBLE),
        (None, snap(), False, Reason.NOT_ELIGIBLE),
        (snap("v1", **DONE), snap(None, **DONE), False, Reason.NOT_ELIGIBLE),
        (snap("v1", **DONE), snap(""), False, Reason.NOT_ELIGIBLE),
        (None, snap("v1"), True, Reason.SOURCE_CHANGED),
        (snap(), snap("v1"), True, Reason.SOURCE_CHANGED),
        (snap("v1", **DONE), snap("v2", **DONE), True, Reason.SOURCE_CHANGED),
        (snap("v1", **DONE), snap("v1"), True, Reason.OUTPUTS_MISSING),
        (snap("v1", **DONE), snap("v1", clip=DONE["clip"]), True, Reason.OUTPUTS_MISSING),
        (snap("v1", **DONE), snap("v1", image=DONE["image"]), True, Reason.OUTPUTS_MISSING),
        (snap("v1", **DONE), snap("v1", **DONE), False, Reason.NOT_ELIGIBLE),
        (snap("v1"), snap("v1", **DONE), False, Reason.NOT_ELIGIBLE),
    ],
)
def test_decide(before, after, required, reason):
    decision = decide(before, after)
    assert decision.required is required
    assert decision.reason is reason


def test_required_iff_source_present_and_changed_or_outputs_missing():
    sources = [None, "", "v1", "v2"]
    outputs = [(None, None), ("c", None), (None, "i"), ("c", "i")]
    for before_src in sources:
        for after_src in sources:
            for clip, image in outputs:
                before = snap(before_src, "c", "i")
                after = snap(after_src, clip, image)
                expected = bool(after_src) and (before_src != after_src or not (clip and image))
                assert decide(before, after).required is expected, (before_src, after_src, clip, image)


def test_source_change_then_republish_scenario():
    created = snap("v1")
    assert decide(None, created).reason is Reason.SOURCE_CHANGED

    published = snap("v1", "u1", "i1")
    assert decide(created, published).required is False

    reuploaded = snap("v2", "u1", "i1")
    decision = decide(published, reuploaded)
    assert decision.required is True
    assert decision.reason is Reason.SOURCE_CHANGED


def test_unrelated_write_does_not_regenerate():
    before = snap("v1", "u1", "i1")
    after = snap("v1", "u1", "i1")
    after.title = "renamed"
    assert decide(before, after).required is False
