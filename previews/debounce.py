"""
Decides whether a record change needs its previews regenerated.

Every write path ends up here: the live trigger calls ``decide`` directly and
the force-regeneration sweep clears the preview fields, which lands in the
``OUTPUTS_MISSING`` branch on the next evaluation.
"""
from dataclasses import dataclass
from enum import Enum


class Reason(str, Enum):
    SOURCE_CHANGED = "SourceChanged"
    OUTPUTS_MISSING = "OutputsMissing"
    NOT_ELIGIBLE = "NotEligible"


@dataclass(frozen=True)
class RegenerationDecision:
    required: bool
    reason: Reason


NOT_ELIGIBLE = RegenerationDecision(required=False, reason=Reason.NOT_ELIGIBLE)


def decide(before, after) -> RegenerationDecision:
    """
    Compare two snapshots of a record (either may be None) and return the decision.
    Snapshots only need ``source_video_ref``, ``preview_clip_url`` and ``preview_image_url``.
    """
    if after is None or not getattr(after, "source_video_ref", None):
        return NOT_ELIGIBLE

    before_ref = getattr(before, "source_video_ref", None) if before is not None else None
    if before_ref != after.source_video_ref:
        return RegenerationDecision(required=True, reason=Reason.SOURCE_CHANGED)

    if not getattr(after, "preview_clip_url", None) or not getattr(after, "preview_image_url", None):
        return RegenerationDecision(required=True, reason=Reason.OUTPUTS_MISSING)

    return NOT_ELIGIBLE
