"""Trigger payloads embedded in chat responses and their routing."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Literal

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = structlog.get_logger()

LEAVE_REQUIRED_FIELDS: tuple[str, ...] = ("user_id", "start_date", "end_date", "leave_type")
DEFAULT_APPROVAL_TYPES: frozenset[str] = frozenset({"hr_leave_grant"})

RouteResult = Literal["leave", "approval", "unrecognized"]


class LeaveTrigger(BaseModel):
    """Open a leave-request draft pre-filled by the assistant.

    Only the four required fields are checked. Optional fields are passed
    through as sent, with missing or null values replaced by a blank default.
    Unknown fields are kept as extras.
    """

    model_config = ConfigDict(extra="allow")

    user_id: str
    start_date: str
    end_date: str
    leave_type: str
    reason: Any = ""
    half_day_slot: Any = ""
    approval_line: Any = []  # [{approver_id, approver_name, approval_seq, next_approver_id}]
    cc_list: Any = []  # [{name, user_id}]
    leave_status: Any = []  # [{leave_type, total_days, remain_days}]
    partial_data: Any = False
    follow_up_required: Any = False
    follow_up_message: Any = ""

    @field_validator("user_id", "start_date", "end_date", "leave_type", mode="before")
    @classmethod
    def _blank_or_str(cls, v: object) -> str:
        return "" if v is None else str(v)

    @field_validator("reason", "half_day_slot", "follow_up_message", mode="before")
    @classmethod
    def _blank_if_missing(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("approval_line", "cc_list", "leave_status", mode="before")
    @classmethod
    def _list_or_empty(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator("partial_data", "follow_up_required", mode="before")
    @classmethod
    def _false_if_missing(cls, v: object) -> object:
        return False if v is None else v


class ApprovalTrigger(BaseModel):
    """Open an electronic-approval draft of an allow-listed type."""

    model_config = ConfigDict(extra="allow")

    approval_type: str


def is_leave_trigger(obj: dict[str, Any]) -> bool:
    """True when every required leave field is present (values may be blank)."""
    return all(field in obj for field in LEAVE_REQUIRED_FIELDS)


def normalize_approval(obj: dict[str, Any]) -> ApprovalTrigger | None:
    """Collapse the top-level and ``data``-nested approval shapes into one.

    ``{"approval_type": ...}`` wins over ``{"data": {"approval_type": ...}}``
    when both are present.
    """
    candidate: Any = None
    if obj.get("approval_type"):
        candidate = obj
    else:
        nested = obj.get("data")
        if isinstance(nested, dict) and nested.get("approval_type"):
            candidate = nested

    if candidate is None:
        return None

    return ApprovalTrigger.model_validate({**candidate, "approval_type": str(candidate["approval_type"])})


class TriggerRouter:
    """Classify a parsed JSON object and hand it to the matching callback.

    The leave check runs first; an object that qualifies as a leave trigger
    is never also delivered as an approval.
    """

    def __init__(
        self,
        on_leave: Callable[[LeaveTrigger], None] | None = None,
        on_approval: Callable[[ApprovalTrigger], None] | None = None,
        allowed_approval_types: Iterable[str] = DEFAULT_APPROVAL_TYPES,
    ):
        self.on_leave = on_leave
        self.on_approval = on_approval
        self.allowed_approval_types = frozenset(allowed_approval_types)

    def classify(self, obj: object) -> LeaveTrigger | ApprovalTrigger | None:
        """Build the trigger payload for ``obj`` without dispatching it."""
        if not isinstance(obj, dict):
            return None

        try:
            if is_leave_trigger(obj):
                return LeaveTrigger.model_validate(obj)
            approval = normalize_approval(obj)
        except ValidationError as e:
            logger.warning("trigger_payload_invalid", error=str(e))
            return None

        if approval is None:
            return None
        if approval.approval_type not in self.allowed_approval_types:
            logger.debug("approval_trigger_not_allowed", approval_type=approval.approval_type)
            return None
        return approval

    def route(self, obj: object) -> RouteResult:
        """Classify ``obj`` and dispatch it. Returns the kind that was recognized."""
        return self.dispatch(self.classify(obj))

    def dispatch(self, trigger: LeaveTrigger | ApprovalTrigger | None) -> RouteResult:
        """Hand an already-classified trigger to its callback."""
        if isinstance(trigger, LeaveTrigger):
            logger.debug("leave_trigger_detected", user_id=trigger.user_id, leave_type=trigger.leave_type)
            if self.on_leave is not None:
                self.on_leave(trigger)
            return "leave"

        if isinstance(trigger, ApprovalTrigger):
            logger.debug("approval_trigger_detected", approval_type=trigger.approval_type)
            if self.on_approval is not None:
                self.on_approval(trigger)
            return "approval"

        return "unrecognized"
