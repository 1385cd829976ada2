"""Access policy evaluation.

The evaluator is a pure function of (credential, timestamp): no I/O, no
clock reads, no shared mutable state.  It can be called concurrently
from any number of reader sessions and re-evaluating the same inputs
always yields an equal Decision.

Rules are an ordered table; the first rule that returns a Verdict wins.
The default table is:

  1. inactive credential         -> deny   inactive_credential
  2. unrecognized role           -> deny   invalid_role
  3. full access                 -> grant  full_access_granted
  4. restricted, 08:00-18:00     -> grant  restricted_access_granted
     restricted, otherwise       -> deny   outside_business_hours
  5. visitor, 09:00-17:00        -> grant  visitor_escort_required (+escort)
     visitor, otherwise          -> deny   outside_visiting_hours
  6. anything else               -> deny   invalid_access_level

Hour windows are half-open: 18:00 sharp is already outside business
hours.  Hours are read in the facility timezone the evaluator was built
with; naive timestamps are taken to be facility-local already.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone, tzinfo

from tappass.models.credential import AccessLevel, Credential, Role
from tappass.models.decision import Decision, OverrideContext, ReasonCode

MANUAL_DENY_REASON = "Access manually denied by reader"
MANUAL_GRANT_REASON = "Access manually granted by reader"


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Half-open range of local hours, [start_hour, end_hour)."""

    start_hour: int
    end_hour: int

    def contains(self, hour: int) -> bool:
        return self.start_hour <= hour < self.end_hour


BUSINESS_HOURS = TimeWindow(8, 18)
VISITING_HOURS = TimeWindow(9, 17)


@dataclass(frozen=True, slots=True)
class Verdict:
    granted: bool
    reason_code: ReasonCode
    escort_required: bool = False


# A rule sees the credential and the facility-local time and either
# decides (returns a Verdict) or passes (returns None).
Rule = Callable[[Credential, datetime], Verdict | None]


def deny_inactive(credential: Credential, local_now: datetime) -> Verdict | None:
    if not credential.is_active:
        return Verdict(False, ReasonCode.INACTIVE_CREDENTIAL)
    return None


def deny_unrecognized_role(
    credential: Credential, local_now: datetime
) -> Verdict | None:
    if credential.role is Role.UNRECOGNIZED:
        return Verdict(False, ReasonCode.INVALID_ROLE)
    return None


def grant_full_access(credential: Credential, local_now: datetime) -> Verdict | None:
    if credential.access_level is AccessLevel.FULL:
        return Verdict(True, ReasonCode.FULL_ACCESS_GRANTED)
    return None


def restricted_hours(window: TimeWindow = BUSINESS_HOURS) -> Rule:
    def _rule(credential: Credential, local_now: datetime) -> Verdict | None:
        if credential.access_level is not AccessLevel.RESTRICTED:
            return None
        if window.contains(local_now.hour):
            return Verdict(True, ReasonCode.RESTRICTED_ACCESS_GRANTED)
        return Verdict(False, ReasonCode.OUTSIDE_BUSINESS_HOURS)

    return _rule


def visitor_hours(window: TimeWindow = VISITING_HOURS) -> Rule:
    def _rule(credential: Credential, local_now: datetime) -> Verdict | None:
        if credential.access_level is not AccessLevel.VISITOR:
            return None
        if window.contains(local_now.hour):
            # Still a grant; the escort flag travels with the decision.
            return Verdict(
                True, ReasonCode.VISITOR_ESCORT_REQUIRED, escort_required=True
            )
        return Verdict(False, ReasonCode.OUTSIDE_VISITING_HOURS)

    return _rule


def deny_invalid_access_level(
    credential: Credential, local_now: datetime
) -> Verdict | None:
    return Verdict(False, ReasonCode.INVALID_ACCESS_LEVEL)


DEFAULT_RULES: tuple[Rule, ...] = (
    deny_inactive,
    deny_unrecognized_role,
    grant_full_access,
    restricted_hours(),
    visitor_hours(),
    deny_invalid_access_level,
)


class PolicyEvaluator:
    """Runs an ordered rule table against a credential at a given instant."""

    def __init__(
        self,
        rules: Sequence[Rule] = DEFAULT_RULES,
        *,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._rules = tuple(rules)
        self._tz = tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def local_time(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            return now
        return now.astimezone(self._tz)

    def evaluate(self, credential: Credential, now: datetime) -> Decision:
        local_now = self.local_time(now)
        for rule in self._rules:
            verdict = rule(credential, local_now)
            if verdict is not None:
                return Decision(
                    granted=verdict.granted,
                    reason_code=verdict.reason_code,
                    evaluated_at=now,
                    escort_required=verdict.escort_required,
                )
        # Table without a catch-all: fall back to denial.
        return Decision(
            granted=False,
            reason_code=ReasonCode.INVALID_ACCESS_LEVEL,
            evaluated_at=now,
        )


default_evaluator = PolicyEvaluator()


def evaluate(credential: Credential, now: datetime) -> Decision:
    """Evaluate with the default rule table in UTC."""
    return default_evaluator.evaluate(credential, now)


def apply_override(decision: Decision, *, granted: bool, reason: str = "") -> Decision:
    """Replace a computed decision with the operator's judgment.

    The result keeps ``evaluated_at`` and records the computed verdict in
    ``override`` so the audit record can show what the operator overrode.
    """
    if decision.override is not None:
        raise ValueError("decision has already been overridden")
    default_reason = MANUAL_GRANT_REASON if granted else MANUAL_DENY_REASON
    return replace(
        decision,
        granted=granted,
        reason_code=ReasonCode.OPERATOR_OVERRIDE,
        # Escort flag survives only while the outcome is still a grant.
        escort_required=granted and decision.escort_required,
        override=OverrideContext(
            original_granted=decision.granted,
            original_reason_code=decision.reason_code,
            operator_reason=reason.strip() or default_reason,
        ),
    )
