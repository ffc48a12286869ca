# backend/mentorship/services/session_state_machine.py
"""
Session state machine.

The transition table is the single source of truth for which actor may move
a session from which status with which action. Every SessionStatus has an
entry, including the terminal ones, and the module refuses to import if a
status is missing so a newly added status cannot slip through unreviewed.

    scheduled  --accept (mentor)--------------> confirmed
    scheduled  --decline (mentor)-------------> cancelled
    scheduled  --reschedule (mentor)----------> rescheduled
    rescheduled --accept (mentee)-------------> confirmed
    rescheduled --decline (mentee)------------> cancelled
    confirmed  --confirm_attendance (either)--> confirmed
    scheduled|confirmed --cancel (either)-----> cancelled
    scheduled|confirmed --mark_missed (system)-> no_show
    confirmed  --start (any)------------------> in_progress
    confirmed|in_progress --complete (system)-> completed
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Mapping

from ..core.enums import ActorRole, SessionAction
from ..core.exceptions import InvalidTransitionException
from ..models.session import MentorshipSession, SessionStatus

MENTOR = ActorRole.MENTOR
MENTEE = ActorRole.MENTEE
SYSTEM = ActorRole.SYSTEM


@dataclass(frozen=True)
class Transition:
    target: SessionStatus
    actors: FrozenSet[ActorRole]
    noop: bool = False


def _t(target: SessionStatus, *actors: ActorRole, noop: bool = False) -> Transition:
    return Transition(target=target, actors=frozenset(actors), noop=noop)


TRANSITIONS: Mapping[SessionStatus, Mapping[SessionAction, Transition]] = {
    SessionStatus.SCHEDULED: {
        SessionAction.ACCEPT: _t(SessionStatus.CONFIRMED, MENTOR),
        SessionAction.DECLINE: _t(SessionStatus.CANCELLED, MENTOR),
        SessionAction.RESCHEDULE: _t(SessionStatus.RESCHEDULED, MENTOR),
        SessionAction.CANCEL: _t(SessionStatus.CANCELLED, MENTOR, MENTEE),
        SessionAction.MARK_MISSED: _t(SessionStatus.NO_SHOW, SYSTEM),
    },
    SessionStatus.RESCHEDULED: {
        SessionAction.ACCEPT: _t(SessionStatus.CONFIRMED, MENTEE),
        SessionAction.DECLINE: _t(SessionStatus.CANCELLED, MENTEE),
    },
    SessionStatus.CONFIRMED: {
        SessionAction.CONFIRM_ATTENDANCE: _t(SessionStatus.CONFIRMED, MENTOR, MENTEE),
        SessionAction.CANCEL: _t(SessionStatus.CANCELLED, MENTOR, MENTEE),
        SessionAction.MARK_MISSED: _t(SessionStatus.NO_SHOW, SYSTEM),
        SessionAction.START: _t(SessionStatus.IN_PROGRESS, MENTOR, MENTEE, SYSTEM),
        SessionAction.COMPLETE: _t(SessionStatus.COMPLETED, SYSTEM),
    },
    SessionStatus.IN_PROGRESS: {
        SessionAction.COMPLETE: _t(SessionStatus.COMPLETED, SYSTEM),
    },
    SessionStatus.COMPLETED: {},
    SessionStatus.CANCELLED: {},
    SessionStatus.NO_SHOW: {
        # Sweeping an already-missed session again changes nothing.
        SessionAction.MARK_MISSED: _t(SessionStatus.NO_SHOW, SYSTEM, noop=True),
    },
}

_missing = set(SessionStatus) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"Session transition table has no entry for: {sorted(_missing)}")


def allowed_actions(status: SessionStatus, role: ActorRole) -> Dict[SessionAction, SessionStatus]:
    """Actions ``role`` may take from ``status``, mapped to their target status."""
    return {
        action: transition.target
        for action, transition in TRANSITIONS[status].items()
        if role in transition.actors and not transition.noop
    }


def resolve_transition(
    current: SessionStatus, action: SessionAction, role: ActorRole
) -> Transition:
    """
    Look up the transition for ``action`` by ``role`` from ``current``.

    Raises:
        InvalidTransitionException: If the table has no such edge or the
            role is not permitted to take it. Never mutates anything.
    """
    transition = TRANSITIONS[current].get(action)
    if transition is None:
        raise InvalidTransitionException(current.value, action.value, role.value)
    if role not in transition.actors:
        raise InvalidTransitionException(
            current.value,
            action.value,
            role.value,
            message=f"A {role.value} cannot {action.value} a session that is {current.value}",
        )
    return transition


def actor_role(session: MentorshipSession, user_id: str, action: SessionAction) -> ActorRole:
    """
    The role ``user_id`` plays in ``session``.

    Raises:
        InvalidTransitionException: If the user is neither mentor nor mentee
    """
    if user_id == session.mentor_id:
        return MENTOR
    if user_id == session.mentee_id:
        return MENTEE
    raise InvalidTransitionException(
        session.status,
        action.value,
        None,
        message="Only the session's mentor or mentee can change it",
    )


def action_for_target(
    current: SessionStatus, target: SessionStatus, role: ActorRole
) -> SessionAction:
    """
    Translate a requested target status into the action that reaches it.

    Moving to ``cancelled`` is a decline when answering a request or a
    reschedule proposal, and a cancel otherwise.

    Raises:
        InvalidTransitionException: If no action reaches ``target``
    """
    if target == SessionStatus.CANCELLED:
        declining = current == SessionStatus.RESCHEDULED or (
            current == SessionStatus.SCHEDULED and role == MENTOR
        )
        return SessionAction.DECLINE if declining else SessionAction.CANCEL

    by_target = {
        SessionStatus.CONFIRMED: SessionAction.ACCEPT,
        SessionStatus.RESCHEDULED: SessionAction.RESCHEDULE,
        SessionStatus.IN_PROGRESS: SessionAction.START,
        SessionStatus.COMPLETED: SessionAction.COMPLETE,
        SessionStatus.NO_SHOW: SessionAction.MARK_MISSED,
    }
    action = by_target.get(target)
    if action is None:
        raise InvalidTransitionException(
            current.value,
            f"move to {target.value}",
            role.value,
            message=f"No action moves a session to {target.value}",
        )
    return action
