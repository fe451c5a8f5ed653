# achievement_api/services/authorization.py
"""
Authorization kernel.

``authorize`` is a pure function over an actor, an operation and an optional
target. Phase one checks that the operation's permission is held; phase two
applies the ownership predicate for that operation when a target is given.
Callers run phase one before loading the target so that actors without the
read right never learn whether an entity exists.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from achievement_api.core.errors import Forbidden, InvalidState
from achievement_api.models.achievement import AchievementStatus


class RoleName(str, Enum):
    STUDENT = "student"
    ADVISOR = "advisor"
    ADMIN = "admin"


ROLE_ALIASES = {
    "student": RoleName.STUDENT,
    "mahasiswa": RoleName.STUDENT,
    "pelapor": RoleName.STUDENT,
    "advisor": RoleName.ADVISOR,
    "lecturer": RoleName.ADVISOR,
    "dosen wali": RoleName.ADVISOR,
    "verifikator": RoleName.ADVISOR,
    "admin": RoleName.ADMIN,
}


def normalize_role(name: Optional[str]) -> RoleName:
    role = ROLE_ALIASES.get((name or "").strip().lower())
    if role is None:
        raise Forbidden(f"unknown role '{name}'")
    return role


class Operation(str, Enum):
    CREATE = "create"
    READ = "read"
    LIST = "list"
    LIST_BY_STUDENT = "list-by-student"
    UPDATE = "update"
    UPLOAD = "upload"
    SUBMIT = "submit"
    DELETE = "delete"
    VERIFY = "verify"
    REJECT = "reject"
    HISTORY = "history"
    LIST_STUDENTS = "list-students"
    READ_STUDENT = "read-student"
    UPDATE_ADVISOR = "update-advisor"
    LIST_ADVISORS = "list-advisors"
    READ_ADVISEES = "read-advisees"
    REPORT = "report"
    STUDENT_REPORT = "student-report"
    MANAGE_USERS = "manage-users"


PERMISSION_TABLE: Dict[Operation, str] = {
    Operation.CREATE: "achievement:create",
    Operation.READ: "achievement:read",
    Operation.LIST: "achievement:read",
    Operation.LIST_BY_STUDENT: "achievement:read",
    Operation.HISTORY: "achievement:read",
    Operation.UPDATE: "achievement:update",
    Operation.UPLOAD: "achievement:update",
    Operation.SUBMIT: "achievement:update",
    Operation.DELETE: "achievement:delete",
    Operation.VERIFY: "achievement:verify",
    Operation.REJECT: "achievement:verify",
    Operation.LIST_STUDENTS: "student:read",
    Operation.READ_STUDENT: "student:read",
    Operation.UPDATE_ADVISOR: "user:manage",
    Operation.LIST_ADVISORS: "student:read",
    Operation.READ_ADVISEES: "student:read",
    Operation.REPORT: "report:read",
    Operation.STUDENT_REPORT: "report:read",
    Operation.MANAGE_USERS: "user:manage",
}

ALL_PERMISSIONS: List[str] = sorted(set(PERMISSION_TABLE.values()))

DEFAULT_ROLE_PERMISSIONS: Dict[RoleName, List[str]] = {
    RoleName.STUDENT: [
        "achievement:create",
        "achievement:read",
        "achievement:update",
        "achievement:delete",
        "student:read",
        "report:read",
    ],
    RoleName.ADVISOR: [
        "achievement:read",
        "achievement:verify",
        "student:read",
        "report:read",
    ],
    RoleName.ADMIN: ALL_PERMISSIONS,
}


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: RoleName
    permissions: FrozenSet[str] = frozenset()
    student_profile_id: Optional[str] = None
    advisor_profile_id: Optional[str] = None
    advisee_ids: FrozenSet[str] = frozenset()

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN

    def owns(self, student_id: Optional[str]) -> bool:
        return bool(self.student_profile_id) and self.student_profile_id == student_id

    def advises(self, student_id: Optional[str]) -> bool:
        return bool(self.advisor_profile_id) and student_id in self.advisee_ids


@dataclass(frozen=True)
class Target:
    student_id: Optional[str] = None
    status: Optional[AchievementStatus] = None
    advisor_id: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = field(default="")
    # denied only because the target is in the wrong status
    status_mismatch: bool = False

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def _deny(reason: str, status_mismatch: bool = False) -> Decision:
    return Decision(False, reason, status_mismatch)


def has_permission(actor: Actor, op: Operation) -> bool:
    if actor.is_admin:
        return True
    return PERMISSION_TABLE[op] in actor.permissions


def _self_or_advises(actor: Actor, target: Target) -> Decision:
    # ownership is evaluated before the advisor relationship
    if actor.owns(target.student_id) or actor.advises(target.student_id):
        return ALLOW
    return _deny("not the owner or advisor of this student")


def _self_in_draft(actor: Actor, target: Target) -> Decision:
    if not actor.owns(target.student_id):
        return _deny("not the owner of this achievement")
    if target.status != AchievementStatus.DRAFT:
        return _deny("achievement is no longer a draft", status_mismatch=True)
    return ALLOW


def _advises_submitted(actor: Actor, target: Target) -> Decision:
    if not actor.advises(target.student_id):
        return _deny("not the advisor of this student")
    if target.status != AchievementStatus.SUBMITTED:
        return _deny("achievement is not awaiting verification", status_mismatch=True)
    return ALLOW


def _create(actor: Actor, target: Target) -> Decision:
    if actor.role != RoleName.STUDENT:
        return _deny("only students may create achievements")
    if not actor.owns(target.student_id):
        return _deny("students may only create achievements for themselves")
    return ALLOW


def _admin_only(actor: Actor, target: Target) -> Decision:
    return _deny("admin only")


def _own_advisees(actor: Actor, target: Target) -> Decision:
    if actor.advisor_profile_id and actor.advisor_profile_id == target.advisor_id:
        return ALLOW
    return _deny("not this advisor")


PREDICATES = {
    Operation.CREATE: _create,
    Operation.READ: _self_or_advises,
    Operation.LIST_BY_STUDENT: _self_or_advises,
    Operation.HISTORY: _self_or_advises,
    Operation.READ_STUDENT: _self_or_advises,
    Operation.STUDENT_REPORT: _self_or_advises,
    Operation.UPDATE: _self_in_draft,
    Operation.UPLOAD: _self_in_draft,
    Operation.SUBMIT: _self_in_draft,
    Operation.DELETE: _self_in_draft,
    Operation.VERIFY: _advises_submitted,
    Operation.REJECT: _advises_submitted,
    Operation.UPDATE_ADVISOR: _admin_only,
    Operation.MANAGE_USERS: _admin_only,
    Operation.READ_ADVISEES: _own_advisees,
}


def authorize(actor: Actor, op: Operation, target: Optional[Target] = None) -> Decision:
    # admin holds every permission and passes every predicate
    if actor.is_admin:
        return ALLOW

    if not has_permission(actor, op):
        return _deny(f"missing permission {PERMISSION_TABLE[op]}")

    predicate = PREDICATES.get(op)
    if predicate is _admin_only:
        # no target needed to refuse
        return predicate(actor, target or Target())
    if target is None or predicate is None:
        return ALLOW
    return predicate(actor, target)


def ensure_allowed(actor: Actor, op: Operation, target: Optional[Target] = None) -> None:
    """
    Raise unless ``authorize`` allows the operation.

    Workflow transitions attempted by the rightful owner or advisor from the
    wrong status are state-machine violations, not authorization failures.
    """
    decision = authorize(actor, op, target)
    if decision:
        return
    if decision.status_mismatch and op in TRANSITION_OPERATIONS:
        raise InvalidState(decision.reason)
    raise Forbidden(decision.reason)


TRANSITION_OPERATIONS = frozenset({Operation.SUBMIT, Operation.VERIFY, Operation.REJECT})


def visible_student_ids(actor: Actor) -> Optional[FrozenSet[str]]:
    """Student profiles whose achievements the actor may list; None means all."""
    if actor.is_admin:
        return None
    ids = set(actor.advisee_ids) if actor.advisor_profile_id else set()
    if actor.student_profile_id:
        ids.add(actor.student_profile_id)
    return frozenset(ids)


def permissions_for(role: RoleName, granted: Iterable[str] = ()) -> FrozenSet[str]:
    """Permissions an actor holds: the token's list, or every permission for admin."""
    if role == RoleName.ADMIN:
        return frozenset(ALL_PERMISSIONS)
    return frozenset(granted)
