# services/exam_management/engine/assignments.py
"""
Teacher -> subject -> stream assignment lookups.

An assignment row is the only thing that lets a teacher touch a subject;
holding the teacher role is never enough on its own.
"""

import enum
import uuid
from collections import defaultdict
from typing import Iterable, Set, Union

from services.exam_management.engine.errors import UnknownCapability
from services.exam_management.engine.records import AssignmentRow


class Capability(str, enum.Enum):
    ENTER_RESULTS = "enter_results"
    VIEW_ANALYTICS = "view_analytics"

    @classmethod
    def parse(cls, value: Union["Capability", str]) -> "Capability":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownCapability(value) from None


def _grants(row: AssignmentRow, capability: Capability) -> bool:
    if capability is Capability.ENTER_RESULTS:
        return row.can_enter_results
    return row.can_view_analytics


class AssignmentRegistry:
    """Read-only view over a set of assignment rows."""

    def __init__(self, rows: Iterable[AssignmentRow] = ()):
        self._rows = tuple(rows)
        self._by_teacher = defaultdict(list)
        for row in self._rows:
            self._by_teacher[row.teacher_id].append(row)

    def __len__(self):
        return len(self._rows)

    def rows_for(self, teacher_id: uuid.UUID):
        return tuple(self._by_teacher.get(teacher_id, ()))

    def has_capability(self, teacher_id, subject_id, stream_id, capability) -> bool:
        capability = Capability.parse(capability)
        return any(
            row.subject_id == subject_id and row.stream_id == stream_id and _grants(row, capability)
            for row in self.rows_for(teacher_id)
        )

    def has_capability_in_any_stream(self, teacher_id, subject_id, capability) -> bool:
        capability = Capability.parse(capability)
        return any(
            row.subject_id == subject_id and _grants(row, capability)
            for row in self.rows_for(teacher_id)
        )

    def has_any_assignment(self, teacher_id, subject_id) -> bool:
        return any(row.subject_id == subject_id for row in self.rows_for(teacher_id))

    def streams_for(self, teacher_id) -> Set[uuid.UUID]:
        return {row.stream_id for row in self.rows_for(teacher_id)}

    def streams_for_subject(self, teacher_id, subject_id, capability=None) -> Set[uuid.UUID]:
        if capability is not None:
            capability = Capability.parse(capability)
        return {
            row.stream_id
            for row in self.rows_for(teacher_id)
            if row.subject_id == subject_id and (capability is None or _grants(row, capability))
        }

    def subjects_for(self, teacher_id, only_enterable: bool = False) -> Set[uuid.UUID]:
        return {
            row.subject_id
            for row in self.rows_for(teacher_id)
            if row.can_enter_results or not only_enterable
        }
