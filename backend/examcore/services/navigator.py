"""
Exam Session Engine - Section Navigator
Ordered traversal of sections and the active question pointer.
"""
from collections.abc import Callable
from typing import Optional

from examcore.schemas.exam import Section
from examcore.services.errors import SectionExpired
from examcore.services.gate import SessionGate
from examcore.services.palette import QuestionPalette
from examcore.services.registry import QuestionRegistry


class SectionNavigator:
    """
    Owns the active question pointer.

    Moving to a question visits it in the palette. Moving never saves the
    answer currently on screen; only an explicit answer action does.
    Sections reported by ``is_locked`` (time allowance used up) are skipped
    when stepping and rejected when jumping.
    """

    def __init__(
        self,
        registry: QuestionRegistry,
        palette: QuestionPalette,
        gate: SessionGate,
        is_locked: Optional[Callable[[str], bool]] = None,
    ):
        self.registry = registry
        self.palette = palette
        self.gate = gate
        self._is_locked = is_locked or (lambda section_id: False)
        self._active: str = registry.ordered_ids[0]

    def active_question(self) -> str:
        return self._active

    def current_section(self) -> Section:
        return self.registry.section_of(self._active)

    def is_available(self, question_id: str) -> bool:
        return not self._is_locked(self.registry.section_of(question_id).section_id)

    def go_to(self, question_id: str) -> str:
        self.gate.ensure_open()
        section = self.registry.section_of(question_id)
        if self._is_locked(section.section_id):
            raise SectionExpired(section.section_id)
        self.palette.visit(question_id)
        self._active = question_id
        return self._active

    def next_question(self) -> str:
        """Step forward across section boundaries; a no-op at the end of the test."""
        self.gate.ensure_open()
        ids = self.registry.ordered_ids
        for question_id in ids[self.registry.index_of(self._active) + 1:]:
            if self.is_available(question_id):
                return self.go_to(question_id)
        return self._active

    def previous_question(self) -> str:
        """Step backward; a no-op on the first question."""
        self.gate.ensure_open()
        ids = self.registry.ordered_ids
        for question_id in reversed(ids[:self.registry.index_of(self._active)]):
            if self.is_available(question_id):
                return self.go_to(question_id)
        return self._active

    def enter_section(self, section_id: str) -> str:
        """Jump to the first question of a section."""
        section = self.registry.sections[self.registry.section_index(section_id)]
        return self.go_to(section.question_ids[0])

    def next_open_section(self) -> Optional[Section]:
        """First section after the current one that is still open."""
        index = self.registry.section_index(self.current_section().section_id)
        for section in self.registry.sections[index + 1:]:
            if not self._is_locked(section.section_id):
                return section
        return None

    def restore(self, question_id: str) -> None:
        """Point at a question without emitting a visit (draft rehydration)."""
        self.registry.get(question_id)
        self._active = question_id
