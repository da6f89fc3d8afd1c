"""
Visibility Resolver Tests

Tests:
- Determinism and order independence
- Homeroom assignments grant the whole catalog
- Subject assignments grant exactly one subject in one section
- Program (NIOS/NCLP) assignments scope by group
- Malformed assignments raise, stale ones are caught by the caller check
"""
import itertools
import pytest

from portal.core.errors import InvalidAssignmentConfiguration, StaleVisibilityInput
from portal.models.records import (
    Assignment, AssignmentType, ClassDocument, StudentProfile, GENERAL_SUBJECTS, PROGRAM_SUBJECTS,
    SECTION_SCOPED_TYPES, GROUP_SCOPED_TYPES,
)
from portal.services.assignment_service import (
    VisibilityTarget, resolve_visibility, filter_visible, ensure_assignments_current,
    validate_assignment,
)


def assignment(id: str, type: str, class_id: str = "10", **fields) -> Assignment:
    return Assignment(id=id, type=type, class_id=class_id, **fields)


def student(id: str, class_id: str = "10", section_id=None, group_id=None) -> StudentProfile:
    return StudentProfile(
        id=id, auth_uid=f"auth-{id}", name=f"Student {id}", admission_number=id,
        class_id=class_id, section_id=section_id, group_id=group_id,
    )


class TestDeterminism:

    def test_same_input_same_result(self):
        assignments = [
            assignment("a1", "subject_teacher", section_id="A", subject_id="Maths"),
            assignment("a2", "subject_teacher", section_id="A", subject_id="Science"),
        ]
        target = VisibilityTarget(class_id="10", section_id="A")

        assert resolve_visibility(assignments, target) == resolve_visibility(assignments, target)

    def test_assignment_order_does_not_matter(self):
        assignments = [
            assignment("a1", "subject_teacher", section_id="A", subject_id="Maths"),
            assignment("a2", "mother_teacher", section_id="B"),
            assignment("a3", "subject_teacher", subject_id="Hindi"),
        ]
        target = VisibilityTarget(class_id="10", section_id="A")

        results = {
            resolve_visibility(list(order), target)
            for order in itertools.permutations(assignments)
        }
        assert len(results) == 1
        result = results.pop()
        assert result.matched_assignment_ids == ("a1", "a3")
        assert result.subjects_in_scope == frozenset({"Maths", "Hindi"})

    def test_dicts_and_models_resolve_alike(self):
        model = assignment("a1", "subject_teacher", section_id="A", subject_id="Maths")
        target = VisibilityTarget(class_id="10", section_id="A")

        assert resolve_visibility([model.to_document()], target) == resolve_visibility([model], target)


class TestHomeroomBreadth:

    @pytest.mark.parametrize("type", ["class_teacher", "mother_teacher"])
    @pytest.mark.parametrize("section", [None, "A", "B", "Z"])
    def test_homeroom_without_section_sees_whole_class(self, type, section):
        result = resolve_visibility(
            [assignment("h", type)], VisibilityTarget(class_id="10", section_id=section)
        )

        assert result.visible
        assert result.subjects_in_scope == frozenset(GENERAL_SUBJECTS)

    def test_homeroom_with_section_is_narrowed(self):
        assignments = [assignment("h", "class_teacher", section_id="A")]

        assert resolve_visibility(assignments, VisibilityTarget(class_id="10", section_id="A")).visible
        assert not resolve_visibility(assignments, VisibilityTarget(class_id="10", section_id="B")).visible

    def test_custom_catalog(self):
        result = resolve_visibility(
            [assignment("h", "class_teacher")],
            VisibilityTarget(class_id="10"),
            subject_catalog=("Art", "Music"),
        )

        assert result.subjects_in_scope == frozenset({"Art", "Music"})


class TestSubjectNarrowness:

    def test_subject_teacher_gets_exactly_one_subject(self):
        result = resolve_visibility(
            [assignment("s", "subject_teacher", section_id="A", subject_id="Maths")],
            VisibilityTarget(class_id="10", section_id="A"),
        )

        assert result.visible
        assert result.subjects_in_scope == frozenset({"Maths"})

    def test_other_section_not_visible(self):
        result = resolve_visibility(
            [{"type": "subject_teacher", "classId": "10", "sectionId": "A", "subjectId": "Maths"}],
            VisibilityTarget(class_id="10", section_id="B"),
        )

        assert result.visible is False
        assert result.subjects_in_scope == frozenset()

    def test_other_class_not_visible(self):
        result = resolve_visibility(
            [assignment("s", "subject_teacher", section_id="A", subject_id="Maths")],
            VisibilityTarget(class_id="9", section_id="A"),
        )

        assert not result.visible

    def test_subjects_union_across_matches(self):
        result = resolve_visibility(
            [
                assignment("s1", "subject_teacher", section_id="A", subject_id="Maths"),
                assignment("s2", "subject_teacher", section_id="A", subject_id="English"),
                assignment("s3", "subject_teacher", section_id="B", subject_id="Kannada"),
            ],
            VisibilityTarget(class_id="10", section_id="A"),
        )

        assert result.subjects_in_scope == frozenset({"Maths", "English"})
        assert result.matched_assignment_ids == ("s1", "s2")


class TestProgramGroups:

    @pytest.mark.parametrize("type", ["nios_teacher", "nclp_teacher"])
    def test_program_teacher_gets_program_subjects(self, type):
        result = resolve_visibility(
            [assignment("p", type, group_id="G1")],
            VisibilityTarget(class_id="10", group_id="G1"),
        )

        assert result.visible
        assert result.subjects_in_scope == frozenset(PROGRAM_SUBJECTS[type])

    def test_program_teacher_scoped_by_group_not_section(self):
        assignments = [assignment("p", "nios_teacher", group_id="G1")]

        assert not resolve_visibility(assignments, VisibilityTarget(class_id="10", group_id="G2")).visible
        # Section is irrelevant to group-scoped assignments
        assert resolve_visibility(
            assignments, VisibilityTarget(class_id="10", section_id="A", group_id="G1")
        ).visible

    def test_program_teacher_without_group_sees_class(self):
        result = resolve_visibility(
            [assignment("p", "nclp_teacher")], VisibilityTarget(class_id="10", group_id="G7")
        )

        assert result.visible

    def test_every_type_scoped_by_section_or_group(self):
        assert SECTION_SCOPED_TYPES | GROUP_SCOPED_TYPES == {t.value for t in AssignmentType}
        assert not SECTION_SCOPED_TYPES & GROUP_SCOPED_TYPES


class TestEdgeCases:

    def test_zero_assignments_not_visible(self):
        result = resolve_visibility([], VisibilityTarget(class_id="10"))

        assert result.visible is False
        assert result.matched_assignment_ids == ()

    def test_subject_teacher_without_subject_is_malformed(self):
        with pytest.raises(InvalidAssignmentConfiguration):
            resolve_visibility(
                [{"type": "subject_teacher", "classId": "10"}], VisibilityTarget(class_id="10")
            )

    def test_unknown_subject_is_malformed(self):
        with pytest.raises(InvalidAssignmentConfiguration):
            validate_assignment({"type": "subject_teacher", "classId": "10", "subjectId": "Latin"})

    def test_program_subject_outside_its_table_is_malformed(self):
        with pytest.raises(InvalidAssignmentConfiguration):
            validate_assignment({"type": "nclp_teacher", "classId": "10", "subjectId": "Maths"})

    def test_unknown_type_is_malformed(self):
        with pytest.raises(InvalidAssignmentConfiguration):
            validate_assignment({"type": "head_teacher", "classId": "10"})

    def test_missing_class_is_malformed(self):
        with pytest.raises(InvalidAssignmentConfiguration):
            validate_assignment({"type": "class_teacher", "classId": ""})


class TestFilterVisible:

    def test_keeps_visible_students_with_scope(self):
        profiles = [
            student("s1", section_id="A"),
            student("s2", section_id="B"),
            student("s3", class_id="9", section_id="A"),
        ]
        visible = filter_visible(
            [assignment("s", "subject_teacher", section_id="A", subject_id="Maths")], profiles
        )

        assert [p.id for p, _ in visible] == ["s1"]
        assert visible[0][1].subjects_in_scope == frozenset({"Maths"})

    def test_no_assignments_no_students(self):
        assert filter_visible([], [student("s1")]) == []


class TestStaleInput:

    def registry(self):
        return [ClassDocument(id="10", name="Class 10", sections=["A", "B"], groups=["G1"])]

    def test_current_assignments_pass(self):
        ensure_assignments_current(
            [
                assignment("a", "class_teacher", section_id="A"),
                assignment("b", "nios_teacher", group_id="G1"),
            ],
            self.registry(),
        )

    def test_unknown_class_is_stale(self):
        with pytest.raises(StaleVisibilityInput):
            ensure_assignments_current([assignment("a", "class_teacher", class_id="11")], self.registry())

    def test_removed_section_is_stale(self):
        with pytest.raises(StaleVisibilityInput):
            ensure_assignments_current([assignment("a", "class_teacher", section_id="C")], self.registry())

    def test_removed_group_is_stale(self):
        with pytest.raises(StaleVisibilityInput):
            ensure_assignments_current([assignment("a", "nios_teacher", group_id="G9")], self.registry())

    def test_resolver_itself_ignores_registry(self):
        result = resolve_visibility(
            [assignment("a", "class_teacher", class_id="11")], VisibilityTarget(class_id="11")
        )

        assert result.visible
