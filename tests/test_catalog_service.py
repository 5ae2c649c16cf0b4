"""Tests for category tree walks and exchange pricing."""

import pytest

from edumart.core.errors import SemesterNotFound
from edumart.models import Material
from edumart.services import catalog_service
from edumart.services.catalog_service import CategoryNode, CategoryTree, SemesterCostPolicy


def _node(node_id, parent_id=None, level=1, grade=None):
    return CategoryNode(id=node_id, parent_id=parent_id, level=level, grade=grade, name=f"c{node_id}", subject=None)


class TestCategoryTree:
    """Tests for the in-memory category arena."""

    def test_descendants_include_whole_subtree(self, session, catalog) -> None:
        tree = CategoryTree.load(session)

        found = tree.descendants(catalog.grade1.id)

        assert found[0] == catalog.grade1.id
        assert set(found) == {
            catalog.grade1.id,
            catalog.g1_autumn.id,
            catalog.g1_spring.id,
            catalog.math.id,
            catalog.chinese.id,
            catalog.english.id,
        }
        assert catalog.g1_autumn.id not in tree.descendants(catalog.g1_autumn.id, include_self=False)

    def test_deep_chain_does_not_recurse(self) -> None:
        depth = 5000
        tree = CategoryTree(_node(i, parent_id=i - 1 if i > 1 else None, level=i, grade=3 if i == 1 else None)
                            for i in range(1, depth + 1))

        assert len(tree.descendants(1)) == depth
        assert len(tree.ancestors(depth)) == depth
        assert tree.grade_of(depth) == 3
        assert tree.semester_of(depth, 2) == 2

    def test_parent_cycle_terminates(self) -> None:
        tree = CategoryTree([_node(1, parent_id=2), _node(2, parent_id=1, level=2)])

        assert [node.id for node in tree.ancestors(1)] == [1, 2]
        assert set(tree.descendants(1)) == {1, 2}

    def test_semester_and_grade_lookup(self, session, catalog) -> None:
        tree = CategoryTree.load(session)

        assert tree.semester_of(catalog.math.id, 2) == catalog.g1_autumn.id
        assert tree.semester_of(catalog.grade1.id, 2) is None
        assert tree.grade_of(catalog.physics.id) == 7
        assert tree.child_on_path(catalog.g1_autumn.id, catalog.chinese.id) == catalog.chinese.id
        assert tree.child_on_path(catalog.g1_spring.id, catalog.chinese.id) is None

    def test_material_grade_prefers_material_column(self, session, catalog) -> None:
        tree = CategoryTree.load(session)
        material = Material(title="Override", category_id=catalog.math.id, grade=8)

        assert catalog_service.material_grade(tree, material) == 8
        assert catalog_service.material_grade(tree, catalog.m.math_workbook) == 1

    def test_require_semester_rejects_other_levels(self, session, catalog) -> None:
        tree = CategoryTree.load(session)

        assert catalog_service.require_semester(tree, catalog.g7_autumn.id).id == catalog.g7_autumn.id
        with pytest.raises(SemesterNotFound):
            catalog_service.require_semester(tree, catalog.grade1.id)
        with pytest.raises(SemesterNotFound):
            catalog_service.require_semester(tree, 9999)


class TestSemesterCostPolicy:
    def test_multi_subject_semester_costs_more(self, session, catalog) -> None:
        policy = SemesterCostPolicy(session)

        assert policy(catalog.g1_autumn.id) == 10
        assert policy(catalog.g1_spring.id) == 5
        assert policy(catalog.g7_autumn.id) == 5

    def test_unpublished_materials_do_not_count(self, session, catalog) -> None:
        catalog.m.chinese_reader.status = "draft"
        session.commit()

        assert SemesterCostPolicy(session)(catalog.g1_autumn.id) == 5

    def test_materials_on_the_semester_group_by_subject(self, session, catalog) -> None:
        session.add_all([
            Material(title="Spring art", category_id=catalog.g1_spring.id, subject="art"),
            Material(title="Spring music", category_id=catalog.g1_spring.id, subject="music"),
        ])
        session.commit()
        tree = CategoryTree.load(session)
        materials = catalog_service.semester_materials(session, tree, catalog.g1_spring.id)

        assert catalog_service.subject_group_count(tree, catalog.g1_spring.id, materials) == 3


class TestAvailableSemesters:
    def test_lists_priced_semesters_with_materials(self, session, catalog) -> None:
        offers = {offer.semester_id: offer for offer in catalog_service.available_semesters(session)}

        assert set(offers) == {catalog.g1_autumn.id, catalog.g1_spring.id, catalog.g7_autumn.id}
        assert offers[catalog.g1_autumn.id].materials_count == 4
        assert offers[catalog.g1_autumn.id].points_required == 10
        assert offers[catalog.g1_spring.id].points_required == 5

    def test_semester_without_published_materials_is_hidden(self, session, catalog) -> None:
        catalog.m.physics_notes.status = "archived"
        session.commit()

        offers = catalog_service.available_semesters(session)

        assert catalog.g7_autumn.id not in {offer.semester_id for offer in offers}
