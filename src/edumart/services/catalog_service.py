"""Read-only catalog queries: category tree walks, semester lookup, exchange pricing."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import Settings, get_settings
from ..core.errors import SemesterNotFound
from ..models import Category, Material


@dataclass(frozen=True)
class CategoryNode:
    id: int
    parent_id: Optional[int]
    level: int
    grade: Optional[int]
    name: str
    subject: Optional[str]
    sort_order: int = 0


@dataclass(frozen=True)
class SemesterOffer:
    semester_id: int
    name: str
    subject: Optional[str]
    materials_count: int
    points_required: int


class CategoryTree:
    """In-memory arena of category nodes with parent and child adjacency.

    Build one per request; ancestor lookups are memoized on the instance.
    """

    def __init__(self, nodes: Iterable[CategoryNode]) -> None:
        self._nodes: Dict[int, CategoryNode] = {}
        self._children: Dict[int, List[int]] = defaultdict(list)
        for node in nodes:
            self._nodes[node.id] = node
        for node in sorted(self._nodes.values(), key=lambda n: (n.sort_order, n.id)):
            if node.parent_id is not None:
                self._children[node.parent_id].append(node.id)
        self._semester_memo: Dict[tuple, Optional[int]] = {}
        self._grade_memo: Dict[int, Optional[int]] = {}

    @classmethod
    def load(cls, session: Session) -> "CategoryTree":
        rows = session.execute(select(Category)).scalars().all()
        return cls(
            CategoryNode(
                id=row.id,
                parent_id=row.parent_id,
                level=row.level,
                grade=row.grade,
                name=row.name,
                subject=row.subject,
                sort_order=row.sort_order or 0,
            )
            for row in rows
        )

    def __contains__(self, category_id: int) -> bool:
        return category_id in self._nodes

    def get(self, category_id: int) -> Optional[CategoryNode]:
        return self._nodes.get(category_id)

    def children(self, category_id: int) -> List[int]:
        return list(self._children.get(category_id, ()))

    def ancestors(self, category_id: int) -> List[CategoryNode]:
        """Path from ``category_id`` up to its root, starting with the node itself."""

        path: List[CategoryNode] = []
        seen = set()
        current = self._nodes.get(category_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append(current)
            current = self._nodes.get(current.parent_id) if current.parent_id is not None else None
        return path

    def descendants(self, category_id: int, *, include_self: bool = True) -> List[int]:
        """Breadth-first subtree ids using an explicit queue."""

        if category_id not in self._nodes:
            return []
        found: List[int] = [category_id] if include_self else []
        seen = {category_id}
        queue = deque([category_id])
        while queue:
            for child_id in self._children.get(queue.popleft(), ()):
                if child_id in seen:
                    continue
                seen.add(child_id)
                found.append(child_id)
                queue.append(child_id)
        return found

    def semester_of(self, category_id: int, semester_level: int) -> Optional[int]:
        key = (category_id, semester_level)
        if key not in self._semester_memo:
            self._semester_memo[key] = next(
                (node.id for node in self.ancestors(category_id) if node.level == semester_level),
                None,
            )
        return self._semester_memo[key]

    def grade_of(self, category_id: int) -> Optional[int]:
        if category_id not in self._grade_memo:
            self._grade_memo[category_id] = next(
                (node.grade for node in self.ancestors(category_id) if node.grade is not None),
                None,
            )
        return self._grade_memo[category_id]

    def child_on_path(self, ancestor_id: int, category_id: int) -> Optional[int]:
        """The child of ``ancestor_id`` that leads down to ``category_id``."""

        previous = None
        for node in self.ancestors(category_id):
            if node.id == ancestor_id:
                return previous
            previous = node.id
        return None


def material_semester_id(tree: CategoryTree, material: Material, settings: Settings | None = None) -> Optional[int]:
    settings = settings or get_settings()
    return tree.semester_of(material.category_id, settings.semester_category_level)


def material_grade(tree: CategoryTree, material: Material) -> Optional[int]:
    if material.grade is not None:
        return material.grade
    return tree.grade_of(material.category_id)


def require_semester(tree: CategoryTree, semester_id: int, settings: Settings | None = None) -> CategoryNode:
    settings = settings or get_settings()
    node = tree.get(semester_id)
    if node is None or node.level != settings.semester_category_level:
        raise SemesterNotFound(semester_id)
    return node


def semester_materials(
    session: Session,
    tree: CategoryTree,
    semester_id: int,
    *,
    published_only: bool = False,
) -> Sequence[Material]:
    category_ids = tree.descendants(semester_id)
    if not category_ids:
        return []
    stmt = select(Material).where(Material.category_id.in_(category_ids)).order_by(Material.id)
    if published_only:
        stmt = stmt.where(Material.status == "published")
    return session.execute(stmt).scalars().all()


def subject_group_count(tree: CategoryTree, semester_id: int, materials: Iterable[Material]) -> int:
    """Distinct subject groups among a semester's materials.

    A material filed below the semester belongs to the semester child on its
    path; one filed directly on the semester is grouped by its subject.
    """

    groups = set()
    for material in materials:
        if material.category_id == semester_id:
            groups.add(("subject", material.subject or ""))
        else:
            groups.add(("category", tree.child_on_path(semester_id, material.category_id)))
    return len(groups)


class SemesterCostPolicy:
    """Default exchange cost function: one subject group is cheap, more cost double."""

    def __init__(self, session: Session, tree: CategoryTree | None = None, settings: Settings | None = None) -> None:
        self._session = session
        self._tree = tree or CategoryTree.load(session)
        self._settings = settings or get_settings()

    def __call__(self, semester_id: int) -> int:
        require_semester(self._tree, semester_id, self._settings)
        materials = semester_materials(self._session, self._tree, semester_id, published_only=True)
        return self.cost_for(subject_group_count(self._tree, semester_id, materials))

    def cost_for(self, group_count: int) -> int:
        if group_count > 1:
            return self._settings.multi_group_exchange_cost
        return self._settings.single_group_exchange_cost


def available_semesters(session: Session) -> List[SemesterOffer]:
    """Semesters with published materials, priced for exchange."""

    settings = get_settings()
    tree = CategoryTree.load(session)
    policy = SemesterCostPolicy(session, tree, settings)

    semesters = session.execute(
        select(Category)
        .where(Category.level == settings.semester_category_level)
        .order_by(Category.sort_order.asc(), Category.id.asc())
    ).scalars().all()

    offers = []
    for semester in semesters:
        materials = semester_materials(session, tree, semester.id, published_only=True)
        if not materials:
            continue
        offers.append(
            SemesterOffer(
                semester_id=semester.id,
                name=semester.name,
                subject=semester.subject,
                materials_count=len(materials),
                points_required=policy.cost_for(subject_group_count(tree, semester.id, materials)),
            )
        )
    return offers
