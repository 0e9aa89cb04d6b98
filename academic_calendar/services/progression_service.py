# academic_calendar/services/progression_service.py - Class level progression chain
from sqlalchemy.orm import Session
from sqlalchemy import select
from typing import Dict, List, Optional
from uuid import UUID
import logging

from academic_calendar.models.class_level import ClassLevel

logger = logging.getLogger(__name__)


class ProgressionChain:
    """
    Ordered class levels of one (school, school-type) scope as an explicit
    ``level id -> next level id`` map.
    """

    def __init__(self, levels: List[ClassLevel]):
        self.levels = levels
        self._by_id: Dict[UUID, ClassLevel] = {level.id: level for level in levels}
        self._next: Dict[UUID, Optional[UUID]] = {level.id: level.next_level_id for level in levels}

    def __len__(self) -> int:
        return len(self.levels)

    def __contains__(self, level_id) -> bool:
        return level_id in self._next

    def next_id(self, level_id: UUID) -> Optional[UUID]:
        return self._next.get(level_id)

    def next_level(self, level: ClassLevel) -> Optional[ClassLevel]:
        """
        Successor of a level, or None when it is terminal. Levels outside this
        chain (another school type) fall back to their own forward pointer.
        """
        if level.id not in self._next:
            return level.next_level
        next_id = self._next[level.id]
        if next_id is None:
            return None
        return self._by_id.get(next_id) or level.next_level

    def is_terminal(self, level: ClassLevel) -> bool:
        return self.next_level(level) is None

    def find_cycle(self) -> Optional[List[UUID]]:
        """Return the ids forming a cycle if the forward pointers loop, else None."""
        for start in self._next:
            seen: List[UUID] = []
            current: Optional[UUID] = start
            while current is not None and current in self._next:
                if current in seen:
                    return seen[seen.index(current):]
                seen.append(current)
                current = self._next[current]
        return None

    def names(self) -> List[str]:
        return [level.name for level in self.levels]


class ProgressionService:
    """Keeps the ClassLevel.next_level_id chain filled in before migrations run"""

    def __init__(self, db: Session):
        self.db = db

    def load_levels(self, school_id: UUID, school_type: Optional[str] = None) -> List[ClassLevel]:
        query = select(ClassLevel).where(ClassLevel.school_id == school_id)
        if school_type:
            query = query.where(ClassLevel.type == school_type)
        return list(self.db.execute(query.order_by(ClassLevel.level.asc())).scalars().all())

    def ensure_progression(self, school_id: UUID, school_type: Optional[str] = None) -> ProgressionChain:
        """
        Fill in missing forward pointers by level order (levels[i].next = levels[i+1]).

        Levels are only linked to levels of the same type, so an untyped call
        repairs each school type's chain separately. Existing pointers are left
        alone. The last level of each type keeps a NULL pointer and stays
        terminal. Safe to call before every migration run.
        """
        levels = self.load_levels(school_id, school_type)

        by_type: Dict[Optional[str], List[ClassLevel]] = {}
        for level in levels:
            by_type.setdefault(level.type, []).append(level)

        missing = [
            (current, following)
            for group in by_type.values()
            for current, following in zip(group, group[1:])
            if current.next_level_id is None
        ]

        if missing:
            logger.info(
                f"Setting up next level chain for {len(levels)} class levels "
                f"({len(missing)} missing links) in school {school_id}"
            )
            for current, following in missing:
                current.next_level_id = following.id
                current.next_level = following
            self.db.flush()

        chain = ProgressionChain(levels)

        cycle = chain.find_cycle()
        if cycle:
            logger.warning(
                f"Class level progression for school {school_id} loops through "
                f"{len(cycle)} levels; students in these levels will never graduate"
            )

        return chain
