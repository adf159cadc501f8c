"""Repository for category storage and retrieval."""
import logging
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from notesync.config import config
from notesync.exceptions import CategoryNotFoundError, ErrorCode, ValidationError
from notesync.models.db_models import DBCategory
from notesync.models.schema import Category, CategoryUpdate, utc_now
from notesync.observability import traced
from notesync.storage.base import UserScopedRepository

logger = logging.getLogger(__name__)


def db_category_to_model(db_category: DBCategory) -> Category:
    """Convert a DBCategory row to a domain Category."""
    return Category(
        id=db_category.id,
        name=db_category.name,
        color=db_category.color,
        parent_id=db_category.parent_id,
    )


def resolve_category(
    session: Session, user_id: str, name: Optional[str]
) -> Optional[DBCategory]:
    """Find the user's category called exactly ``name``.

    Names are expected but not enforced to be unique; with duplicates the
    oldest row wins and a warning is logged.
    """
    if not name:
        return None
    rows = (
        session.execute(
            select(DBCategory)
            .where(DBCategory.user_id == user_id, DBCategory.name == name)
            .order_by(DBCategory.created_at, DBCategory.id)
        )
        .scalars()
        .all()
    )
    if not rows:
        return None
    if len(rows) > 1:
        logger.warning(
            f"{len(rows)} categories named '{name}' for user {user_id}; "
            f"using {rows[0].id}"
        )
    return rows[0]


class CategoryRepository(UserScopedRepository):
    """User-scoped CRUD for categories.

    Parent references are validated on every write: the parent must belong
    to the same user, and the resulting chain must be acyclic and no deeper
    than ``config.max_category_depth``.
    """

    @traced("categories.list")
    def list_categories(self) -> List[Category]:
        """Get all categories of the current user, ordered by name."""
        user_id = self._require_user("categories.list")
        with self._session("categories.list") as session:
            rows = session.execute(
                select(DBCategory)
                .where(DBCategory.user_id == user_id)
                .order_by(DBCategory.name)
            ).scalars()
            return [db_category_to_model(row) for row in rows]

    @traced("categories.get")
    def get_category(self, category_id: str) -> Optional[Category]:
        """Get one category, or None if the user has no such category."""
        user_id = self._require_user("categories.get")
        with self._session("categories.get") as session:
            row = self._get_row(session, user_id, category_id)
            return db_category_to_model(row) if row else None

    @traced("categories.find_by_name")
    def find_by_name(self, name: str) -> Optional[Category]:
        """Get the user's category with this exact name, if any."""
        user_id = self._require_user("categories.find_by_name")
        with self._session("categories.find_by_name") as session:
            row = resolve_category(session, user_id, name)
            return db_category_to_model(row) if row else None

    @traced("categories.create")
    def create_category(self, category: Category) -> Category:
        """Insert a category for the current user and return the stored row."""
        user_id = self._require_user("categories.create")
        with self._session("categories.create") as session:
            if category.parent_id:
                self._check_parent(session, user_id, category.id, category.parent_id)
            row = DBCategory(
                id=category.id,
                name=category.name,
                color=category.color,
                parent_id=category.parent_id,
                user_id=user_id,
            )
            session.add(row)
            session.commit()
            logger.info(f"Created category '{category.name}' ({category.id})")
            return db_category_to_model(row)

    @traced("categories.update")
    def update_category(
        self, category_id: str, update: Union[CategoryUpdate, dict]
    ) -> Category:
        """Apply a partial update to a category.

        Raises:
            CategoryNotFoundError: If the user has no such category.
            ValidationError: If the new parent is invalid.
        """
        if isinstance(update, dict):
            update = CategoryUpdate(**update)
        changes = update.changes()
        user_id = self._require_user("categories.update")
        with self._session("categories.update") as session:
            row = self._get_row(session, user_id, category_id)
            if row is None:
                raise CategoryNotFoundError(category_id)
            if changes.get("parent_id"):
                self._check_parent(session, user_id, category_id, changes["parent_id"])
            for field_name, value in changes.items():
                setattr(row, field_name, value)
            row.updated_at = utc_now()
            session.commit()
            return db_category_to_model(row)

    @traced("categories.delete")
    def delete_category(self, category_id: str) -> None:
        """Delete a category.

        Notes and child categories pointing at it are detached by the store
        (ON DELETE SET NULL); reassigning notes is the caller's job.

        Raises:
            CategoryNotFoundError: If the user has no such category.
        """
        user_id = self._require_user("categories.delete")
        with self._session("categories.delete") as session:
            row = self._get_row(session, user_id, category_id)
            if row is None:
                raise CategoryNotFoundError(category_id)
            session.delete(row)
            session.commit()
            logger.info(f"Deleted category {category_id}")

    @staticmethod
    def _get_row(
        session: Session, user_id: str, category_id: str
    ) -> Optional[DBCategory]:
        return session.execute(
            select(DBCategory).where(
                DBCategory.id == category_id, DBCategory.user_id == user_id
            )
        ).scalar_one_or_none()

    def _check_parent(
        self, session: Session, user_id: str, category_id: str, parent_id: str
    ) -> None:
        """Reject a parent that is missing, creates a cycle, or nests too deep."""
        if parent_id == category_id:
            raise ValidationError(
                f"Category '{category_id}' cannot be its own parent",
                field="parent_id",
                value=parent_id,
                code=ErrorCode.CATEGORY_CYCLE,
            )
        parent = self._get_row(session, user_id, parent_id)
        if parent is None:
            raise ValidationError(
                f"Parent category '{parent_id}' not found",
                field="parent_id",
                value=parent_id,
            )

        # Walk up from the parent; the category itself is level 1
        depth = 1
        visited = {category_id}
        current = parent
        while current is not None:
            if current.id in visited:
                raise ValidationError(
                    f"Setting parent to '{parent_id}' would create a circular reference",
                    field="parent_id",
                    value=parent_id,
                    code=ErrorCode.CATEGORY_CYCLE,
                )
            visited.add(current.id)
            depth += 1
            if depth > config.max_category_depth:
                raise ValidationError(
                    f"Category hierarchy deeper than {config.max_category_depth} levels",
                    field="parent_id",
                    value=parent_id,
                    code=ErrorCode.CATEGORY_TOO_DEEP,
                )
            current = (
                self._get_row(session, user_id, current.parent_id)
                if current.parent_id
                else None
            )
