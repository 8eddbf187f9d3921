import asyncio
import logging
import re
from typing import Optional

from sqlalchemy import Table, delete, func, insert, literal, not_, select, true, update

from app import config
from app.database import Database
from app.models.todo import get_metadata
from app.schemas.todo import Todo, TodoList
from app.security import verify_password

repository_logger = logging.getLogger("todo.repository")

# PostgreSQL, MySQL and SQLite wordings of a duplicate key error
UNIQUE_VIOLATION_PATTERN = re.compile(
    r"duplicate key value violates unique constraint"
    r"|Duplicate entry .* for key"
    r"|UNIQUE constraint failed",
)


class TodoRepository:
    """
    Data access for todo lists and their todos.

    One instance is built per request and holds only the caller's
    username. With `multi_tenant` set every statement is additionally
    filtered by that username; otherwise nothing is scoped.
    """

    def __init__(
        self,
        db: Database,
        username: Optional[str] = None,
        multi_tenant: Optional[bool] = None,
    ) -> None:
        self.db = db
        self.username = username
        self.multi_tenant = config.MULTI_TENANT if multi_tenant is None else multi_tenant
        tables = get_metadata(self.multi_tenant).tables
        self.todolists: Table = tables["todolists"]
        self.todos: Table = tables["todos"]

    def _owner(self) -> str:
        if self.username is None:
            raise ValueError("A multi-tenant repository needs a username")
        return self.username

    def _owned(self, table: Table, *criteria) -> tuple:
        if self.multi_tenant:
            criteria += (table.c.username == self._owner(),)
        return criteria

    def _owner_values(self) -> dict:
        return {"username": self._owner()} if self.multi_tenant else {}

    # ------------------------ Predicates ------------------------

    @staticmethod
    def is_done_todo_list(todo_list: TodoList) -> bool:
        return len(todo_list.todos) > 0 and all(todo.done for todo in todo_list.todos)

    @staticmethod
    def has_undone_todos(todo_list: TodoList) -> bool:
        return any(not todo.done for todo in todo_list.todos)

    @staticmethod
    def is_unique_constraint_violation(error: BaseException) -> bool:
        # the driver's message only; str() of a DBAPIError also carries the bound parameters
        message = str(getattr(error, "orig", None) or error)
        return UNIQUE_VIOLATION_PATTERN.search(message) is not None

    def _partition_todo_lists(self, todo_lists: list[TodoList]) -> list[TodoList]:
        undone = []
        done = []
        for todo_list in todo_lists:
            if self.is_done_todo_list(todo_list):
                done.append(todo_list)
            else:
                undone.append(todo_list)
        return undone + done

    # ------------------------ Read ------------------------

    def _find_todos(self, todo_list_id: int):
        return select(self.todos).where(
            *self._owned(self.todos, self.todos.c.todolist_id == todo_list_id),
        )

    async def sorted_todo_lists(self) -> list[TodoList]:
        """
        All todo lists with their todos, undone lists first, each group
        ordered by case-insensitive title. Todos are left unsorted.
        """
        result = await self.db.query(
            select(self.todolists)
            .where(*self._owned(self.todolists))
            .order_by(func.lower(self.todolists.c.title).asc()),
        )
        todo_lists = []
        for row in result.rows:
            todos = await self.db.query(self._find_todos(row["id"]))
            todo_lists.append(TodoList.model_validate({**row, "todos": todos.rows}))
        return self._partition_todo_lists(todo_lists)

    async def load_todo_list(self, todo_list_id: int) -> Optional[TodoList]:
        """The todo list with its (unsorted) todos, or None if it does not exist."""
        find_todo_list = select(self.todolists).where(
            *self._owned(self.todolists, self.todolists.c.id == todo_list_id),
        )
        result_todo_list, result_todos = await asyncio.gather(
            self.db.query(find_todo_list),
            self.db.query(self._find_todos(todo_list_id)),
        )
        if not result_todo_list.rows:
            return None
        return TodoList.model_validate({**result_todo_list.rows[0], "todos": result_todos.rows})

    async def sorted_todos(self, todo_list: TodoList) -> list[Todo]:
        """Todos of the list, undone first, then by case-insensitive title."""
        result = await self.db.query(
            self._find_todos(todo_list.id).order_by(
                self.todos.c.done.asc(),
                func.lower(self.todos.c.title).asc(),
            ),
        )
        return [Todo.model_validate(row) for row in result.rows]

    async def load_todo(self, todo_list_id: int, todo_id: int) -> Optional[Todo]:
        result = await self.db.query(
            self._find_todos(todo_list_id).where(self.todos.c.id == todo_id),
        )
        if not result.rows:
            return None
        return Todo.model_validate(result.rows[0])

    async def exists_todo_list_title(self, title: str) -> bool:
        result = await self.db.query(
            select(self.todolists.c.id).where(
                *self._owned(self.todolists, self.todolists.c.title == title),
            ),
        )
        return result.rowcount > 0

    # ------------------------ Write ------------------------

    def _todo_criteria(self, todo_list_id: int, todo_id: Optional[int] = None) -> tuple:
        criteria = (self.todos.c.todolist_id == todo_list_id,)
        if todo_id is not None:
            criteria += (self.todos.c.id == todo_id,)
        return self._owned(self.todos, *criteria)

    async def toggle_done_todo(self, todo_list_id: int, todo_id: int) -> bool:
        result = await self.db.query(
            update(self.todos)
            .where(*self._todo_criteria(todo_list_id, todo_id))
            .values(done=not_(self.todos.c.done)),
        )
        if result.rowcount > 0:
            repository_logger.info("Toggled todo %s in list %s", todo_id, todo_list_id)
        return result.rowcount > 0

    async def delete_todo(self, todo_list_id: int, todo_id: int) -> bool:
        result = await self.db.query(
            delete(self.todos).where(*self._todo_criteria(todo_list_id, todo_id)),
        )
        if result.rowcount > 0:
            repository_logger.info("Deleted todo %s from list %s", todo_id, todo_list_id)
        return result.rowcount > 0

    async def complete_all_todos(self, todo_list_id: int) -> bool:
        """Mark every todo of the list done. False when the list has no todos."""
        result = await self.db.query(
            update(self.todos)
            .where(*self._todo_criteria(todo_list_id))
            .values(done=true()),
        )
        if result.rowcount > 0:
            repository_logger.info("Completed %d todo(s) in list %s", result.rowcount, todo_list_id)
        return result.rowcount > 0

    async def add_todo(self, todo_list_id: int, title: str) -> bool:
        # Selecting from the owning list turns a missing (or foreign) list into zero rows
        targets = ["todolist_id", "title"]
        columns = [self.todolists.c.id, literal(title, self.todos.c.title.type)]
        if self.multi_tenant:
            targets.append("username")
            columns.append(self.todolists.c.username)
        owning_list = select(*columns).where(
            *self._owned(self.todolists, self.todolists.c.id == todo_list_id),
        )
        result = await self.db.query(
            insert(self.todos).from_select(targets, owning_list),
        )
        if result.rowcount > 0:
            repository_logger.info("Added todo %r to list %s", title, todo_list_id)
        return result.rowcount > 0

    async def set_todo_list_title(self, todo_list_id: int, title: str) -> bool:
        result = await self.db.query(
            update(self.todolists)
            .where(*self._owned(self.todolists, self.todolists.c.id == todo_list_id))
            .values(title=title),
        )
        if result.rowcount > 0:
            repository_logger.info("Renamed todo list %s to %r", todo_list_id, title)
        return result.rowcount > 0

    async def delete_todo_list(self, todo_list_id: int) -> bool:
        result = await self.db.query(
            delete(self.todolists).where(
                *self._owned(self.todolists, self.todolists.c.id == todo_list_id),
            ),
        )
        if result.rowcount > 0:
            repository_logger.info("Deleted todo list %s", todo_list_id)
        return result.rowcount > 0

    async def create_todo_list(self, title: str) -> bool:
        """
        Insert a new todo list. A duplicate title raises the database's
        IntegrityError; see `is_unique_constraint_violation`.
        """
        result = await self.db.query(
            insert(self.todolists).values(title=title, **self._owner_values()),
        )
        if result.rowcount > 0:
            repository_logger.info("Created todo list %r", title)
        return result.rowcount > 0

    # ------------------------ Auth ------------------------

    async def authenticate(self, username: str, password: str) -> bool:
        if not self.multi_tenant:
            raise ValueError("authenticate() is only available on a multi-tenant repository")
        users = get_metadata(True).tables["users"]
        result = await self.db.query(
            select(users.c.password).where(users.c.username == username),
        )
        if not result.rows:
            repository_logger.info("Authentication failed: unknown user %r", username)
            return False
        authenticated = verify_password(password, result.rows[0]["password"])
        if not authenticated:
            repository_logger.info("Authentication failed: wrong password for %r", username)
        return authenticated
