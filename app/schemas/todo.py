from typing import Optional

from pydantic import BaseModel


class Todo(BaseModel):
    id: int
    todolist_id: int
    title: str
    done: bool = False
    username: Optional[str] = None


class TodoList(BaseModel):
    id: int
    title: str
    username: Optional[str] = None
    todos: list[Todo] = []
