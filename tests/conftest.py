import pytest

from app.database import Database, create_engine
from app.models.todo import get_metadata
from app.repositories.todo_repo import TodoRepository
from app.security import hash_password

USERS = {"alice": "wonderland", "bob": "builder"}


async def _make_database(path, multi_tenant: bool) -> Database:
    engine = create_engine(f"sqlite+aiosqlite:///{path}")
    # recreate tables
    async with engine.begin() as conn:
        await conn.run_sync(get_metadata(multi_tenant).create_all)
    return Database(engine)


@pytest.fixture
async def single_db(tmp_path):
    db = await _make_database(tmp_path / "single.db", multi_tenant=False)
    yield db
    await db.dispose()


@pytest.fixture
async def multi_db(tmp_path):
    db = await _make_database(tmp_path / "multi.db", multi_tenant=True)
    for username, password in USERS.items():
        await db.query(
            "INSERT INTO users (username, password) VALUES (:username, :password)",
            username=username,
            password=hash_password(password, rounds=4),
        )
    yield db
    await db.dispose()


@pytest.fixture
def repo(single_db):
    return TodoRepository(single_db, multi_tenant=False)


@pytest.fixture
def alice_repo(multi_db):
    return TodoRepository(multi_db, username="alice", multi_tenant=True)


@pytest.fixture
def bob_repo(multi_db):
    return TodoRepository(multi_db, username="bob", multi_tenant=True)


async def _create_list(repository: TodoRepository, title: str, *todos: str) -> int:
    assert await repository.create_todo_list(title)
    result = await repository.db.query(
        "SELECT id FROM todolists WHERE title = :title ORDER BY id DESC",
        title=title,
    )
    todo_list_id = result.rows[0]["id"]
    for todo_title in todos:
        assert await repository.add_todo(todo_list_id, todo_title)
    return todo_list_id


@pytest.fixture
def make_list():
    """Create a list with the given todos and return its id."""
    return _create_list
