from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    ForeignKeyConstraint,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    false,
)


def build_metadata(multi_tenant: bool) -> MetaData:
    """
    Tables used by the repository.

    The single-tenant schema has globally unique list titles. The
    multi-tenant schema adds `users`, an owning `username` on every
    list and todo, and makes titles unique per username.
    """
    metadata = MetaData()

    if not multi_tenant:
        Table(
            "todolists",
            metadata,
            Column("id", Integer, primary_key=True),
            Column("title", String(100), nullable=False, unique=True),
        )
        Table(
            "todos",
            metadata,
            Column("id", Integer, primary_key=True),
            Column("title", String(100), nullable=False),
            Column("done", Boolean, nullable=False, server_default=false()),
            Column(
                "todolist_id",
                Integer,
                ForeignKey("todolists.id", ondelete="CASCADE"),
                nullable=False,
            ),
        )
        return metadata

    Table(
        "users",
        metadata,
        Column("username", String(50), primary_key=True),
        Column("password", String(100), nullable=False),
    )
    Table(
        "todolists",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("title", String(100), nullable=False),
        Column(
            "username",
            String(50),
            ForeignKey("users.username", ondelete="CASCADE"),
            nullable=False,
        ),
        UniqueConstraint("title", "username"),
        # target of the composite key on todos
        UniqueConstraint("id", "username"),
    )
    Table(
        "todos",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("title", String(100), nullable=False),
        Column("done", Boolean, nullable=False, server_default=false()),
        Column("todolist_id", Integer, nullable=False),
        Column("username", String(50), nullable=False),
        ForeignKeyConstraint(
            ["todolist_id", "username"],
            ["todolists.id", "todolists.username"],
            ondelete="CASCADE",
        ),
    )
    return metadata


single_tenant_metadata = build_metadata(multi_tenant=False)
multi_tenant_metadata = build_metadata(multi_tenant=True)


def get_metadata(multi_tenant: bool) -> MetaData:
    return multi_tenant_metadata if multi_tenant else single_tenant_metadata
