"""
Example 05: Repository Pattern

This example demonstrates binding repository methods to statements with the
@select and @execute decorators. Method arguments become statement
parameters and the return annotation decides the result shape.
"""

from rowgraph import Configuration, Engine, ConnectionConfig, Param, TemplateRegistry
from rowgraph.repository import Repository, execute, select
from dataclasses import dataclass
from typing import Annotated, Optional
import tempfile
import sqlite3
from pathlib import Path


@dataclass
class User:
    """User entity"""
    id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    active: Optional[bool] = None


class UserRepository(Repository):
    """Repository for User entities"""

    namespace = "user"

    @select()
    def get_by_id(self, id: int) -> Optional[User]: ...

    @select()
    def list_active(self) -> list[User]: ...

    @select()
    def find_by_ids(self, ids: list[int]) -> list[User]: ...

    @execute()
    def create(self, user: User) -> int: ...

    @execute()
    def update_email(self, user_id: Annotated[int, Param("id")], email: str) -> int: ...

    @execute()
    def delete(self, id: int) -> int: ...


def main():
    # Set up database
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL,
            active INTEGER DEFAULT 1
        )
    """)
    conn.execute("INSERT INTO users (name, email) VALUES ('Alice', 'alice@example.com')")
    conn.execute("INSERT INTO users (name, email, active) VALUES ('Bob', 'bob@example.com', 0)")
    conn.commit()
    conn.close()

    # Set up SQL registry
    sql_dir = Path(tempfile.mkdtemp())
    user_dir = sql_dir / "user"
    user_dir.mkdir()

    (user_dir / "get_by_id.sql").write_text("SELECT * FROM users WHERE id = #{id}")
    (user_dir / "list_active.sql").write_text("SELECT * FROM users WHERE active = 1")
    (user_dir / "find_by_ids.sql").write_text(
        '<script>SELECT * FROM users WHERE id IN '
        '<foreach collection="list" item="id" open="(" separator="," close=")">#{id}</foreach></script>'
    )
    (user_dir / "create.sql").write_text(
        "INSERT INTO users (name, email, active) VALUES (#{name}, #{email}, #{active})"
    )
    (user_dir / "update_email.sql").write_text("UPDATE users SET email = #{email} WHERE id = #{id}")
    (user_dir / "delete.sql").write_text("DELETE FROM users WHERE id = #{id}")

    # Configure engine and repository
    configuration = Configuration()
    TemplateRegistry(
        sql_dir,
        configuration,
        statement_options={
            name: {"result_type": User} for name in ("user.get_by_id", "user.list_active", "user.find_by_ids")
        },
    )
    config = ConnectionConfig(driver="sqlite", database=db_path)
    engine = Engine.from_config(config, configuration)
    user_repo = UserRepository(engine)

    print("=== Repository Pattern ===\n")

    # Find by ID
    print("1. Find user by ID:")
    user = user_repo.get_by_id(1)
    if user:
        print(f"   Found: {user.name} ({user.email})\n")

    # Find all active users
    print("2. Find all active users:")
    active_users = user_repo.list_active()
    print(f"   Active users: {len(active_users)}")
    for u in active_users:
        print(f"   - {u.name}")
    print()

    # Save new user
    print("3. Save new user:")
    user_repo.create(User(name="Charlie", email="charlie@example.com", active=True))
    print(f"   Users 1-3: {[u.name for u in user_repo.find_by_ids([1, 2, 3])]}\n")

    # Update user
    print("4. Update user:")
    user_repo.update_email(1, "alice.updated@example.com")
    print(f"   Updated user #1: {user_repo.get_by_id(1).email}\n")

    # Delete user
    print("5. Delete user:")
    user_repo.delete(2)
    print("   Deleted user #2\n")

    # Verify final state
    print("6. Final active users:")
    for u in user_repo.list_active():
        print(f"   - {u.name} ({u.email})")
    print()

    # Clean up
    engine.close()
    Path(db_path).unlink()
    for file in user_dir.glob("*.sql"):
        file.unlink()
    user_dir.rmdir()
    sql_dir.rmdir()


if __name__ == "__main__":
    main()
