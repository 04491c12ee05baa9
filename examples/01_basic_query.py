"""
Example 01: Basic Query Execution

This example demonstrates basic query execution using RowGraph's Engine and
TemplateRegistry, including a dynamic SQL template.
"""

from rowgraph import Configuration, Engine, ConnectionConfig, TemplateRegistry
import tempfile
import sqlite3
from pathlib import Path


def main():
    # Create a temporary database
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    # Set up the database with some test data
    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL,
            active INTEGER DEFAULT 1
        )
    """)
    conn.execute("INSERT INTO users (name, email) VALUES ('Alice', 'alice@example.com')")
    conn.execute("INSERT INTO users (name, email) VALUES ('Bob', 'bob@example.com')")
    conn.execute("INSERT INTO users (name, email, active) VALUES ('Charlie', 'charlie@example.com', 0)")
    conn.commit()
    conn.close()

    # Create temporary SQL files directory
    sql_dir = Path(tempfile.mkdtemp())
    user_dir = sql_dir / "user"
    user_dir.mkdir()

    # Create SQL template files
    (user_dir / "get_by_id.sql").write_text("SELECT * FROM users WHERE id = #{id}")
    (user_dir / "search.sql").write_text("""<script>
        SELECT * FROM users
        <where>
          <if test="active != null">active = #{active}</if>
          <if test="name != null">AND name LIKE #{name}</if>
        </where>
        ORDER BY id
    </script>""")
    (user_dir / "count.sql").write_text("SELECT COUNT(*) AS total FROM users")

    # Configure engine
    configuration = Configuration()
    TemplateRegistry(sql_dir, configuration)
    config = ConnectionConfig(driver="sqlite", database=db_path)
    engine = Engine.from_config(config, configuration)

    print("=== Basic Query Execution ===\n")

    # fetch_one: Get a single row
    user = engine.fetch_one("user.get_by_id", {"id": 1})
    print(f"fetch_one result: {user}")
    print(f"User name: {user['name']}\n")

    # fetch_all: the <where> block only renders the conditions that apply
    users = engine.fetch_all("user.search", {"active": 1, "name": None})
    print(f"fetch_all result ({len(users)} rows):")
    for user in users:
        print(f"  - {user['name']} ({user['email']})")
    print()

    users = engine.fetch_all("user.search", {"active": None, "name": "C%"})
    print(f"Names starting with C: {[u['name'] for u in users]}\n")

    # Inline SQL works too
    count = engine.fetch_one("user.count")["total"]
    print(f"Total users: {count}")
    inactive = engine.fetch_all("SELECT name FROM users WHERE active = #{active}", {"active": 0})
    print(f"Inline query: {inactive}\n")

    # Clean up
    engine.close()
    Path(db_path).unlink()
    for file in user_dir.glob("*.sql"):
        file.unlink()
    user_dir.rmdir()
    sql_dir.rmdir()


if __name__ == "__main__":
    main()
