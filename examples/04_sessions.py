"""
Example 04: Sessions

This example demonstrates sessions: one connection and one transaction,
committed on success and rolled back automatically on errors.
"""

from rowgraph import Configuration, Engine, ConnectionConfig, ParameterBindingError
import tempfile
import sqlite3
from pathlib import Path


def main():
    # Set up database
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE
        )
    """)
    conn.execute("""
        CREATE TABLE audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            action TEXT NOT NULL,
            timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.commit()
    conn.close()

    configuration = Configuration()
    configuration.statement("user.create", "INSERT INTO users (name, email) VALUES (#{name}, #{email})")
    configuration.statement("user.count", "SELECT COUNT(*) AS total FROM users")
    configuration.statement("audit.log", "INSERT INTO audit_log (action) VALUES (#{action})")

    # Configure engine
    config = ConnectionConfig(driver="sqlite", database=db_path)
    engine = Engine.from_config(config, configuration)

    def count_users() -> int:
        return engine.fetch_one("user.count")["total"]

    print("=== Sessions ===\n")

    # Example 1: Successful session
    print("1. Successful session:")
    with engine.session() as session:
        session.execute("user.create", {"name": "Alice", "email": "alice@example.com"})
        session.execute("audit.log", {"action": "user_created"})
        # Commits automatically on exit
    print(f"   Users after commit: {count_users()}\n")

    # Example 2: Session with rollback on error
    print("2. Session with error (automatic rollback):")
    try:
        with engine.session() as session:
            session.execute("user.create", {"name": "Bob", "email": "bob@example.com"})
            # This will fail due to duplicate email
            session.execute("user.create", {"name": "Charlie", "email": "alice@example.com"})
    except ParameterBindingError as e:
        print(f"   Error occurred: {e}")
        print("   Session was rolled back automatically\n")

    print(f"   Users after rollback: {count_users()} (Bob was not added)\n")

    # Example 3: Explicit commit and rollback
    print("3. Explicit commit and rollback:")
    with engine.session() as session:
        session.execute("user.create", {"name": "Dave", "email": "dave@example.com"})
        session.commit()
        session.execute("user.create", {"name": "Eve", "email": "eve@example.com"})
        session.rollback()
    print(f"   Users after session: {count_users()} (Eve was rolled back)\n")

    # Clean up
    engine.close()
    Path(db_path).unlink()


if __name__ == "__main__":
    main()
