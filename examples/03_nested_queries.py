"""
Example 03: Nested Queries and Lazy Loading

This example demonstrates nested selects: a property filled by running
another statement with a column of the current row. Repeated nested queries
within one session are answered from the session cache, and with
lazy_loading_enabled the nested query only runs when the property is read.
"""

from rowgraph import Configuration, Engine, ConnectionConfig, LazyResult, Settings, result_map
from dataclasses import dataclass, field
from typing import Optional
import logging
import tempfile
import sqlite3
from pathlib import Path


@dataclass
class Post:
    id: Optional[int] = None
    subject: Optional[str] = None


@dataclass
class Blog:
    id: Optional[int] = None
    title: Optional[str] = None
    posts: list[Post] = field(default_factory=list)


def build_configuration(lazy: bool) -> Configuration:
    configuration = Configuration(Settings(lazy_loading_enabled=lazy))
    (
        result_map("blogMap", Blog)
        .id("id", "id")
        .collection("posts", select="post.by_blog", column="id")
        .build(configuration)
    )
    configuration.statement("blog.all", "SELECT * FROM blog ORDER BY id", result_map="blogMap")
    configuration.statement(
        "post.by_blog", "SELECT * FROM post WHERE blog_id = #{id} ORDER BY id", result_type=Post
    )
    return configuration


def main():
    # Set up database
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE blog (id INTEGER PRIMARY KEY, title TEXT);
        CREATE TABLE post (id INTEGER PRIMARY KEY, blog_id INTEGER, subject TEXT);
        INSERT INTO blog VALUES (1, 'Jim Business'), (2, 'Bally Slog');
        INSERT INTO post VALUES (1, 1, 'Corn nuts'), (2, 1, 'Paul Hogan on Toy Dogs'), (3, 2, 'Monster Trucks');
    """)
    conn.commit()
    conn.close()

    # Show the statements as they run
    logging.basicConfig(format="   %(message)s")
    logging.getLogger("rowgraph.core.session").setLevel(logging.DEBUG)

    config = ConnectionConfig(driver="sqlite", database=db_path, pool_size=2)

    print("=== Nested Queries ===\n")

    print("1. Eager nested selects:")
    engine = Engine.from_config(config, build_configuration(lazy=False))
    blogs = engine.fetch_all("blog.all")
    for blog in blogs:
        print(f"   {blog.title}: {[p.subject for p in blog.posts]}")
    engine.close()
    print()

    print("2. Lazy nested selects:")
    engine = Engine.from_config(config, build_configuration(lazy=True))
    with engine.session() as session:
        blog = session.select_list("blog.all")[1]
    print(f"   Loaded {blog.title!r}, lazy: {isinstance(blog, LazyResult)}")
    print(f"   Pending: {blog.pending_properties}")
    # The session is closed; the loader opens a new one
    print(f"   Posts: {[p.subject for p in blog.posts]}")
    engine.close()
    print()

    # Clean up
    Path(db_path).unlink()


if __name__ == "__main__":
    main()
