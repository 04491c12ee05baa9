"""
Example 02: Result Maps

This example demonstrates folding a joined query into an object graph with
nested result maps: one Blog per blog id, each with its Author and Posts.
"""

from rowgraph import Configuration, Engine, ConnectionConfig, result_map
from dataclasses import dataclass, field
from typing import Optional
import tempfile
import sqlite3
from pathlib import Path


@dataclass
class Author:
    id: Optional[int] = None
    username: Optional[str] = None


@dataclass
class Post:
    id: Optional[int] = None
    subject: Optional[str] = None


@dataclass
class Blog:
    id: Optional[int] = None
    title: Optional[str] = None
    author: Optional[Author] = None
    posts: list[Post] = field(default_factory=list)


def main():
    # Set up database
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE author (id INTEGER PRIMARY KEY, username TEXT);
        CREATE TABLE blog (id INTEGER PRIMARY KEY, title TEXT, author_id INTEGER);
        CREATE TABLE post (id INTEGER PRIMARY KEY, blog_id INTEGER, subject TEXT);
        INSERT INTO author VALUES (101, 'jim'), (102, 'sally');
        INSERT INTO blog VALUES (1, 'Jim Business', 101), (2, 'Bally Slog', 102);
        INSERT INTO post VALUES (1, 1, 'Corn nuts'), (2, 1, 'Paul Hogan on Toy Dogs'), (3, 2, 'Monster Trucks');
    """)
    conn.commit()
    conn.close()

    configuration = Configuration()

    # Result maps: id columns decide which rows describe the same object
    result_map("authorMap", Author).id("id", "id").result("username").build(configuration)
    result_map("postMap", Post).id("id", "id").result("subject").build(configuration)
    (
        result_map("blogMap", Blog)
        .id("id", "blog_id")
        .result("title", "blog_title")
        .association("author", result_map="authorMap", column_prefix="author_")
        .collection("posts", result_map="postMap", column_prefix="post_")
        .build(configuration)
    )

    configuration.statement(
        "blog.with_posts",
        """
        SELECT b.id AS blog_id, b.title AS blog_title,
               a.id AS author_id, a.username AS author_username,
               p.id AS post_id, p.subject AS post_subject
        FROM blog b
        JOIN author a ON a.id = b.author_id
        LEFT JOIN post p ON p.blog_id = b.id
        ORDER BY b.id, p.id
        """,
        result_map="blogMap",
    )
    # result_type maps columns to properties by name
    configuration.statement("author.all", "SELECT * FROM author ORDER BY id", result_type=Author)

    config = ConnectionConfig(driver="sqlite", database=db_path)
    engine = Engine.from_config(config, configuration)

    print("=== Result Maps ===\n")

    print("1. Automatic mapping by column name:")
    for author in engine.fetch_all("author.all"):
        print(f"   {author}")
    print()

    print("2. Joined rows folded into object graphs:")
    for blog in engine.fetch_all("blog.with_posts"):
        print(f"   {blog.title} by {blog.author.username}")
        for post in blog.posts:
            print(f"     - {post.subject}")
    print()

    # Clean up
    engine.close()
    Path(db_path).unlink()


if __name__ == "__main__":
    main()
