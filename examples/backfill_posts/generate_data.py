#!/usr/bin/env python3
"""
Generate example data for the backfill_posts tasks.

Creates:
- posts.db: the posts table with roughly a third of titles missing
- posts.csv: rows for ImportPostsTask (title, body, category)

Usage:
    python generate_data.py              # 10,000 rows
    python generate_data.py 100000       # 100,000 rows
"""

import csv
import random
import sys
from pathlib import Path

from app import get_engine, posts_table
from sqlalchemy import delete, insert

CATEGORIES = ["news", "howto", "opinion", "release", "misc"]


def _post(i: int) -> dict[str, object]:
    return {
        "title": None if random.random() < 0.33 else f"Post {i}",
        "body": f"Body of post {i}",
        "category": random.choice(CATEGORIES),
    }


def generate_data(num_rows: int = 10_000, output_dir: Path | None = None) -> None:
    """Fill posts.db and write posts.csv."""
    if output_dir is None:
        output_dir = Path(__file__).parent

    print(f"Generating {num_rows:,} posts...")  # noqa: T201

    engine = get_engine()
    with engine.begin() as conn:
        conn.execute(delete(posts_table))
        conn.execute(insert(posts_table), [_post(i) for i in range(1, num_rows + 1)])

    csv_path = output_dir / "posts.csv"
    with open(csv_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["title", "body", "category"])
        writer.writeheader()
        for i in range(1, num_rows + 1):
            post = _post(num_rows + i)
            writer.writerow({**post, "title": post["title"] or ""})

    print(f"Generated {num_rows:,} posts and {csv_path.name}")  # noqa: T201


if __name__ == "__main__":
    num_rows = int(sys.argv[1]) if len(sys.argv) > 1 else 10_000

    if num_rows < 1 or num_rows > 1_000_000:
        print("Error: Row count must be between 1 and 1,000,000", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    generate_data(num_rows)
