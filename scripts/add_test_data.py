"""Append random rows to the demo tables so a running viewer has something to show."""

from __future__ import annotations

import argparse
import os
import random
import sqlite3
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from litewatch.registry import bootstrap_database, resolve_path

NAMES = ("Alice", "Bob", "Charlie", "David", "Emma", "Frank", "Grace", "Henry")
SURNAMES = ("Smith", "Johnson", "Williams", "Brown", "Jones", "Miller", "Davis", "Garcia")
PRODUCTS = ("Monitor", "Keyboard", "Mouse", "Webcam", "Microphone", "Speakers", "Tablet", "Printer")


def add_random_user(conn: sqlite3.Connection) -> None:
    name = random.choice(NAMES)
    surname = random.choice(SURNAMES)
    full_name = f"{name} {surname}"
    email = f"{name.lower()}.{surname.lower()}{random.randint(0, 999)}@example.com"
    try:
        cursor = conn.execute("INSERT INTO users (name, email) VALUES (?, ?)", (full_name, email))
    except sqlite3.Error as exc:
        print(f"Error adding user: {exc}")
        return
    print(f"Added user: {full_name} ({email}), ID: {cursor.lastrowid}")


def add_random_product(conn: sqlite3.Connection) -> None:
    product = random.choice(PRODUCTS)
    price = round(random.uniform(50, 550), 2)
    stock = random.randint(0, 99)
    try:
        cursor = conn.execute(
            "INSERT INTO products (name, price, stock) VALUES (?, ?, ?)",
            (product, price, stock),
        )
    except sqlite3.Error as exc:
        print(f"Error adding product: {exc}")
        return
    print(f"Added product: {product}, Price: ${price:.2f}, Stock: {stock}, ID: {cursor.lastrowid}")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--db",
        default=os.environ.get("DB_PATH", "database.sqlite"),
        help="Database file (default: $DB_PATH or ./database.sqlite)",
    )
    parser.add_argument("--count", type=int, default=5, help="Rows to add to each table per batch")
    parser.add_argument("--repeat", type=int, default=1, help="Number of batches")
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds between batches")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    path = resolve_path(args.db)
    if not path.parent.is_dir():
        print(f"Directory does not exist: {path.parent}")
        return 1
    if bootstrap_database(path):
        print(f"Created demo database at {path}.")
    print("Adding random data to the database...")
    conn = sqlite3.connect(path)
    try:
        for batch in range(args.repeat):
            if batch:
                time.sleep(args.delay)
            for _ in range(args.count):
                add_random_user(conn)
                add_random_product(conn)
            conn.commit()
    finally:
        conn.close()
    print("Done!")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
