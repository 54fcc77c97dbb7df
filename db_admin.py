#!/usr/bin/env python3
"""
db_admin.py — Interactive CLI for managing the love-streak database.
Run with: python db_admin.py
"""

import datetime
import os
import sqlite3
import sys

from config import DB_PATH


def get_db() -> sqlite3.Connection:
    if not os.path.exists(DB_PATH):
        print(f"Database not found at {DB_PATH}")
        sys.exit(1)
    db = sqlite3.connect(DB_PATH)
    db.row_factory = sqlite3.Row
    return db


# ── Couple operations ────────────────────────────────────────────────────────

def list_couples(db: sqlite3.Connection):
    rows = db.execute(
        "SELECT id, guild_id, user1_id, user2_id, married_at FROM marriages ORDER BY id"
    ).fetchall()
    if not rows:
        print("No couples found.")
        return
    print(f"{'id':<6} {'guild_id':<22} {'user1_id':<22} {'user2_id':<22} {'married_at'}")
    print("-" * 100)
    for r in rows:
        print(f"{r['id']:<6} {r['guild_id']:<22} {r['user1_id']:<22} {r['user2_id']:<22} {r['married_at']}")


def marry(db: sqlite3.Connection, guild_id: int, user1_id: int, user2_id: int):
    if user1_id == user2_id:
        print("A couple needs two different users.")
        return
    taken = db.execute(
        "SELECT id FROM marriages WHERE guild_id = ? AND "
        "(user1_id IN (?, ?) OR user2_id IN (?, ?))",
        (guild_id, user1_id, user2_id, user1_id, user2_id),
    ).fetchone()
    if taken:
        print(f"One of those users is already in couple {taken['id']}.")
        return
    cur = db.execute(
        "INSERT INTO marriages (guild_id, user1_id, user2_id, married_at) VALUES (?, ?, ?, ?)",
        (guild_id, user1_id, user2_id, datetime.datetime.now(datetime.timezone.utc).isoformat()),
    )
    db.commit()
    print(f"Created couple {cur.lastrowid}.")


def divorce(db: sqlite3.Connection, couple_id: int):
    db.execute("DELETE FROM love_streaks WHERE couple_id = ?", (couple_id,))
    db.execute("DELETE FROM marriages WHERE id = ?", (couple_id,))
    db.commit()
    print(f"Deleted couple {couple_id} and its love streak.")


# ── Streak operations ────────────────────────────────────────────────────────

def list_streaks(db: sqlite3.Connection):
    rows = db.execute(
        "SELECT couple_id, current_streak, best_streak, total_days, "
        "user1_completed_today, user2_completed_today, last_completed_date, "
        "recoveries_used_this_month FROM love_streaks ORDER BY current_streak DESC"
    ).fetchall()
    if not rows:
        print("No love streaks found.")
        return
    print(f"{'couple':<8} {'current':>8} {'best':>6} {'total':>6} {'today':>7} {'last':>12} {'recov':>6}")
    print("-" * 60)
    for r in rows:
        today = ("x" if r["user1_completed_today"] else "-") + ("x" if r["user2_completed_today"] else "-")
        print(
            f"{r['couple_id']:<8} {r['current_streak']:>8} {r['best_streak']:>6} "
            f"{r['total_days']:>6} {today:>7} {r['last_completed_date'] or '-':>12} "
            f"{r['recoveries_used_this_month']:>6}"
        )


def set_streak(db: sqlite3.Connection, couple_id: int, current: int, best: int):
    if current < 0 or best < current:
        print("Need 0 <= current <= best.")
        return
    cur = db.execute(
        "UPDATE love_streaks SET current_streak = ?, best_streak = ?, updated_at = ? WHERE couple_id = ?",
        (current, best, datetime.datetime.now(datetime.timezone.utc).isoformat(), couple_id),
    )
    db.commit()
    if cur.rowcount:
        print(f"Set streak for couple {couple_id} to {current} (best {best}).")
    else:
        print(f"Couple {couple_id} has no love streak yet.")


# ── Raw query ────────────────────────────────────────────────────────────────

def raw_query(db: sqlite3.Connection, sql: str):
    try:
        cur = db.execute(sql)
        if cur.description:
            cols = [d[0] for d in cur.description]
            rows = cur.fetchall()
            print("  ".join(f"{c:<16}" for c in cols))
            print("-" * (18 * len(cols)))
            for row in rows:
                print("  ".join(f"{str(v):<16}" for v in row))
            print(f"\n{len(rows)} row(s) returned.")
        else:
            db.commit()
            print(f"{cur.rowcount} row(s) affected.")
    except sqlite3.Error as e:
        print(f"SQL error: {e}")


# ── REPL ─────────────────────────────────────────────────────────────────────

HELP = """
Commands:
  couples                              List all couples
  marry <guild_id> <user1> <user2>     Create a couple
  divorce <couple_id>                  Delete a couple and its streak

  streaks                              List all love streaks
  setstreak <couple_id> <cur> <best>   Overwrite a couple's streak counters

  sql <query>                          Run a raw SQL statement
  help                                 Show this menu
  exit / quit                          Exit
"""


def repl():
    db = get_db()
    print(f"Connected to {DB_PATH}")
    print(HELP)

    while True:
        try:
            line = input("db> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye.")
            break

        if not line:
            continue

        parts = line.split()
        cmd = parts[0].lower()

        try:
            if cmd in ("exit", "quit"):
                print("Bye.")
                break

            elif cmd == "help":
                print(HELP)

            elif cmd == "couples":
                list_couples(db)

            elif cmd == "marry":
                if len(parts) < 4:
                    print("Usage: marry <guild_id> <user1> <user2>")
                    continue
                marry(db, int(parts[1]), int(parts[2]), int(parts[3]))

            elif cmd == "divorce":
                if len(parts) < 2:
                    print("Usage: divorce <couple_id>")
                    continue
                cid = int(parts[1])
                confirm = input(f"Delete couple {cid} and its love streak? [y/N] ")
                if confirm.lower() == "y":
                    divorce(db, cid)

            elif cmd == "streaks":
                list_streaks(db)

            elif cmd == "setstreak":
                if len(parts) < 4:
                    print("Usage: setstreak <couple_id> <current> <best>")
                    continue
                set_streak(db, int(parts[1]), int(parts[2]), int(parts[3]))

            elif cmd == "sql":
                if len(parts) < 2:
                    print("Usage: sql <query>")
                    continue
                raw_query(db, line[4:].strip())

            else:
                print(f"Unknown command '{cmd}'. Type 'help' for a list.")

        except ValueError as e:
            print(f"Invalid argument: {e}")
        except sqlite3.Error as e:
            print(f"Database error: {e}")

    db.close()


if __name__ == "__main__":
    repl()
