"""
Image hash stores.

Two partitions per store: ``known_spam`` and ``known_good``.

  FlatFileHashStore  one append-only JSON-lines file per partition, flock'd
                     (shared for reads, exclusive for appends); the last
                     record for a digest wins
  SqliteHashStore    shared relational store, (partition, digest) primary
                     key, INSERT OR REPLACE; sqlite's own locking handles
                     concurrent workers

Both raise HashBackendUnavailable on I/O or database errors.
"""

import fcntl
import json
import logging
import os
import sqlite3
import time

from fuzzy_ocr.errors import HashBackendUnavailable

log = logging.getLogger(__name__)

KNOWN_SPAM = "known_spam"
KNOWN_GOOD = "known_good"
PARTITIONS = (KNOWN_SPAM, KNOWN_GOOD)


def _check_partition(partition):
    if partition not in PARTITIONS:
        raise ValueError(f"Unknown hash partition: {partition}")


class FlatFileHashStore:
    def __init__(self, spam_path: str, good_path: str):
        self.paths = {KNOWN_SPAM: spam_path, KNOWN_GOOD: good_path}

    def get(self, digest: str, partition: str):
        _check_partition(partition)
        path = self.paths[partition]
        if not os.path.exists(path):
            return None
        found = None
        try:
            with open(path, "r", encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                try:
                    for line in f:
                        try:
                            rec = json.loads(line)
                        except ValueError:
                            continue
                        if rec.get("digest") == digest:
                            found = (float(rec.get("score", 0)), rec.get("description", ""))
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)
        except OSError as exc:
            raise HashBackendUnavailable(f"{path}: {exc}") from exc
        return found

    def put(self, digest: str, score: float, partition: str, metadata: dict | None = None):
        _check_partition(partition)
        path = self.paths[partition]
        rec = {"digest": digest, "score": score, "ts": int(time.time())}
        rec.update(metadata or {})
        try:
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                try:
                    f.seek(0, os.SEEK_END)
                    f.write(json.dumps(rec, sort_keys=True) + "\n")
                    f.flush()
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)
        except OSError as exc:
            raise HashBackendUnavailable(f"{path}: {exc}") from exc


class SqliteHashStore:
    def __init__(self, db_path: str, timeout: float = 10.0):
        self.db_path = db_path
        try:
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
            self.conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
            self._init_tables()
        except (OSError, sqlite3.Error) as exc:
            raise HashBackendUnavailable(f"{db_path}: {exc}") from exc

    def _init_tables(self):
        c = self.conn.cursor()
        c.execute('''CREATE TABLE IF NOT EXISTS image_hashes (
            partition TEXT NOT NULL,
            digest TEXT NOT NULL,
            score REAL,
            description TEXT,
            fname TEXT,
            ctype TEXT,
            ftype TEXT,
            created INTEGER,
            PRIMARY KEY (partition, digest)
        )''')
        self.conn.commit()

    def get(self, digest, partition):
        _check_partition(partition)
        try:
            c = self.conn.cursor()
            c.execute('SELECT score, description FROM image_hashes WHERE partition=? AND digest=?',
                      (partition, digest))
            row = c.fetchone()
        except sqlite3.Error as exc:
            raise HashBackendUnavailable(str(exc)) from exc
        if row is None:
            return None
        return float(row[0] or 0), row[1] or ""

    def put(self, digest, score, partition, metadata=None):
        _check_partition(partition)
        meta = metadata or {}
        try:
            c = self.conn.cursor()
            c.execute('INSERT OR REPLACE INTO image_hashes (partition, digest, score, description, fname, ctype, ftype, created) VALUES (?, ?, ?, ?, ?, ?, ?, ?)',
                      (partition, digest, score, meta.get('description', ''), meta.get('fname'),
                       meta.get('ctype'), meta.get('ftype'), int(time.time())))
            self.conn.commit()
        except sqlite3.Error as exc:
            raise HashBackendUnavailable(str(exc)) from exc

    def close(self):
        self.conn.close()
