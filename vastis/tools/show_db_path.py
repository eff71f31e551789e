from __future__ import annotations

from vastis.config import STORAGE_DIR
from vastis.db import engine
from vastis.storage import BUCKETS


def main() -> None:
    print("ENGINE URL:", engine.url)
    print("DB FILE   :", engine.url.database or "-")
    print("STORAGE   :", STORAGE_DIR)
    for bucket in BUCKETS:
        folder = STORAGE_DIR / bucket
        files = sum(1 for p in folder.rglob("*") if p.is_file()) if folder.exists() else 0
        print(f"  {bucket:<18} {files} file(s)")


if __name__ == "__main__":
    main()
