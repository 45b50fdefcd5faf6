"""Management CLI for draft storage.

Usage:
    python -m admissions.cli migrate              # Alembic upgrade head (database drafts)
    python -m admissions.cli show-draft KEY       # Print a saved draft as JSON
    python -m admissions.cli clear-draft KEY      # Delete a saved draft
"""

import asyncio
import json
import subprocess
import sys
from pathlib import Path

from admissions.config import settings
from admissions.services.drafts import get_draft_store

# Directory holding alembic.ini
BACKEND_DIR = Path(__file__).resolve().parent.parent


async def _show_draft(key: str) -> int:
    store = await get_draft_store()
    draft = await store.load(key)
    if draft is None:
        print(f"No draft stored under {key}")
        return 1
    print(json.dumps(
        {
            "stepIndex": draft.step_index,
            "savedAt": draft.saved_at.isoformat() if draft.saved_at else None,
            "filesToReselect": draft.files_to_reselect,
            "data": draft.data,
        },
        indent=2,
    ))
    return 0


async def _clear_draft(key: str) -> int:
    store = await get_draft_store()
    await store.clear(key)
    print(f"Cleared {key}")
    return 0


def migrate() -> int:
    """Run Alembic upgrade head for the draft table."""
    if settings.draft_backend != "database":
        print(f"Draft backend is {settings.draft_backend!r}; nothing to migrate.")
        return 0
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        capture_output=True, text=True,
        cwd=BACKEND_DIR,
    )
    if result.returncode != 0:
        print(f"FAILED: {result.stderr}")
    else:
        print("OK")
    return result.returncode


def main(argv: list[str]) -> int:
    cmd = argv[0] if argv else ""
    if cmd == "migrate":
        return migrate()
    if cmd in ("show-draft", "clear-draft") and len(argv) == 2:
        handler = _show_draft if cmd == "show-draft" else _clear_draft
        return asyncio.run(handler(argv[1]))
    print(__doc__)
    return 2


def run() -> None:
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
