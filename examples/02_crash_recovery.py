"""Crash recovery and clean restarts.

This example demonstrates how to:
1. Persist a form into a SQLite database.
2. Simulate a crash (no close signal) and recover the data.
3. Close the form cleanly and see the next startup discard it.
"""

import asyncio
import tempfile
from pathlib import Path

from form_persistence.config import PersistenceOptions
from form_persistence.models.enums import LifecycleEvent
from form_persistence.orchestrator import FormPersistence
from form_persistence.storage.bundle import FormStorage

INITIAL = {"title": "", "body": ""}


async def run_example():
    db_path = Path(tempfile.mkdtemp()) / "forms.sqlite3"
    url = f"sqlite:///{db_path}"
    options = PersistenceOptions(clear_on_close=True)

    # 1. First process: the user types, then the process dies
    storage = FormStorage.from_url(url)
    draft = FormPersistence("post", INITIAL, options, storage)
    await draft.mount()
    await draft.update_fields({"title": "Hello", "body": "Unfinished thoughts..."})
    print("Process 1 wrote a draft and crashed.")

    # 2. Second process: a fresh session tier over the same database
    storage = FormStorage.from_url(url)
    recovered = FormPersistence("post", INITIAL, options, storage)
    kind = await recovered.mount()
    print(f"Process 2 startup: {kind.value}, restored: {dict(recovered.form_data)}")

    # The host closes the form cleanly this time
    await recovered.handle_lifecycle_event(LifecycleEvent.CLOSE)

    # 3. Third process: a clean close with clear_on_close means a clean slate
    storage = FormStorage.from_url(url)
    clean = FormPersistence("post", INITIAL, options, storage)
    kind = await clean.mount()
    print(f"Process 3 startup: {kind.value}, form: {dict(clean.form_data)}")


if __name__ == "__main__":
    asyncio.run(run_example())
