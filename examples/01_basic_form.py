"""Basic example of form persistence.

This example demonstrates how to:
1. Create a persistence orchestrator for one form.
2. Mount it and observe the startup classification.
3. Mutate fields and let every change be saved.
4. Inspect what was written to the session and durable tiers.
"""

import asyncio

from form_persistence.config import PersistenceOptions
from form_persistence.orchestrator import FormPersistence
from form_persistence.storage.bundle import FormStorage


async def run_example():
    # 1. In-memory stores: good enough to see the moving parts
    storage = FormStorage.in_memory()
    form = FormPersistence(
        "signup",
        {"name": "", "email": "", "newsletter": False},
        PersistenceOptions(),
        storage,
    )

    # 2. Nothing is stored yet, so this is a fresh start
    kind = await form.mount()
    print(f"Startup: {kind.value}")

    # 3. Each mutation is written to both text tiers
    await form.set_field("name", "Ada Lovelace")
    await form.update_fields({"email": "ada@example.com", "newsletter": True})

    # 4. Inspect the stored snapshot
    print(f"Form data: {form.get_form_data_json()}")
    print(f"Durable tier: {await storage.durable.get_item(form.keys.data)}")
    print(f"Unsaved changes: {form.has_unsaved_changes}")
    print(form.metrics.render_markdown())

    await form.unmount()


if __name__ == "__main__":
    asyncio.run(run_example())
