"""File fields, upload progress and transforms.

This example demonstrates how to:
1. Register field transforms that obfuscate a value at rest.
2. Store files for a file field while tracking progress.
3. Read back the payload-free file metadata.
"""

import asyncio
import base64
from typing import Optional

from form_persistence.config import PersistenceOptions
from form_persistence.models.files import IncomingFile, UploadProgress
from form_persistence.models.transforms import TransformHooks
from form_persistence.orchestrator import FormPersistence
from form_persistence.storage.bundle import FormStorage


def print_progress(progress: Optional[UploadProgress]):
    if progress is not None:
        print(f"  {progress.field_name}: {progress.loaded}/{progress.total} ({progress.percent}%)")


async def run_example():
    storage = FormStorage.in_memory()

    # 1. The phone number is stored base64-encoded and decoded on restore
    options = PersistenceOptions(
        file_fields=["attachments"],
        chunk_size=16,
        on_progress=print_progress,
        field_transforms={
            "phone": TransformHooks(
                before_save=lambda v: base64.b64encode(v.encode()).decode(),
                after_restore=lambda v: base64.b64decode(v).decode(),
            )
        },
    )
    form = FormPersistence("contact", {"phone": ""}, options, storage)
    await form.mount()
    await form.set_field("phone", "+44 20 7946 0958")
    print(f"At rest: {await storage.durable.get_item(form.keys.data)}")

    # 2. Two files, progress is cumulative across both
    print("Uploading:")
    await form.save_files(
        "attachments",
        [
            IncomingFile(file_name="notes.txt", file_type="text/plain", data=b"x" * 40),
            IncomingFile(file_name="logo.svg", file_type="image/svg+xml", data=b"<svg/>"),
        ],
    )

    # 3. Metadata only; payloads stay in the blob store
    print(f"Files: {form.get_file_data_json()}")

    # A refresh (same session tier) restores both text and files
    reloaded = FormPersistence("contact", {"phone": ""}, options, storage)
    kind = await reloaded.mount()
    print(f"After {kind.value}: phone={reloaded.form_data['phone']}, "
          f"files={[r.file_name for r in reloaded.file_data['attachments']]}")


if __name__ == "__main__":
    asyncio.run(run_example())
