"""Configuration models for the transform pipeline."""

from typing import Any, Callable, Optional

from pydantic import Field

from form_persistence.models.base import ModelBase


class TransformHooks(ModelBase):
    """A pre-save / post-restore hook pair.

    Attributes:
        before_save: Applied to a value before it is written to storage.
        after_restore: Applied to a value after it is read back.
    """

    before_save: Optional[Callable[[Any], Any]] = Field(
        default=None, description="Applied before the value is persisted."
    )
    after_restore: Optional[Callable[[Any], Any]] = Field(
        default=None, description="Applied after the value is restored."
    )


FieldTransforms = dict[str, TransformHooks]
