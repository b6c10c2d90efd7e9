"""Two-direction transform pipeline.

Pre-save runs field hooks first, then the global hook on the field-adjusted
mapping. Post-restore is the inverse: global hook first, then field hooks.
A failing hook never blocks the rest of the record: the error is reported and
the untransformed value is kept.
"""

from typing import Any, Callable, Optional

from form_persistence.errors import TransformError
from form_persistence.models.transforms import FieldTransforms, TransformHooks
from form_persistence.observability.logging import get_logger

logger = get_logger(__name__)

ErrorReporter = Callable[[TransformError, str], None]

GLOBAL_SCOPE = "*"


class TransformPipeline:
    """Applies the registered hooks in both directions."""

    def __init__(
        self,
        middleware: Optional[TransformHooks] = None,
        field_transforms: Optional[FieldTransforms] = None,
        on_error: Optional[ErrorReporter] = None,
    ):
        """Initializes the pipeline.

        Args:
            middleware: The global hook pair.
            field_transforms: Field name to hook pair.
            on_error: Receives every ``TransformError`` with its context
                string, e.g. ``"before_save:email"``.
        """
        self._global = middleware or TransformHooks()
        self._fields: FieldTransforms = dict(field_transforms or {})
        self._on_error = on_error

    @property
    def middleware(self) -> TransformHooks:
        return self._global

    @property
    def field_transforms(self) -> FieldTransforms:
        return dict(self._fields)

    def register_global(self, hooks: TransformHooks) -> None:
        """Replaces the global hook pair."""
        self._global = hooks

    def register_fields(self, mapping: FieldTransforms) -> None:
        """Merges field hook pairs, replacing existing entries per field."""
        self._fields.update(mapping)

    def before_save(self, data: dict[str, Any]) -> dict[str, Any]:
        """Transforms live values into their persisted form."""
        adjusted = {
            name: self._apply_field(name, value, "before_save")
            for name, value in data.items()
        }
        return self._apply_global(adjusted, "before_save")

    def after_restore(self, data: dict[str, Any]) -> dict[str, Any]:
        """Transforms persisted values back into live values."""
        adjusted = self._apply_global(data, "after_restore")
        return {
            name: self._apply_field(name, value, "after_restore")
            for name, value in adjusted.items()
        }

    def _apply_field(self, name: str, value: Any, direction: str) -> Any:
        hooks = self._fields.get(name)
        hook = getattr(hooks, direction) if hooks is not None else None
        if hook is None:
            return value
        return self._call(hook, value, f"{direction}:{name}")

    def _apply_global(self, data: dict[str, Any], direction: str) -> dict[str, Any]:
        hook = getattr(self._global, direction)
        if hook is None:
            return data
        context = f"{direction}:{GLOBAL_SCOPE}"
        result = self._call(hook, data, context)
        if result is data:
            return data
        if not isinstance(result, dict):
            self._report(
                TransformError(
                    f"Global {direction} hook returned {type(result).__name__}, expected a mapping",
                    context,
                ),
                context,
            )
            return data
        return result

    def _call(self, hook: Callable[[Any], Any], value: Any, context: str) -> Any:
        try:
            return hook(value)
        except Exception as e:
            err = TransformError(f"Transform {context} failed: {e}", context)
            err.__cause__ = e
            self._report(err, context)
            return value

    def _report(self, err: TransformError, context: str) -> None:
        if self._on_error is None:
            logger.warning(str(err))
            return
        self._on_error(err, context)
