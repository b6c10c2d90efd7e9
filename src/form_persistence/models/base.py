from pydantic import BaseModel, ConfigDict


class ModelBase(BaseModel):
    """
    Base class for all form-persistence models.

    Enforces strict validation, forbids unknown fields,
    and enables assignment-time validation.
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        frozen=False,
    )
