"""Shared base model for persisted records"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RewardModel(BaseModel):
    """Base for every persisted model.

    Fields are snake_case in Python and camelCase in the stored JSON.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
