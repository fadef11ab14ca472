from types import SimpleNamespace
from typing import Any, Dict
from marshmallow import EXCLUDE, Schema, post_load

JSON = Dict[str, Any]
MAX_REPR_LEN = 80


class BaseModel(SimpleNamespace):
    """Attribute bag built by a `BaseSchema` on load."""

    def __repr__(self) -> str:
        repr_ = super().__repr__()
        if len(repr_) > MAX_REPR_LEN:
            return repr_[:MAX_REPR_LEN] + " ...)"
        return repr_


class BaseSchema(Schema):
    """The default schema for HelmApp and chart repository documents.

    Unknown keys are dropped so newer CRD or index fields never break loading.
    """

    __model__: Any = BaseModel
    """Determine the object that is created when the load method is called."""

    class Meta:
        unknown = EXCLUDE
        ordered = True

    @post_load
    def make_object(self, data: JSON, **kwargs: Any) -> "__model__":
        """Build an instance of `__model__` from the loaded fields."""
        return self.__model__(**data)
