from typing import Any
from marshmallow import fields, post_load, ValidationError
from helmapp.types.base import BaseSchema
from helmapp.types.models.chart_index import ChartIndex, ChartVersion


class LooseString(fields.String):
    """String that also accepts YAML scalars decoded as numbers (`version: 1.0`)."""

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, bool):
            raise ValidationError("Not a valid string.")
        if isinstance(value, (int, float)):
            value = str(value)
        return super()._deserialize(value, attr, data, **kwargs)


class ChartVersionSchema(BaseSchema):
    __model__ = ChartVersion

    name = LooseString(data_key="name", allow_none=True, load_default=None)
    version = LooseString(data_key="version", required=True)
    app_version = LooseString(data_key="appVersion", allow_none=True, load_default=None)
    description = fields.Str(data_key="description", allow_none=True, load_default=None)
    icon = fields.Str(data_key="icon", allow_none=True, load_default=None)
    keywords = fields.List(
        LooseString(), data_key="keywords", allow_none=True, load_default=list
    )
    urls = fields.List(fields.Str(), data_key="urls", allow_none=True, load_default=list)
    digest = fields.Str(data_key="digest", allow_none=True, load_default=None)


class ChartIndexSchema(BaseSchema):
    __model__ = ChartIndex

    api_version = fields.Str(data_key="apiVersion", allow_none=True, load_default=None)
    entries = fields.Dict(
        keys=fields.Str(),
        values=fields.List(fields.Nested(ChartVersionSchema()), allow_none=True),
        data_key="entries",
        allow_none=True,
        load_default=dict,
    )

    @post_load
    def make_object(self, data: Any, **kwargs: Any) -> ChartIndex:
        """Drop null entry lists and fill in entry names from the index keys."""
        entries = {}
        for name, versions in (data.get("entries") or {}).items():
            versions = [v for v in (versions or []) if v is not None]
            for version in versions:
                version.name = version.name or name
            entries[name] = versions
        data["entries"] = entries
        return self.__model__(**data)
