from marshmallow import fields
from helmapp.types.base import BaseSchema
from helmapp.types.models.helmapp_status import HelmAppStatus


class HelmAppStatusSchema(BaseSchema):
    __model__ = HelmAppStatus

    phase = fields.Str(data_key="phase", allow_none=True, load_default="")
    readme = fields.Str(data_key="readme", allow_none=True, load_default="")
    values = fields.Dict(
        keys=fields.Str(),
        values=fields.Str(),
        data_key="values",
        allow_none=True,
        load_default=dict,
    )
    conditions = fields.List(
        fields.Dict(), data_key="conditions", allow_none=True, load_default=list
    )
    current_version = fields.Str(
        data_key="currentVersion", allow_none=True, load_default=None
    )
    overrides = fields.Dict(data_key="overrides", allow_none=True, load_default=None)
    last_error = fields.Str(data_key="lastError", allow_none=True, load_default=None)
    release = fields.Dict(data_key="release", allow_none=True, load_default=None)
    detected = fields.Dict(data_key="detected", allow_none=True, load_default=None)
    observed_generation = fields.Int(
        data_key="observedGeneration", allow_none=True, load_default=None
    )
