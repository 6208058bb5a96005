from marshmallow import EXCLUDE, fields, validate

from .database import ma


class ParametersSchema(ma.Schema):
    """``parameters`` block of a create request (the parameters.csv values)."""

    class Meta:
        unknown = EXCLUDE

    total_periods = fields.Integer(required=True, data_key='T', strict=True)
    discount_rate = fields.Decimal(required=True, data_key='Rate')
    initial_balance = fields.Decimal(required=True, data_key='InitBal')
    nb_must_take_one = fields.Integer(load_default=0, data_key='NbMustTakeOne', validate=validate.Range(min=0))
    description = fields.String(load_default=None, allow_none=True, data_key='Description')


class ProjectCostSchema(ma.Schema):
    project_name = fields.String(required=True, data_key='project', validate=validate.Length(min=1))
    period = fields.Integer(required=True)
    amount = fields.Decimal(required=True, data_key='cost')


class ProjectRewardSchema(ma.Schema):
    project_name = fields.String(required=True, data_key='project', validate=validate.Length(min=1))
    period = fields.Integer(required=True)
    amount = fields.Decimal(required=True, data_key='reward')


class MinBalanceSchema(ma.Schema):
    period = fields.Integer(required=True, data_key='Period')
    min_balance = fields.Decimal(required=True, data_key='MinBal')


class MustTakeOneSchema(ma.Schema):
    group_id = fields.Integer(required=True, data_key='group', validate=validate.Range(min=1))
    project_name = fields.String(required=True, data_key='project', validate=validate.Length(min=1))


class OptimizationCreateSchema(ma.Schema):
    """Payload accepted by ``POST /api/v1/optimizations``.

    Keys follow the solver's file vocabulary (``projectCosts``, ``minBal``,
    ...) and load into the snake_case shape ``OptimizationOrchestrator.create``
    expects.
    """

    class Meta:
        unknown = EXCLUDE

    parameters = fields.Nested(ParametersSchema, required=True)
    project_costs = fields.List(fields.Nested(ProjectCostSchema), load_default=list, data_key='projectCosts')
    project_rewards = fields.List(fields.Nested(ProjectRewardSchema), load_default=list, data_key='projectRewards')
    min_balances = fields.List(fields.Nested(MinBalanceSchema), load_default=list, data_key='minBal')
    must_take_one = fields.List(fields.Nested(MustTakeOneSchema), load_default=list, data_key='mustTakeOne')


optimization_create_schema = OptimizationCreateSchema()
