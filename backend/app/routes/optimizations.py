from flask import Blueprint, current_app, jsonify, request
from marshmallow import ValidationError as SchemaValidationError

from ..database import db
from ..errors import NotFoundError, PipelineError, ValidationError
from ..models.optimization import Optimization
from ..models.optimization_result import OptimizationResult, SelectedProject
from ..models.period_results import PeriodBalance, PeriodCashFlow
from ..schemas import optimization_create_schema

optimizations_bp = Blueprint('optimizations', __name__)


def _services():
    return current_app.extensions['optimization_services']


def _orchestrator():
    return _services()['orchestrator']


def _schedule_polling(optimization_id):
    poller = _services().get('poller')
    if poller is not None:
        poller.schedule(optimization_id)


def _get_or_404(optimization_id):
    optimization = db.session.get(Optimization, optimization_id)
    if optimization is None:
        raise NotFoundError(f"Optimization {optimization_id} not found")
    return optimization


def _with_results(optimization):
    """Optimization plus every result row, the shape the results page reads."""
    data = optimization.to_dict()
    result = OptimizationResult.query.filter_by(optimization_id=optimization.id).first()
    data['result'] = result.to_dict() if result else None
    data['selected_projects'] = [
        p.to_dict() for p in SelectedProject.query.filter_by(optimization_id=optimization.id)
        .order_by(SelectedProject.start_period, SelectedProject.project_name)
    ]
    data['period_balances'] = [
        b.to_dict() for b in PeriodBalance.query.filter_by(optimization_id=optimization.id)
        .order_by(PeriodBalance.period)
    ]
    data['period_cash_flows'] = [
        c.to_dict() for c in PeriodCashFlow.query.filter_by(optimization_id=optimization.id)
        .order_by(PeriodCashFlow.period)
    ]
    return data


@optimizations_bp.errorhandler(PipelineError)
def handle_pipeline_error(error):
    body = {'error': type(error).__name__, 'code': error.code, 'message': str(error)}
    if isinstance(error, ValidationError):
        body['validation_errors'] = error.errors
        if error.optimization_id is not None:
            body['optimization_id'] = error.optimization_id
    return jsonify(body), error.status


@optimizations_bp.errorhandler(SchemaValidationError)
def handle_schema_error(error):
    return jsonify({'error': 'Invalid payload', 'messages': error.messages}), 400


@optimizations_bp.route('', methods=['GET'])
def list_optimizations():
    """Newest optimizations first, paginated."""
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 5, type=int)
    query = Optimization.query.order_by(Optimization.created_at.desc(), Optimization.id.desc())
    pagination = db.paginate(query, page=page, per_page=per_page, error_out=False)

    items = []
    for optimization in pagination.items:
        data = optimization.to_dict()
        result = OptimizationResult.query.filter_by(optimization_id=optimization.id).first()
        data['result'] = result.to_dict() if result else None
        items.append(data)

    return jsonify({
        'data': items,
        'current_page': pagination.page,
        'last_page': pagination.pages,
        'per_page': pagination.per_page,
        'total': pagination.total,
    })


@optimizations_bp.route('', methods=['POST'])
def create_optimization():
    """Store a new optimization; with ``?execute=true`` also submit it right away."""
    data = optimization_create_schema.load(request.get_json(silent=True) or {})
    execute = request.args.get('execute', 'false').lower() in ('1', 'true', 'yes')

    orchestrator = _orchestrator()
    optimization = orchestrator.create(data)

    if not execute:
        return jsonify(optimization.to_dict()), 201

    submission = orchestrator.submit(optimization)
    _schedule_polling(optimization.id)
    return jsonify({'optimization': optimization.to_dict(), 'job': submission['job']}), 201


@optimizations_bp.route('/<int:optimization_id>', methods=['GET'])
def get_optimization(optimization_id):
    return jsonify(_with_results(_get_or_404(optimization_id)))


@optimizations_bp.route('/<int:optimization_id>', methods=['DELETE'])
def delete_optimization(optimization_id):
    optimization = _get_or_404(optimization_id)
    poller = _services().get('poller')
    if poller is not None:
        poller.cancel(optimization_id)
    _orchestrator().delete(optimization)
    return '', 204


@optimizations_bp.route('/<int:optimization_id>/execute', methods=['POST'])
def execute_optimization(optimization_id):
    optimization = _get_or_404(optimization_id)
    submission = _orchestrator().submit(optimization)
    _schedule_polling(optimization.id)
    return jsonify({
        'optimization': optimization.to_dict(),
        'job': submission['job'],
        'uploaded_files': submission['uploaded_files'],
    })


@optimizations_bp.route('/<int:optimization_id>/status', methods=['GET'])
def optimization_status(optimization_id):
    optimization = _get_or_404(optimization_id)
    job_status = _orchestrator().check_status(optimization)
    return jsonify({'optimization': _with_results(optimization), 'job_status': job_status})


@optimizations_bp.route('/<int:optimization_id>/cancel', methods=['POST'])
def cancel_optimization(optimization_id):
    optimization = _get_or_404(optimization_id)
    _orchestrator().cancel(optimization)
    poller = _services().get('poller')
    if poller is not None:
        poller.cancel(optimization_id)
    return jsonify(optimization.to_dict())


@optimizations_bp.route('/<int:optimization_id>/logs', methods=['GET'])
def optimization_logs(optimization_id):
    return jsonify(_orchestrator().logs(_get_or_404(optimization_id)))


@optimizations_bp.route('/<int:optimization_id>/preview', methods=['GET'])
def preview_optimization(optimization_id):
    """Generated input files and validation problems, without uploading anything."""
    return jsonify(_orchestrator().preview(_get_or_404(optimization_id)))


@optimizations_bp.route('/<int:optimization_id>/summary', methods=['GET'])
def optimization_summary(optimization_id):
    optimization = _get_or_404(optimization_id)
    summary = _orchestrator().processor.summary(optimization)
    if summary is None:
        return jsonify({'error': 'No results available'}), 404
    return jsonify(summary)
