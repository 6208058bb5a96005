import logging

from flask import Flask, jsonify
from flask_cors import CORS
from .config import load_config
from .database import init_db
from .routes.optimizations import optimizations_bp
from .routes.storage import storage_bp
from .services.token_cache import TokenCache, SERVICE_COS, SERVICE_WATSON_ML
from .services.object_store_client import ObjectStoreClient
from .services.job_runner_client import JobRunnerClient
from .services.optimization_orchestrator import OptimizationOrchestrator
from .services.status_poller import StatusPoller

def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if test_config:
        app.config.from_mapping(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    CORS(app)

    # Initialize database
    init_db(app)

    # Wire the pipeline services
    init_services(app)

    # Register blueprints
    app.register_blueprint(optimizations_bp, url_prefix='/api/v1/optimizations')
    app.register_blueprint(storage_bp, url_prefix='/api/v1/storage')

    @app.route('/health')
    def health():
        return jsonify({'ok': True})

    return app


def init_services(app):
    """Build the IBM clients, the orchestrator and the poller for *app*.

    Services already present in ``app.extensions`` (e.g. fakes installed by
    tests through ``test_config['SERVICES']``) are kept as they are.
    """
    config = app.config
    services = dict(config.get('SERVICES') or {})

    if 'token_cache' not in services:
        services['token_cache'] = TokenCache(
            token_url=config['IBM_AUTH_URL'],
            api_keys={
                SERVICE_COS: config['IBM_COS_API_KEY'],
                SERVICE_WATSON_ML: config['IBM_WATSON_API_KEY'],
            },
            grant_type=config['IBM_AUTH_GRANT_TYPE'],
            ttl_seconds=config['IBM_TOKEN_TTL'],
            timeout=config['HTTP_TIMEOUT'],
        )
    token_cache = services['token_cache']

    if 'object_store' not in services:
        services['object_store'] = ObjectStoreClient(
            token_cache,
            endpoint=config['IBM_COS_ENDPOINT'],
            bucket=config['IBM_COS_BUCKET_NAME'],
            service_instance_id=config['IBM_COS_SERVICE_INSTANCE_ID'],
            timeout=config['HTTP_TIMEOUT'],
        )

    if 'job_runner' not in services:
        services['job_runner'] = JobRunnerClient(
            token_cache,
            endpoint=config['IBM_WATSON_ENDPOINT'],
            space_id=config['IBM_WATSON_SPACE_ID'],
            job_id=config['IBM_WATSON_JOB_ID'],
            timeout=config['HTTP_TIMEOUT'],
        )

    if 'orchestrator' not in services:
        services['orchestrator'] = OptimizationOrchestrator(services['object_store'], services['job_runner'])

    if 'poller' not in services and config['STATUS_POLLING_ENABLED']:
        services['poller'] = StatusPoller(
            app,
            services['orchestrator'],
            interval_seconds=config['STATUS_CHECK_INTERVAL'],
            max_polls=config['MAX_STATUS_CHECKS'],
        )

    app.extensions['optimization_services'] = services
    return services
