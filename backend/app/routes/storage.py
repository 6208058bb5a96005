from flask import Blueprint, current_app, jsonify, request

from ..errors import PipelineError

storage_bp = Blueprint('storage', __name__)


def _object_store():
    return current_app.extensions['optimization_services']['object_store']


@storage_bp.errorhandler(PipelineError)
def handle_pipeline_error(error):
    return jsonify({'error': type(error).__name__, 'code': error.code, 'message': str(error)}), error.status


@storage_bp.route('/files', methods=['GET'])
def list_files():
    """List the bucket contents, optionally restricted to a key prefix."""
    files = _object_store().list(request.args.get('prefix', ''))
    return jsonify({'files': files, 'count': len(files)})


@storage_bp.route('/files/<path:filename>', methods=['GET'])
def download_file(filename):
    content = _object_store().download(filename)
    return jsonify({'filename': filename, 'content': content.decode('utf-8', errors='replace')})
