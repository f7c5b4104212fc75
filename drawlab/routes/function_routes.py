"""
JSON function endpoints: drawing evaluation, student auth and the admin API
"""
import os
import logging
from datetime import datetime

from flask import Blueprint, request, jsonify, current_app
from werkzeug.utils import secure_filename

from drawlab.core.exceptions import RequestValidationError
from drawlab.core.schemas import EvaluationRequest, parse_request

logger = logging.getLogger(__name__)

functions_bp = Blueprint('functions', __name__, url_prefix='/functions')

ALLOWED_UPLOAD_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp', 'pdf'}


def allowed_file(filename, extensions):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in extensions


def _json_body():
    return request.get_json(silent=True)


@functions_bp.route('/evaluate-drawing', methods=['POST'])
def evaluate_drawing():
    """Score a student drawing against the reference image"""
    payload = parse_request(EvaluationRequest, _json_body())
    result = current_app.evaluator.evaluate(
        payload.user_drawing, payload.reference_image, payload.drawing_type
    )
    return jsonify(result)


@functions_bp.route('/student-auth', methods=['POST'])
def student_auth():
    return jsonify(current_app.student_auth.handle(_json_body()))


@functions_bp.route('/admin-api', methods=['POST'])
def admin_api():
    return jsonify(current_app.admin_api.handle(_json_body()))


@functions_bp.route('/admin-api/upload', methods=['POST'])
def admin_upload():
    """参考資料ファイルのアップロード"""
    current_app.admin_api.require_admin(request.form.get('adminToken'))

    if 'file' not in request.files:
        raise RequestValidationError('No file selected')
    file = request.files['file']
    if file.filename == '':
        raise RequestValidationError('No file selected')
    if not allowed_file(file.filename, ALLOWED_UPLOAD_EXTENSIONS):
        raise RequestValidationError(
            f"Only {', '.join(sorted(ALLOWED_UPLOAD_EXTENSIONS))} files can be uploaded"
        )

    filename = secure_filename(file.filename)
    if not filename:
        raise RequestValidationError('Invalid file name')
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    filename = f"{timestamp}_{filename}"

    upload_dir = current_app.config['UPLOAD_FOLDER']
    os.makedirs(upload_dir, exist_ok=True)
    file.save(os.path.join(upload_dir, filename))
    logger.info(f"Reference file uploaded: {filename}")

    return jsonify({'success': True, 'filename': filename, 'file_url': f'/uploads/{filename}'})
