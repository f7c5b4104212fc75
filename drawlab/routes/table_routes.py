"""
Table API used directly by the browser client: content listing,
test history and uploaded reference files
"""
import os
import json
import logging

from flask import Blueprint, Response, request, jsonify, current_app, send_from_directory, abort

from drawlab.core.export import build_result_export
from drawlab.core.database import to_db_time, utcnow, format_timestamp
from drawlab.core.exceptions import NotFoundError, RequestValidationError
from drawlab.core.media import media_links
from drawlab.core.schemas import CONTENT_TYPES, DRAWING_TYPES, HistoryItemCreate, parse_request

logger = logging.getLogger(__name__)

table_bp = Blueprint('tables', __name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200


def _content_dict(row):
    item = {
        'id': row['id'],
        'semester': row['semester'],
        'drawing_type': row['drawing_type'],
        'content_type': row['content_type'],
        'title': row['title'],
        'file_url': row['file_url'],
        'created_at': format_timestamp(row['created_at']),
    }
    item.update(media_links(row['file_url']))
    return item


def _history_dict(row):
    try:
        errors = json.loads(row['errors'] or '[]')
    except ValueError:
        logger.warning(f"test_history {row['id']} has malformed errors JSON")
        errors = []
    return {
        'id': row['id'],
        'user_identifier': row['user_identifier'],
        'drawing_type': row['drawing_type'],
        'duration_seconds': row['duration_seconds'],
        'score': row['score'],
        'accuracy': row['accuracy'],
        'errors': errors,
        'feedback': row['feedback'],
        'created_at': format_timestamp(row['created_at']),
    }


@table_bp.route('/api/content')
def list_content():
    """semester / drawing_type / content_type で絞り込み"""
    clauses, params = [], []

    semester = request.args.get('semester')
    if semester:
        try:
            params.append(int(semester))
        except ValueError:
            raise RequestValidationError('semester must be an integer')
        clauses.append('semester = ?')

    drawing_type = request.args.get('drawing_type')
    if drawing_type:
        if drawing_type not in DRAWING_TYPES:
            raise RequestValidationError(f"drawing_type must be one of {', '.join(DRAWING_TYPES)}")
        clauses.append('drawing_type = ?')
        params.append(drawing_type)

    content_type = request.args.get('content_type')
    if content_type:
        if content_type not in CONTENT_TYPES:
            raise RequestValidationError(f"content_type must be one of {', '.join(CONTENT_TYPES)}")
        clauses.append('content_type = ?')
        params.append(content_type)

    query = "SELECT id, semester, drawing_type, content_type, title, file_url, created_at FROM content"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY created_at DESC, id DESC"

    rows = current_app.db_manager.execute_query(query, tuple(params))
    return jsonify({'success': True, 'content': [_content_dict(row) for row in rows]})


@table_bp.route('/api/test-history', methods=['GET'])
def list_test_history():
    user_identifier = request.args.get('userIdentifier', '').strip()
    if not user_identifier:
        raise RequestValidationError('userIdentifier is required')
    try:
        limit = int(request.args.get('limit', DEFAULT_HISTORY_LIMIT))
    except ValueError:
        raise RequestValidationError('limit must be an integer')
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))

    rows = current_app.db_manager.execute_query(
        "SELECT * FROM test_history WHERE user_identifier = ? ORDER BY created_at DESC, id DESC LIMIT ?",
        (user_identifier, limit)
    )
    return jsonify({'success': True, 'history': [_history_dict(row) for row in rows]})


@table_bp.route('/api/test-history', methods=['POST'])
def create_test_history():
    item = parse_request(HistoryItemCreate, request.get_json(silent=True))
    history_id = current_app.db_manager.execute_insert(
        "INSERT INTO test_history (user_identifier, drawing_type, duration_seconds, score, accuracy, "
        "errors, feedback, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (item.user_identifier, item.drawing_type, item.duration_seconds, item.score,
         item.accuracy, json.dumps(item.errors), item.feedback, to_db_time(utcnow()))
    )
    return jsonify({'success': True, 'id': history_id}), 201


@table_bp.route('/api/test-history/<int:history_id>/export')
def export_test_history(history_id):
    """結果をJSONファイルとしてダウンロード"""
    rows = current_app.db_manager.execute_query(
        "SELECT * FROM test_history WHERE id = ?", (history_id,)
    )
    if not rows:
        raise NotFoundError('Test result not found')
    item = _history_dict(rows[0])

    export = build_result_export(
        drawing_type=item['drawing_type'],
        duration_seconds=item['duration_seconds'],
        result=item,
        date=item['created_at'],
    )
    return Response(
        json.dumps(export, indent=2),
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename=drawing-test-{history_id}.json'}
    )


@table_bp.route('/uploads/<filename>')
def serve_upload(filename):
    """アップロード済み参考資料の配信"""
    # セキュリティ: ファイル名のサニタイズ
    if '..' in filename or '/' in filename:
        abort(403)

    upload_dir = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    if not os.path.exists(os.path.join(upload_dir, filename)):
        abort(404)
    return send_from_directory(upload_dir, filename)
