from datetime import datetime

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import db

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health_check():
    """Health check endpoint for the load balancer"""
    try:
        db.session.execute(text('SELECT 1'))
        database = 'ok'
    except SQLAlchemyError as e:
        db.session.rollback()
        database = f'error: {e.__class__.__name__}'

    status = 'ok' if database == 'ok' else 'degraded'
    return jsonify({
        'status': status,
        'service': 'mymadrassa-api',
        'timestamp': datetime.utcnow().isoformat() + 'Z',
        'database': database,
    }), 200 if status == 'ok' else 503
