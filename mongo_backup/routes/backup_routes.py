"""
Backup routes - on-demand backup and restore triggers.
"""

from flask import Blueprint, current_app, jsonify, request

from mongo_backup.auth import token_required
from mongo_backup.backup.executor import run_scheduled_backup, run_restore
from mongo_backup.scheduler import get_scheduled_jobs, is_scheduler_running


bp = Blueprint('backup', __name__, url_prefix='/api/backup')


@bp.route('/trigger', methods=['POST'])
@token_required
def trigger_backup():
    """
    Run a backup now, in the request thread.

    Returns:
        JSON job result; 500 if the backup failed
    """
    result = run_scheduled_backup(current_app)

    if not result.success:
        return jsonify({'error': f"Backup failed: {result.error_message}", 'result': result.to_dict()}), 500

    return jsonify({'message': 'Backup completed successfully', 'result': result.to_dict()})


@bp.route('/restore', methods=['POST'])
@token_required
def restore_backup():
    """
    Restore from a named archive.

    Query parameters:
        - filename: Archive file name, e.g. mongo-backup-20240115-120000.gz

    Returns:
        JSON job result; 400 on missing filename, 500 if the restore failed
    """
    filename = request.args.get('filename', '').strip()
    if not filename:
        return jsonify({'error': 'Missing required query parameter: filename'}), 400

    try:
        result = run_restore(current_app, filename)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        current_app.logger.error(f"Restore from {filename} failed: {e}")
        return jsonify({'error': f"Restore failed: {e}"}), 500

    return jsonify({'message': 'Restore completed successfully', 'result': result.to_dict()})


@bp.route('/schedule', methods=['GET'])
@token_required
def get_schedule():
    """
    Get scheduler status and upcoming runs.

    Returns:
        JSON with scheduler status, retention setting and scheduled jobs
    """
    return jsonify({
        'scheduler_status': 'running' if is_scheduler_running() else 'stopped',
        'schedule': current_app.config.get('BACKUP_SCHEDULE'),
        'retention_days': current_app.config.get('BACKUP_RETENTION_DAYS'),
        'jobs': get_scheduled_jobs()
    })
