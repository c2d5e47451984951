"""
Restore point routes - list, delete and restore a job's restore points.
"""

from flask import Blueprint, jsonify, request

from restorekeeper import db
from restorekeeper.models import BackupJobRecord
from restorekeeper.backup.store import (
    load_job_state,
    load_repository_state,
    save_job_state,
    save_repository_state
)


bp = Blueprint('restore_points', __name__, url_prefix='/api/jobs/<job_id>/restore-points')


def _restore_point_data(restore_point) -> dict:
    return {
        'id': restore_point.id,
        'creation_time': restore_point.creation_time.isoformat(),
        'storages': [
            {
                'full_name': storage.full_name,
                'source_paths': list(storage.source_paths)
            }
            for storage in restore_point.storages
        ]
    }


@bp.route('/', methods=['GET'])
def list_restore_points(job_id):
    """
    Get a job's restore points, newest first.

    Returns:
        JSON array of restore points with their storages
    """
    record = db.get_or_404(BackupJobRecord, job_id)
    job = load_job_state(record, load_repository_state())

    points = sorted(job.backup.restore_points, key=lambda point: point.creation_time, reverse=True)
    return jsonify([_restore_point_data(point) for point in points])


@bp.route('/<restore_point_id>', methods=['DELETE'])
def delete_restore_point(job_id, restore_point_id):
    """
    Delete a restore point and its storages.

    Returns:
        JSON with success message
    """
    record = db.get_or_404(BackupJobRecord, job_id)

    repository = load_repository_state()
    job = load_job_state(record, repository)
    restore_point = job.backup.get_restore_point(restore_point_id)
    job.delete_restore_point(restore_point)

    save_job_state(record, job)
    save_repository_state(repository)
    db.session.commit()

    return jsonify({'message': 'Restore point deleted successfully'})


@bp.route('/<restore_point_id>/restore', methods=['POST'])
def restore(job_id, restore_point_id):
    """
    Restore the objects of a restore point.

    Request body:
        - target_dir: Directory to restore into (optional). Without it the
          objects are written back to their original paths, overwriting.

    Returns:
        JSON with success message
    """
    record = db.get_or_404(BackupJobRecord, job_id)
    data = request.get_json(silent=True) or {}

    repository = load_repository_state()
    job = load_job_state(record, repository)
    restore_point = job.backup.get_restore_point(restore_point_id)

    target_dir = data.get('target_dir')
    if target_dir:
        repository.restore_to_location(restore_point.storage_names, target_dir)
        message = f"Restored to {target_dir}"
    else:
        repository.restore_to_original_location(restore_point.storage_names)
        message = 'Restored to original location'

    return jsonify({'message': message})
