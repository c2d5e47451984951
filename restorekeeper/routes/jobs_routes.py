"""
Backup jobs routes - CRUD operations, job objects and job execution.
"""

import json
from flask import Blueprint, jsonify, request

from restorekeeper import db
from restorekeeper.models import BackupJobRecord, RunHistory
from restorekeeper.scheduler import sync_backup_jobs, get_scheduled_jobs, trigger_backup_now
from restorekeeper.backup.algorithms import create_algorithm
from restorekeeper.backup.entities import JobObject
from restorekeeper.backup.errors import ValidationError
from restorekeeper.backup.executor import execute_backup_job
from restorekeeper.backup.job import BackupJob
from restorekeeper.backup.retention import create_controller
from restorekeeper.backup.store import (
    load_job_state,
    load_repository_state,
    save_job_state,
    save_repository_state
)


bp = Blueprint('jobs', __name__, url_prefix='/api/jobs')


def _job_summary(record: BackupJobRecord) -> dict:
    state = json.loads(record.state)
    return {
        'id': record.id,
        'name': record.name,
        'description': record.description,
        'enabled': record.enabled,
        'algorithm': record.algorithm,
        'schedule_cron': record.schedule_cron,
        'retention_policy': json.loads(record.retention_policy) if record.retention_policy else None,
        'job_objects': state['job_objects'],
        'restore_points_count': len(state['backup']['restore_points']),
        'created_at': record.created_at.isoformat(),
        'updated_at': record.updated_at.isoformat()
    }


def _validate_policy(policy):
    """Return the policy serialized for storage, or None when unset."""
    if policy is None:
        return None
    create_controller(policy)
    return json.dumps(policy)


def _request_path(data) -> str:
    path = (data or {}).get('path')
    if not path:
        raise ValidationError('Job object path is required')
    return path


@bp.route('/', methods=['GET'])
def list_jobs():
    """
    Get list of all backup jobs.

    Returns:
        JSON array of backup jobs
    """
    records = BackupJobRecord.query.order_by(BackupJobRecord.created_at.desc()).all()
    return jsonify([_job_summary(record) for record in records])


@bp.route('/schedule', methods=['GET'])
def list_schedule():
    """
    Get the jobs currently known to the scheduler.

    Returns:
        JSON array of scheduled jobs (empty if the scheduler is disabled)
    """
    return jsonify(get_scheduled_jobs())


@bp.route('/<job_id>', methods=['GET'])
def get_job(job_id):
    """
    Get a single backup job by ID.

    Args:
        job_id: Backup job ID

    Returns:
        JSON with job details
    """
    record = db.get_or_404(BackupJobRecord, job_id)
    return jsonify(_job_summary(record))


@bp.route('/', methods=['POST'])
def create_job():
    """
    Create a new backup job.

    Request body:
        - name: Job name (required)
        - description: Job description (optional)
        - enabled: Enable job (default: true)
        - algorithm: 'single' or 'split' (default: 'single')
        - paths: Initial job object paths (optional)
        - schedule_cron: Cron expression (optional)
        - retention_policy: Retention policy object (optional)

    Returns:
        JSON with created job details
    """
    data = request.get_json() or {}

    if not data.get('name'):
        return jsonify({'error': 'Job name is required'}), 400

    existing = BackupJobRecord.query.filter_by(name=data['name']).first()
    if existing:
        return jsonify({'error': 'Job name already exists'}), 400

    algorithm = create_algorithm(data.get('algorithm', 'single'))
    retention_policy = _validate_policy(data.get('retention_policy'))

    repository = load_repository_state()
    job = BackupJob(
        repository,
        algorithm,
        [JobObject(path) for path in data.get('paths', [])]
    )

    record = BackupJobRecord(
        id=job.id,
        name=data['name'],
        description=data.get('description', ''),
        enabled=data.get('enabled', True),
        algorithm=algorithm.name,
        schedule_cron=data.get('schedule_cron'),
        retention_policy=retention_policy,
        state='{}'
    )
    save_job_state(record, job)
    save_repository_state(repository)

    db.session.add(record)
    db.session.commit()

    sync_backup_jobs()

    return jsonify({
        'id': record.id,
        'message': 'Backup job created successfully'
    }), 201


@bp.route('/<job_id>', methods=['PUT'])
def update_job(job_id):
    """
    Update backup job settings.

    Args:
        job_id: Backup job ID

    Request body: name, description, enabled, schedule_cron,
    retention_policy (all optional)

    Returns:
        JSON with success message
    """
    record = db.get_or_404(BackupJobRecord, job_id)
    data = request.get_json() or {}

    if 'name' in data:
        if data['name'] != record.name:
            existing = BackupJobRecord.query.filter_by(name=data['name']).first()
            if existing:
                return jsonify({'error': 'Job name already exists'}), 400
        record.name = data['name']

    if 'description' in data:
        record.description = data['description']

    if 'enabled' in data:
        record.enabled = data['enabled']

    if 'schedule_cron' in data:
        record.schedule_cron = data['schedule_cron']

    if 'retention_policy' in data:
        record.retention_policy = _validate_policy(data['retention_policy'])

    db.session.commit()

    sync_backup_jobs()

    return jsonify({'message': 'Backup job updated successfully'})


@bp.route('/<job_id>', methods=['DELETE'])
def delete_job(job_id):
    """
    Delete a backup job together with its restore points and storages.

    Args:
        job_id: Backup job ID

    Returns:
        JSON with success message
    """
    record = db.get_or_404(BackupJobRecord, job_id)

    repository = load_repository_state()
    job = load_job_state(record, repository)
    for restore_point in job.backup.restore_points:
        job.delete_restore_point(restore_point)
    # Also drops storages no restore point references any more
    repository.delete_job_namespace(job.id)
    save_repository_state(repository)

    # Cascade deletes the run history
    db.session.delete(record)
    db.session.commit()

    sync_backup_jobs()

    return jsonify({'message': 'Backup job deleted successfully'})


@bp.route('/<job_id>/toggle', methods=['POST'])
def toggle_job(job_id):
    """
    Toggle a job's enabled status.

    Returns:
        JSON with new enabled status
    """
    record = db.get_or_404(BackupJobRecord, job_id)

    record.enabled = not record.enabled
    db.session.commit()

    sync_backup_jobs()

    return jsonify({
        'enabled': record.enabled,
        'message': f"Job {'enabled' if record.enabled else 'disabled'} successfully"
    })


@bp.route('/<job_id>/objects', methods=['POST'])
def add_job_object(job_id):
    """
    Add a job object.

    Request body:
        - path: Full path of the source object

    Returns:
        JSON with the job's objects
    """
    record = db.get_or_404(BackupJobRecord, job_id)
    path = _request_path(request.get_json())

    job = load_job_state(record, load_repository_state())
    job.add_job_object(JobObject(path))

    save_job_state(record, job)
    db.session.commit()

    return jsonify({'job_objects': [obj.full_name for obj in job.job_objects]}), 201


@bp.route('/<job_id>/objects', methods=['DELETE'])
def delete_job_object(job_id):
    """
    Remove a job object.

    Request body:
        - path: Full path of the source object

    Returns:
        JSON with the job's objects
    """
    record = db.get_or_404(BackupJobRecord, job_id)
    path = _request_path(request.get_json())

    job = load_job_state(record, load_repository_state())
    job.delete_job_object(JobObject(path))

    save_job_state(record, job)
    db.session.commit()

    return jsonify({'job_objects': [obj.full_name for obj in job.job_objects]})


@bp.route('/<job_id>/run', methods=['POST'])
def run_job_now(job_id):
    """
    Create a restore point now (disabled jobs included).

    Returns:
        JSON with the run result
    """
    db.get_or_404(BackupJobRecord, job_id)

    history = execute_backup_job(job_id, allow_disabled=True)
    status_code = 201 if history.status == 'success' else 500

    return jsonify({
        'run_id': history.id,
        'status': history.status,
        'restore_point_id': history.restore_point_id,
        'error_message': history.error_message
    }), status_code


@bp.route('/<job_id>/trigger', methods=['POST'])
def trigger_job(job_id):
    """
    Queue a run in the background scheduler.

    Returns:
        JSON with the queued scheduler job id
    """
    record = db.get_or_404(BackupJobRecord, job_id)

    try:
        manual_id = trigger_backup_now(record.id)
    except RuntimeError:
        return jsonify({'error': 'Scheduler is not running, use /run instead'}), 409

    return jsonify({
        'scheduler_job_id': manual_id,
        'message': f"Backup job {record.name} queued"
    }), 202


@bp.route('/<job_id>/history', methods=['GET'])
def get_job_history(job_id):
    """
    Get run history for a specific job.

    Query params:
        - limit: Max number of records (default: 50, max: 200)

    Returns:
        JSON array of run history records
    """
    db.get_or_404(BackupJobRecord, job_id)

    limit = request.args.get('limit', 50, type=int)
    if limit > 200:
        limit = 200

    history = RunHistory.query.filter_by(job_id=job_id).order_by(
        RunHistory.started_at.desc()
    ).limit(limit).all()

    history_data = []
    for record in history:
        history_data.append({
            'id': record.id,
            'status': record.status,
            'started_at': record.started_at.isoformat(),
            'completed_at': record.completed_at.isoformat() if record.completed_at else None,
            'restore_point_id': record.restore_point_id,
            'storages_count': record.storages_count,
            'evicted_count': record.evicted_count,
            'error_message': record.error_message,
            'logs': record.logs
        })

    return jsonify(history_data)
