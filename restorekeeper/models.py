from datetime import datetime
from restorekeeper import db


class BackupJobRecord(db.Model):
    """Backup job configuration and saved job state"""
    __tablename__ = 'backup_jobs'

    id = db.Column(db.String(36), primary_key=True)  # BackupJob UUID
    name = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text)
    enabled = db.Column(db.Boolean, default=True, nullable=False)
    algorithm = db.Column(db.String(20), nullable=False)  # single or split
    schedule_cron = db.Column(db.String(100))  # Cron expression
    retention_policy = db.Column(db.Text)  # JSON policy (null = keep everything)
    state = db.Column(db.Text, nullable=False)  # JSON document from dump_job
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationship
    history = db.relationship('RunHistory', back_populates='job', cascade='all, delete-orphan', lazy='dynamic')

    def __repr__(self):
        return f'<BackupJobRecord {self.name} algorithm={self.algorithm} enabled={self.enabled}>'


class RepositoryState(db.Model):
    """Saved extended repository (location mapping); a single row"""
    __tablename__ = 'repository_state'

    id = db.Column(db.Integer, primary_key=True)
    document = db.Column(db.Text, nullable=False)  # JSON document from dump_repository
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<RepositoryState id={self.id}>'


class RunHistory(db.Model):
    """Restore point creation runs and their logs"""
    __tablename__ = 'run_history'

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.String(36), db.ForeignKey('backup_jobs.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # running, success, failed
    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    restore_point_id = db.Column(db.String(36))
    storages_count = db.Column(db.Integer)
    evicted_count = db.Column(db.Integer)
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)

    # Relationship
    job = db.relationship('BackupJobRecord', back_populates='history')

    def __repr__(self):
        return f'<RunHistory job_id={self.job_id} status={self.status}>'
