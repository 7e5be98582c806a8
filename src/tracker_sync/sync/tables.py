"""SQLAlchemy tables backing the sync store."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SyncMappingRow(Base):
    __tablename__ = "sync_mappings"
    __table_args__ = (
        UniqueConstraint("local_id", "remote_key", name="uq_sync_mapping_pair"),
    )

    id = Column(String(36), primary_key=True)
    local_id = Column(String(255), nullable=False, index=True)
    remote_key = Column(String(100), nullable=False, unique=True)
    remote_internal_id = Column(String(100), nullable=False)
    remote_name = Column(String(500), nullable=True)

    last_synced_at = Column(DateTime(timezone=True), nullable=False)
    last_modified_local = Column(DateTime(timezone=True), nullable=True)
    last_modified_remote = Column(DateTime(timezone=True), nullable=True)

    sync_enabled = Column(Boolean, nullable=False, default=True)
    auto_sync = Column(Boolean, nullable=False, default=False)
    conflict_count = Column(Integer, nullable=False, default=0)
    base_snapshot = Column(JSON, nullable=False, default=dict)
    remote_snapshot = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<SyncMapping {self.local_id} <-> {self.remote_key}>"


class SyncJobRow(Base):
    __tablename__ = "sync_jobs"
    __table_args__ = (
        Index("ix_sync_jobs_status_created", "status", "created_at"),
    )

    id = Column(String(36), primary_key=True)
    direction = Column(String(20), nullable=False)
    operation_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, index=True)

    progress = Column(Integer, nullable=False, default=0)
    total_items = Column(Integer, nullable=False, default=1)
    processed_items = Column(Integer, nullable=False, default=0)
    failed_items = Column(Integer, nullable=False, default=0)

    local_ids = Column(JSON, nullable=False, default=list)
    remote_keys = Column(JSON, nullable=False, default=list)
    project_key = Column(String(50), nullable=True)
    epic_key = Column(String(100), nullable=True)
    error = Column(Text, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(String(255), nullable=True, index=True)

    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    # "metadata" is reserved on declarative classes
    job_metadata = Column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<SyncJob {self.id} {self.direction} {self.status}>"


class SyncConflictRow(Base):
    __tablename__ = "sync_conflicts"

    id = Column(String(36), primary_key=True)
    job_id = Column(String(36), nullable=True, index=True)
    mapping_id = Column(String(36), nullable=False, index=True)
    local_id = Column(String(255), nullable=False, index=True)
    remote_key = Column(String(100), nullable=False)
    field = Column(String(255), nullable=False)
    conflict_type = Column(String(30), nullable=False)

    base_value = Column(JSON, nullable=True)
    local_value = Column(JSON, nullable=True)
    remote_value = Column(JSON, nullable=True)

    resolution_strategy = Column(String(20), nullable=True)
    resolved_value = Column(JSON, nullable=True)
    resolved_by = Column(String(255), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    conflict_metadata = Column("metadata", JSON, nullable=False, default=dict)


class FieldMappingRow(Base):
    __tablename__ = "field_mappings"

    id = Column(String(36), primary_key=True)
    source_field = Column(String(255), nullable=False)
    target_field = Column(String(255), nullable=False)
    direction = Column(String(20), nullable=False, index=True)
    # Plain string so an unknown name can be loaded and skipped.
    transform = Column(String(50), nullable=True)
    is_custom_field = Column(Boolean, nullable=False, default=False)
    remote_field_id = Column(String(100), nullable=True)
    default_value = Column(JSON, nullable=True)
    required = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)


class SyncHistoryRow(Base):
    __tablename__ = "sync_history"

    id = Column(String(36), primary_key=True)
    job_id = Column(String(36), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    action = Column(String(50), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    performed_by = Column(String(255), nullable=True)
