"""
Orchestration package for running workflow migrations.

Provides the Migration engine, which walks an Anthill Pro workflow and drives
hooks over its jobs and steps, and the report generator for finished runs.
"""

from .migration import Migration
from .migration_report import MigrationReport

__all__ = [
    'Migration',
    'MigrationReport'
]
