"""
Migration report generator for finished workflow migrations.

Builds a report from a Migration's final state and the inventory its hooks
accumulated in the context, and formats it for console display, JSON export
and CSV export.
"""

import csv
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from orchestrator.migration import Migration


class MigrationReport:
    """Generates migration reports from a finished Migration."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize migration report generator.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger('anthill_migrator.report')

    def generate_report(self, migration: Migration, migration_duration: float) -> Dict[str, Any]:
        """
        Generate a migration report.

        Args:
            migration: Migration after run() returned
            migration_duration: Wall clock duration of the run in seconds

        Returns:
            Migration report dictionary
        """
        self.logger.info("Generating migration report")

        result = migration.context.result
        layout = migration.context.layout

        report = {
            'summary': self._build_summary(migration, migration_duration),
            'layout': layout.to_dict() if layout is not None else {'jobs': [], 'groups': []},
            'jobs': list(result.get('jobs', [])),
            'steps': list(result.get('steps', [])),
            'skipped': list(result.get('skipped', [])),
            'timestamp': datetime.now().isoformat()
        }

        self.logger.info(
            f"Report generated: {report['summary']['jobs_completed']}/{report['summary']['jobs_total']} jobs, "
            f"status {report['summary']['status']}"
        )

        return report

    def _build_summary(self, migration: Migration, duration: float) -> Dict[str, Any]:
        """Build high-level summary section."""
        error = migration.error
        return {
            'workflow_id': migration.workflow_id,
            'workflow_name': migration.workflow_name,
            'status': migration.status.name,
            'progress': migration.progress,
            'jobs_completed': migration.completed_jobs,
            'jobs_total': migration.total_jobs,
            'error': str(error) if error is not None else None,
            'error_type': type(error).__name__ if error is not None else None,
            'duration_seconds': duration,
            'duration_formatted': self._format_duration(duration)
        }

    @staticmethod
    def _format_duration(seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{minutes}m {secs}s"
        else:
            hours = int(seconds // 3600)
            minutes = int((seconds % 3600) // 60)
            secs = int(seconds % 60)
            return f"{hours}h {minutes}m {secs}s"

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """
        Format report for console display.

        Args:
            report: Migration report dictionary

        Returns:
            Formatted console string
        """
        sections = []

        sections.append("=" * 60)
        sections.append("MIGRATION REPORT")
        sections.append("=" * 60)
        sections.append("")

        summary = report.get('summary', {})
        sections.append("Summary:")
        sections.append(f"  Workflow:    {summary.get('workflow_name') or 'unknown'} "
                        f"(id {summary.get('workflow_id')})")
        sections.append(f"  Status:      {summary.get('status', 'unknown')}")
        sections.append(f"  Jobs:        {summary.get('jobs_completed', 0)}/{summary.get('jobs_total', 0)}")
        sections.append(f"  Steps:       {len(report.get('steps', []))} recorded, "
                        f"{len(report.get('skipped', []))} skipped")
        sections.append(f"  Duration:    {summary.get('duration_formatted', '0s')}")

        if summary.get('error'):
            sections.append(f"  Error:       {summary['error_type']}: {summary['error']}")

        sections.append("")

        groups = report.get('layout', {}).get('groups', [])
        if groups:
            sections.append("Parallel Groups:")
            sections.append("-" * 60)
            for index, group in enumerate(groups, 1):
                sections.append(f"  Group {index}:")
                for stack in group:
                    slots = [name if name is not None else '|' for name in stack]
                    sections.append(f"    {' -> '.join(slots)}")
            sections.append("")

        skipped = report.get('skipped', [])
        if skipped:
            sections.append("Skipped Steps:")
            sections.append("-" * 60)
            for entry in skipped[:10]:
                sections.append(f"  - {entry.get('job')}/{entry.get('step')}: {entry.get('kind')}")
            if len(skipped) > 10:
                sections.append(f"  ... and {len(skipped) - 10} more")
            sections.append("")

        sections.append("=" * 60)

        return "\n".join(sections)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Migration report dictionary
            filepath: Output file path
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)

            self.logger.info(f"JSON report exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {str(e)}")

    def export_csv_steps(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export the step inventory to CSV, one row per recorded or skipped step.

        Args:
            report: Migration report dictionary
            filepath: Output file path
        """
        rows: List[List[Any]] = []
        for entry in report.get('steps', []):
            rows.append([entry.get('job'), entry.get('step'), entry.get('kind'), 'recorded'])
        for entry in report.get('skipped', []):
            rows.append([entry.get('job'), entry.get('step'), entry.get('kind'), 'skipped'])

        try:
            with open(filepath, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(['Job', 'Step', 'Kind', 'Outcome'])
                writer.writerows(rows)

            self.logger.info(f"CSV step inventory exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export CSV step inventory: {str(e)}")


__all__ = ['MigrationReport']
