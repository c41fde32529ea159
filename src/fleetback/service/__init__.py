"""
Scheduling and execution of host backups.

Scheduler -> TaskQueue -> Executor, wired together by BackupService.
"""

from fleetback.service.cron_parser import CronParseError, CronSpec, parse_cron
from fleetback.service.daemon import BackupService, run_daemon
from fleetback.service.executor import Executor, run_backup
from fleetback.service.queue import TaskQueue
from fleetback.service.scheduler import Schedule, Scheduler, is_due, parse_schedules

__all__ = [
    "BackupService",
    "CronParseError",
    "CronSpec",
    "Executor",
    "Schedule",
    "Scheduler",
    "TaskQueue",
    "is_due",
    "parse_cron",
    "parse_schedules",
    "run_backup",
    "run_daemon",
]
