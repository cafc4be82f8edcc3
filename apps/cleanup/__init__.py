"""
Cleanup App - Audit Log Retention

Responsibilities:
- Scheduled execution (monthly cron via APScheduler)
- Delete audit records older than AUDIT_RETENTION_DAYS (strict cutoff)
- Retry transient SQLite lock errors (tenacity)
- Targeted deletion per entity or per actor for administrative use

Output:
- Log line with the number of records deleted and the cutoff instant
"""
