"""pkgaudit terminal monitor.

Modules
-------
renderer
    ``ReportRenderer`` prints run progress from state transitions and turns
    ``AuditReport`` and ``PipelineError`` values into Rich panels.
"""
