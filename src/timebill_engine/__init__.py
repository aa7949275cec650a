"""Time-entry driven billing and payroll engine.

Components:
- Timer engine: one open time entry per employee (start/pause/resume/stop)
- Budget overrun automator: drafts invoices when project estimates are reached
- Payroll aggregation: per-period payroll runs built from time entries
"""

__version__ = "0.1.0"
