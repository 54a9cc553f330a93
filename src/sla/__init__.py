"""
Complaint SLA Module
====================

Bounded Context for complaint service level tracking and escalation.

Responsibilities:
- Run a triage clock from submission until an officer is assigned
- Run a priority-sized resolution clock from assignment
- Detect breaches and escalate through levels 1-3 with an audit ledger
- Flag complaints that were not triaged in time
- Refuse resolution without an officer report
- Report SLA compliance metrics
"""

__version__ = "1.0.0"
