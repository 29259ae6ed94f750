"""
Audit collector.

Recomputes the audit status of every monitored dashboard over a rolling
window and replaces each dashboard's stored audit results.

Modules:
- time_window: the shared [begin, end) audit window of a run
- evaluator: the audit evaluator protocol and its HTTP adapter
- results: projection of evaluator outcomes into stored results
- repository: SQLAlchemy adapters for dashboards, CMDB, results and run stats
- refresher: per-dashboard replacement of the stored result set
- isolation: run-one-dashboard, capture outcome, continue
- runner: the collector run itself
"""
