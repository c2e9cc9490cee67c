"""Progress report generation: aggregation, pagination and PDF rendering.

Typical use:

    from progress_reports.services.reports import export_progress_report

    artifact = export_progress_report(records, threshold=70)
    artifact.save("reports/")
"""

__version__ = "1.0.0"
