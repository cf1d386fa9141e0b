"""
Import stage of the usage collection pipeline.

Modules:
    fileutil: Checksums, folder listing and file creation helpers
    repository: Billing database access (repositories, unit of work, bulk insert)
    step_service: Step lifecycle transitions and eligible-file selection
    engine: ImporterStep, one end-to-end import execution
    vendor_mapper: Vendor mapping YAML loader
    tracing: Trace events and observers (logging, metrics)
    gate: Single-run admission control and background launcher
    scheduler: Health loop and periodic import trigger

Usage:
    from importer.repository import BillingDB
    from importer.step_service import StepService
    from importer.engine import ImporterStep
    from importer.vendor_mapper import load_vendor_mapper

Example:
    billing_db = BillingDB(async_session_maker)
    options = ImporterOptions.from_settings(settings)
    step_service = StepService(billing_db, options)
    importer = ImporterStep(step_service, options, billing_db)

    step = await importer.execute_import_step(load_vendor_mapper(path))
    if step is None:
        print("Nothing to import")
"""

__all__ = [
    "BillingDB",
    "UnitOfWork",
    "StepService",
    "ImporterStep",
    "load_vendor_mapper",
    "RunGate",
    "JobLauncher",
    "HealthMonitor",
    "ImportScheduler",
]
