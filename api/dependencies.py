"""
FastAPI dependencies resolving the services wired at startup
"""

from fastapi import Request

from importer.gate import JobLauncher
from importer.repository import BillingDB
from importer.scheduler import HealthMonitor


def get_launcher(request: Request) -> JobLauncher:
    return request.app.state.launcher


def get_billing_db(request: Request) -> BillingDB:
    return request.app.state.billing_db


def get_health_monitor(request: Request) -> HealthMonitor:
    return request.app.state.health_monitor
