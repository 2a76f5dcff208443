"""Request dependencies resolving the services attached to the app."""
from fastapi import Request

from ..services.alerter import NotificationDispatcher
from ..services.monitor_state import MonitorState
from ..services.network_monitor import NetworkMonitor
from ..services.scheduler import SchedulerService


def get_state(request: Request) -> MonitorState:
    return request.app.state.monitor_state


def get_scheduler(request: Request) -> SchedulerService:
    return request.app.state.scheduler


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.scheduler.dispatcher


def get_network_monitor(request: Request) -> NetworkMonitor:
    return request.app.state.network_monitor
