"""Networking utilities: HTTP transport and connectivity tracking."""

from .connectivity import ConnectivityMonitor, http_probe, wait_for_connection
from .http import RestEndpoint, TransportResponse, retry_session, transport_error_from_requests

__all__ = [
    "ConnectivityMonitor",
    "RestEndpoint",
    "TransportResponse",
    "http_probe",
    "retry_session",
    "transport_error_from_requests",
    "wait_for_connection",
]
