"""
Monitoring module for read-only job status visibility.

Provides HTTP endpoints for observing job state, history and timing.
Does NOT transition jobs; see fabtrack.routes.control for that.
"""
