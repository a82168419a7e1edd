"""
Rate limiting configuration.

The Limiter instance is created in sitehub/__init__.py with no default
limits; this module applies granular limits per route.

Usage:
    from sitehub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# endpoint name → limit string (per remote IP)
ENDPOINT_LIMITS = {
    "auth.login": "10/minute",
    "auth.register": "10/minute",
    "admin.reset_database": "3/hour",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to credential and maintenance endpoints.

    Limits (per remote IP):
        - login / register:  10/minute  (credential stuffing)
        - database reset:    3/hour
        - health check:      exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint, limit in ENDPOINT_LIMITS.items():
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(limit)(view)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: login/register 10/min, reset 3/hour")
