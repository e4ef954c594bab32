"""
Rate limiting configuration.

The Limiter instance is created in defect_tracker/__init__.py with no
default limits; this module applies the auth limit (login/register
brute-force protection) per remote IP.

Usage:
    from defect_tracker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_AUTH_LIMIT = "5 per 15 minutes"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   AUTH_RATE_LIMIT (default 5 per 15 minutes)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    auth_limit = app.config.get("AUTH_RATE_LIMIT", DEFAULT_AUTH_LIMIT)
    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(auth_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — auth: %s", auth_limit)
