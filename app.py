import logging

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate

from config import Config
from models import db
from models.user import User
from routes import ALL_BLUEPRINTS
from security.csrf import require_csrf
from services.sweeps import expire_subscriptions, reap_abandoned_checkouts
from utils.audit import log_event
from utils.auth_context import load_current_user
from utils.errors import ApiError
from utils.seed import seed_plans

logger = logging.getLogger(__name__)

CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/auth/register",
    "/health",
    "/webhook",  # authenticated by the Stripe signature instead
}


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.errorhandler(ApiError)
    def _api_error(e):
        db.session.rollback()
        if e.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, e.message)
        return jsonify(error=e.message), e.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        if request.path.startswith("/pay/"):
            resp.headers["Content-Security-Policy"] = "default-src 'none'; style-src 'unsafe-inline'; frame-ancestors 'none';"
        else:
            resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        user.role = "ADMIN"
        db.session.commit()
        log_event("USER_ROLE_UPDATE", entity="user", entity_id=user.id, metadata={"to": "ADMIN", "via": "cli"})
        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("seed-plans")
    def seed_plans_command():
        """Insert the default Monthly / Yearly premium plans."""
        added = seed_plans()
        click.echo(f"{added} plan(s) added")

    @app.cli.command("expire-subscriptions")
    def expire_subscriptions_command():
        """Expire ACTIVE subscriptions past their end date and drop lapsed premium."""
        count = expire_subscriptions()
        if count is None:
            click.echo("Another expiry run is in progress; skipped")
        else:
            click.echo(f"{count} subscription(s) expired")

    @app.cli.command("reap-checkouts")
    @click.option("--ttl", type=int, default=None, help="Minutes after which a pending checkout is abandoned.")
    def reap_checkouts_command(ttl):
        """Fail pending payments whose checkout was abandoned."""
        count = reap_abandoned_checkouts(ttl_minutes=ttl)
        if count is None:
            click.echo("Another reaper run is in progress; skipped")
        else:
            click.echo(f"{count} checkout(s) reaped")


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5000)
