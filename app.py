import logging

from flask import Flask, jsonify
from flask_migrate import Migrate

from config import Config
from routes import health_bp, turf_bp, booking_bp, payments_bp

from models import db
from services.notifications import NotificationSender
from services.payment_provider import PaymentProvider
from services.scheduler import init_scheduler
from utils.auth_context import load_current_user
from utils.errors import BookingError
from utils.logging_config import configure_logging
from utils.seed import ensure_role, seed_roles

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(turf_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Collaborators, swappable in tests
    app.extensions["notifier"] = NotificationSender()
    app.extensions["payment_provider"] = PaymentProvider.from_config(app.config)

    with app.app_context():
        db.create_all()
        seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)
    init_scheduler(app)

    return app

#-------------------------
import click
from models.user import User


def register_cli(app):
    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role")
    def grant_role(email, role):
        """Give a user PLAYER, OWNER or ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        role_row = ensure_role(role)
        if not role_row:
            click.echo(f"Unknown role {role}")
            return

        if role_row not in user.roles:
            user.roles.append(role_row)
        db.session.commit()

        click.echo(f"{user.email} granted {role_row.name}")

    @app.cli.command("issue-session")
    @click.argument("email")
    def issue_session(email):
        """Print a session token for a user verified by the identity service."""
        from security.session import create_session

        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user or not user.is_active:
            click.echo("User not found")
            return
        click.echo(create_session(user.id))

    @app.cli.command("revoke-session")
    @click.argument("token")
    def revoke_session_cmd(token):
        """Invalidate a session token, e.g. after the identity service signs a user out."""
        from security.session import revoke_session

        click.echo("revoked" if revoke_session(token.strip()) else "Session not found")

    @app.cli.command("sweep-bookings")
    def sweep_bookings_cmd():
        """Run one booking lifecycle sweep now."""
        from services.lifecycle import sweep_bookings

        result = sweep_bookings()
        click.echo(
            f"checked={result.checked} started={result.started} "
            f"completed={result.completed} failed={result.failed}"
        )

    @app.cli.command("rebuild-bindings")
    @click.argument("turf_id", type=int)
    def rebuild_bindings_cmd(turf_id):
        """Recompute a turf's slot bindings from the booking ledger."""
        from models.turf import Turf
        from services.reconciler import rebuild_bindings

        turf = db.session.get(Turf, turf_id)
        if not turf:
            click.echo("Turf not found")
            return
        bound = rebuild_bindings(turf)
        db.session.commit()
        click.echo(f"turf {turf.id}: {bound} slots bound")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
