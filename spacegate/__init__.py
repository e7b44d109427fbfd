import os
import logging

import click
from flask import Flask, g, jsonify
from sqlalchemy.exc import SQLAlchemyError

from spacegate.config import config_by_name
from spacegate.errors import InvalidTokenError, SpacegateError
from spacegate.extensions import db, migrate, login_manager, limiter, permission_table


def create_app(config_name=None, config_overrides=None):
    """Application factory.

    Args:
        config_name: Key of config_by_name; defaults to $FLASK_ENV.
        config_overrides: Optional mapping applied on top of the config
            class (tests use it to point at a file database).
    """

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Role table (ConfigError aborts startup) ---
    permission_table.init_app(app)

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from spacegate import models  # noqa: F401

    # --- Register blueprints ---
    from spacegate.blueprints.auth import auth_bp
    from spacegate.blueprints.users import users_bp
    from spacegate.blueprints.spaces import spaces_bp
    from spacegate.blueprints.services import services_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(spaces_bp)
    app.register_blueprint(services_bp)

    @app.before_request
    def reset_principal():
        """Forget the principal of an earlier request sharing this app context.

        A request reuses an app context that is already pushed, as the test
        suite does around every test, and Flask-Login caches the user on g.
        """
        for key in ("_login_user", "token", "auth_error"):
            g.pop(key, None)

    # --- Error handlers ---
    @app.errorhandler(SpacegateError)
    def spacegate_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @login_manager.unauthorized_handler
    def unauthorized():
        error = g.get("auth_error") or InvalidTokenError()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify(ok=False, error="NotFound", message="Not found."), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(ok=False, error="MethodNotAllowed", message="Method not allowed."), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify(ok=False, error="RateLimited", message="Too many requests."), 429

    @app.errorhandler(SQLAlchemyError)
    def database_error(e):
        db.session.rollback()
        app.logger.exception(f"Database error: {e}")
        return jsonify(ok=False, error="InternalError", message="Database error."), 500

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(ok=False, error="InternalError", message="Internal server error."), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("list-roles")
    def list_roles():
        """Print the loaded role table, lowest tier first."""
        for role in permission_table.roles:
            perms = ", ".join(sorted(role.permissions)) or "-"
            click.echo(f"{role.level:>6}  {role.name:<16} {perms}")

    @app.cli.command("create-invite")
    @click.option("--owner", default=None, help="Spend one invite of this user")
    def create_invite(owner):
        """Create a registration invite and print its id.

        Usage:
            flask create-invite
            flask create-invite --owner alice
        """
        from spacegate.services import invite_service, user_service

        try:
            if owner:
                invite = invite_service.issue_invite(user_service.get_user_by_name(owner))
            else:
                invite = invite_service.create_orphan_invite()
        except SpacegateError as e:
            db.session.rollback()
            raise click.ClickException(e.message)

        db.session.commit()
        click.echo(invite.id)

    @app.cli.command("invite-wave")
    @click.option("--min-level", default=0, type=int, help="Lowest access level to include")
    @click.option("--count", default=1, type=int, help="Invites per user")
    def invite_wave(min_level, count):
        """Give every user at or above --min-level --count more invites."""
        from spacegate.services import invite_service

        try:
            users = invite_service.grant_invites(min_level=min_level, count=count)
        except SpacegateError as e:
            db.session.rollback()
            raise click.ClickException(e.message)

        db.session.commit()
        click.echo(f"Gave {count} invite(s) to {users} user(s).")
