import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from sitedesk.config import config_by_name
from sitedesk.extensions import db, migrate, login_manager, csrf, limiter
from sitedesk.store import get_store, init_store


def create_app(config_name=None, store=None):
    """Application factory.

    `store` injects a site store instead of building one from STORE_BACKEND.
    """

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from sitedesk import models  # noqa: F401

    # --- Site store (sql | memory) ---
    init_store(app, store)

    # --- Register blueprints ---
    from sitedesk.blueprints.auth import auth_bp
    from sitedesk.blueprints.admin import admin_bp
    from sitedesk.blueprints.site_status import site_status_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(site_status_bp)

    # Edge lookup is called server-to-server, no CSRF token
    csrf.exempt(site_status_bp)

    # --- Error handlers (JSON API, no templates) ---
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify(ok=False, error=e.description), e.code

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(ok=False, error="Internal server error."), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Legacy XSS filter
        response.headers["X-XSS-Protection"] = "1; mode=block"
        # Restrict browser features
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=()"
        )
        # JSON only: no scripts, styles or frames
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@sitedesk.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    @click.option("--demo/--no-demo", default=True, help="Also create a demo client + site")
    def seed_admin(email, password, demo):
        """Create the admin user and, optionally, a demo client with one site.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret --no-demo
        """
        from sitedesk.models.user import User
        from sitedesk.services import client_service, site_service

        # --- 1. Admin user ---
        existing = User.query.filter_by(email=email).first()
        if existing:
            click.echo(f"Admin user already exists: {email}")
        else:
            admin = User(email=email, full_name="Admin", is_admin=True)
            admin.set_password(password)
            db.session.add(admin)
            db.session.commit()
            click.echo(f"Created admin user: {email}")

        if not demo:
            return

        # --- 2. Demo client + managed site ---
        store = get_store()
        client_id = client_service.create_client(store, {
            "full_name": "Demo Bakery",
            "email": "owner@demobakery.example",
            "status": "active",
        })
        site_id = site_service.create_site(store, {
            "client_id": client_id,
            "type": "managed",
            "label": "Demo Bakery site",
            "domain": f"demo-{client_id[:8]}.example",
            "template_key": "marketing",
        })

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Admin:   {email} / {password}")
        click.echo(f"  Client:  Demo Bakery (id: {client_id})")
        click.echo(f"  Site:    {site_id}")
        click.echo("=" * 60)

    @app.cli.command("repair-claims")
    @click.option("--dry-run", is_flag=True, help="Report what would change without writing.")
    def repair_claims(dry_run):
        """Recreate domain claims missing for live sites and list conflicts.

        Usage:
            flask repair-claims
            flask repair-claims --dry-run
        """
        from sitedesk.services.site_service import repair_domain_claims

        report = repair_domain_claims(get_store(), dry_run=dry_run)
        for line in report["logs"]:
            click.echo(line)

        summary = report["summary"]
        click.echo("")
        click.echo("=" * 60)
        click.echo(f"  Sites:      {summary['total_sites']}")
        click.echo(f"  Created:    {summary['claims_created']}")
        click.echo(f"  Reassigned: {summary['claims_reassigned']}")
        click.echo(f"  Existing:   {summary['claims_existed']}")
        click.echo(f"  Conflicts:  {summary['conflicts_found']}")
        if dry_run:
            click.echo("  (dry run, nothing written)")
        click.echo("=" * 60)
