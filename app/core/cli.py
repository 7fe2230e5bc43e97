"""
CLI commands registration
"""
import click
from app.cli import (init_db_command, create_admin_user_command, create_project_command,
                     generate_annual_receipts_command)
from app.models import ProjectStatus
from app.utils import utcnow


def register_cli_commands(app):
    """Register all CLI commands"""
    @app.cli.command('init-db')
    def init_db():
        """Initialize the database using Flask-Migrate."""
        init_db_command()

    @app.cli.command('create-admin')
    @click.option('--email', default=None, help='Admin email (default: ADMIN_USER_EMAIL)')
    @click.option('--password', default=None, help='Admin password (default: ADMIN_PASSWORD, admin123 in development)')
    @click.option('--username', default=None, help='Admin username (default: admin)')
    def create_admin(email, password, username):
        """Create or update admin user."""
        success = create_admin_user_command(email=email, password=password, username=username)
        if not success:
            raise click.ClickException("Error creating admin user")

    @app.cli.command('create-project')
    @click.argument('name')
    @click.option('--slug', default=None, help='URL slug (default: derived from the name)')
    @click.option('--goal', type=float, default=None, help='Fundraising goal in euros')
    @click.option('--status', type=click.Choice([s.value for s in ProjectStatus]),
                  default=ProjectStatus.ACTIVE.value, show_default=True)
    def create_project(name, slug, goal, status):
        """Create a fundraising project."""
        if create_project_command(name, slug=slug, goal=goal, status=status) is None:
            raise click.ClickException("Error creating project")

    @app.cli.command('generate-annual-receipts')
    @click.option('--year', type=int, default=None, help='Fiscal year (default: last year)')
    def generate_annual_receipts(year):
        """Issue annual fiscal receipts for every donor of a year."""
        generate_annual_receipts_command(year or utcnow().year - 1)
