# commands.py

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from mail_database import Boundaries
from services.auth_service import UserExistsError
from utils.validators import is_valid_email, MIN_PASSWORD_LENGTH


@click.command('create-admin')
@click.option('--email', prompt=True, help='Admin email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
@with_appcontext
def create_admin(email, password):
    """Create a verified admin user without plan limits"""
    email = email.strip()
    if not is_valid_email(email):
        raise click.BadParameter('Invalid email format', param_hint='--email')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise click.BadParameter(f'Must be at least {MIN_PASSWORD_LENGTH} character long', param_hint='--password')

    auth_service = current_app.services.get('auth')
    try:
        user = auth_service.create_user(email, password, Boundaries.TYPE_NO_LIMIT, verified=True)
        db.session.commit()
    except UserExistsError:
        click.echo(f'A user with the email {email} already exists.')
        return
    except SQLAlchemyError as e:
        db.session.rollback()
        raise click.ClickException(f'Failed to create admin: {e}')

    click.echo(f'Admin user created successfully: {user.username}')


@click.command('start-scheduled-campaigns')
@with_appcontext
def start_scheduled_campaigns():
    """Start due scheduled campaigns once, without Celery beat"""
    stats = current_app.services.get('campaign').start_due_schedules()
    click.echo(f"Started {stats['started']} campaign(s), {stats['failed']} failed.")


def init_app(app):
    """Register commands with the Flask app"""
    app.cli.add_command(create_admin)
    app.cli.add_command(start_scheduled_campaigns)
