import click
from werkzeug.security import generate_password_hash
from division_forms.models import db, User, ROLE_SUPERADMIN
from division_forms.services.user_service import normalize_email

def register_commands(app):
    @app.cli.command('create-superadmin')
    @click.option('--email', required=True)
    @click.option('--password', required=True)
    @click.option('--full-name', default='Super Admin', show_default=True)
    def create_superadmin(email, password, full_name):
        """Creates a superadmin, or promotes and resets an existing user."""
        email = normalize_email(email)
        user = User.query.filter_by(email=email).first()
        if user:
            user.role = ROLE_SUPERADMIN
            user.password_hash = generate_password_hash(password)
            db.session.commit()
            click.echo(f"User {email} already exists. Promoted to superadmin.")
            return

        user = User(
            full_name=full_name,
            email=email,
            password_hash=generate_password_hash(password),
            role=ROLE_SUPERADMIN
        )
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created superadmin {email}.")
