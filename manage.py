import argparse
import sys

from app import app
from models import db
from models.company import reconcile_user_counts
from models.user import User
from utils.auth_utils import hash_password


def init_db(args):
    """Creates all tables."""
    with app.app_context():
        db.create_all()
        print("✅ Tables created")


def list_users(args):
    """Lists all users in the database."""
    with app.app_context():
        users = User.query.order_by(User.id).all()
        if not users:
            print("No users found in the database.")
            return

        print(f"{'ID':<4} {'Email':<35} {'Role':<10} {'Active':<8} {'Company ID':<12}")
        print("-" * 75)
        for user in users:
            print(f"{user.id:<4} {user.email:<35} {user.role:<10} {str(user.is_active):<8} {user.company_id or 'N/A':<12}")


def create_admin(args):
    """Creates the first admin account (admins carry no company)."""
    email = args.email.lower().strip()

    with app.app_context():
        if User.query.filter_by(email=email).first():
            print(f"⚠️ User {email} already exists.")
            return

        db.session.add(User(
            name=args.name,
            email=email,
            password=hash_password(args.password),
            role="admin",
            is_active=True,
        ))
        try:
            db.session.commit()
            print(f"✅ Admin {email} created")
        except Exception as e:
            db.session.rollback()
            print(f"❌ Error saving to database: {e}")
            sys.exit(1)


def reconcile_counts(args):
    """Repairs cached company member counts that drifted from real membership."""
    with app.app_context():
        drifted = reconcile_user_counts()
        if args.dry_run:
            db.session.rollback()
        else:
            db.session.commit()

        if not drifted:
            print("✅ All company user counts are consistent")
            return
        for company_id, (old, new) in sorted(drifted.items()):
            print(f"Company {company_id}: {old} -> {new}")
        print(f"{'Would fix' if args.dry_run else 'Fixed'} {len(drifted)} company count(s)")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Task tracker management utility.")
    subparsers = parser.add_subparsers(dest='command', help='Available commands', required=True)

    init_parser = subparsers.add_parser('init-db', help='Create database tables.')
    init_parser.set_defaults(func=init_db)

    list_parser = subparsers.add_parser('list-users', help='List all users.')
    list_parser.set_defaults(func=list_users)

    admin_parser = subparsers.add_parser('create-admin', help='Create an admin user.')
    admin_parser.add_argument('email', type=str, help='The admin\'s email address.')
    admin_parser.add_argument('password', type=str, help='The admin\'s password.')
    admin_parser.add_argument('--name', type=str, default='Administrator', help='Display name.')
    admin_parser.set_defaults(func=create_admin)

    reconcile_parser = subparsers.add_parser('reconcile-counts', help='Recompute company user counts.')
    reconcile_parser.add_argument('--dry-run', action='store_true', help='Report drift without saving.')
    reconcile_parser.set_defaults(func=reconcile_counts)

    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
