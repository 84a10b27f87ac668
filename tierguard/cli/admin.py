import click
import uuid
from datetime import datetime, timezone
from tierguard.core.database import SessionLocal
from tierguard.api.route_catalog import ROUTES
from tierguard.models import Identity, Membership, Organization, OrgRole, SubscriptionRecord, SubscriptionState, User
from tierguard.services.access_guard import resolve_route_access
import logging

logger = logging.getLogger(__name__)


def _find_user(db, email, user_id):
    if user_id:
        return db.query(User).filter(User.id == user_id).first()
    return db.query(User).filter(User.email == email).first()


@click.group()
def cli():
    """Tierguard admin commands"""
    pass


@cli.command('super-admin')
@click.option('--email', required=False, help='User email')
@click.option('--id', 'user_id', required=False, help='User id (Firebase UID)')
@click.option('--set', 'set_flag', is_flag=True, help='Grant super-admin status')
@click.option('--remove', 'remove_flag', is_flag=True, help='Revoke super-admin status')
@click.option('--list', 'list_flag', is_flag=True, help='List all super-admins')
def super_admin(email, user_id, set_flag, remove_flag, list_flag):
    """Manage platform-wide super-admin status"""
    db = SessionLocal()
    try:
        if list_flag:
            admins = db.query(User).filter(User.is_super_admin == True).all()
            if not admins:
                click.echo("No super-admins found")
            else:
                click.echo(f"\nFound {len(admins)} super-admins:\n")
                for user in admins:
                    click.echo(f"  - {user.email} (ID: {user.id})")
            return

        if not email and not user_id:
            click.echo("❌ Please provide --email or --id for this operation", err=True)
            return

        user = _find_user(db, email, user_id)
        if not user:
            click.echo(f"❌ User not found: {user_id or email}", err=True)
            return

        if set_flag:
            if user.is_super_admin:
                click.echo(f"✓ User {user.email} is already a super-admin")
            else:
                user.is_super_admin = True
                db.commit()
                click.echo(f"✓ Granted super-admin to {user.email}")
        elif remove_flag:
            if not user.is_super_admin:
                click.echo(f"✓ User {user.email} is not a super-admin")
            else:
                user.is_super_admin = False
                db.commit()
                click.echo(f"✓ Revoked super-admin from {user.email}")
        else:
            status = "a super-admin" if user.is_super_admin else "not a super-admin"
            click.echo(f"User {user.email} is {status}")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--org', 'org_slug', required=True, help='Organization slug')
@click.option('--email', required=False, help='User email')
@click.option('--id', 'user_id', required=False, help='User id (Firebase UID)')
@click.option('--role', type=click.Choice([r.value for r in OrgRole]), required=False, help='Role to assign')
@click.option('--remove', 'remove_flag', is_flag=True, help='Remove the user from the organization')
def member(org_slug, email, user_id, role, remove_flag):
    """Assign, show or remove a user's role in an organization"""
    db = SessionLocal()
    try:
        if not email and not user_id:
            click.echo("❌ Please provide --email or --id for this operation", err=True)
            return

        organization = db.query(Organization).filter(Organization.slug == org_slug).first()
        if not organization:
            click.echo(f"❌ Organization not found: {org_slug}", err=True)
            return

        user = _find_user(db, email, user_id)
        if not user:
            click.echo(f"❌ User not found: {user_id or email}", err=True)
            return

        membership = db.query(Membership).filter(
            Membership.organization_id == organization.id,
            Membership.user_id == user.id,
        ).first()

        if remove_flag:
            if membership is None:
                click.echo(f"✓ User {user.email} is not a member of {org_slug}")
            else:
                db.delete(membership)
                db.commit()
                click.echo(f"✓ Removed {user.email} from {org_slug}")
        elif role:
            if membership is None:
                membership = Membership(
                    id=str(uuid.uuid4()),
                    organization_id=organization.id,
                    user_id=user.id,
                    role=role,
                )
                db.add(membership)
            else:
                membership.role = role
            db.commit()
            click.echo(f"✓ {user.email} is {role} in {org_slug}")
        elif membership is None:
            click.echo(f"User {user.email} is not a member of {org_slug}")
        else:
            click.echo(f"User {user.email} is {membership.role} in {org_slug}")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('check-access')
@click.option('--route', 'route_name', type=click.Choice(sorted(ROUTES)), required=True, help='Route to evaluate')
@click.option('--role', type=click.Choice([r.value for r in OrgRole]), required=False, help='Organization role')
@click.option('--super-admin', 'is_super_admin', is_flag=True, help='Evaluate as a super-admin')
@click.option('--anonymous', is_flag=True, help='Evaluate as a signed-out caller')
@click.option('--subscribed', is_flag=True, help='Account has an active paid subscription')
@click.option('--plan', 'plan_name', required=False, help='Plan name reported by the billing provider')
@click.option('--trial-end', 'trial_end', required=False, help='Trial end (ISO 8601, UTC if no offset)')
def check_access(route_name, role, is_super_admin, anonymous, subscribed, plan_name, trial_end):
    """Evaluate a route decision offline from a supplied identity and subscription"""
    trial_end_at = None
    if trial_end:
        try:
            trial_end_at = datetime.fromisoformat(trial_end)
        except ValueError:
            click.echo("❌ Invalid --trial-end. Use ISO 8601, e.g. 2026-01-31T12:00:00+00:00", err=True)
            return
        if trial_end_at.tzinfo is None:
            trial_end_at = trial_end_at.replace(tzinfo=timezone.utc)

    if anonymous:
        identity = Identity.anonymous()
    else:
        identity = Identity(
            is_authenticated=True,
            user_id="cli",
            org_role=OrgRole(role) if role else None,
            is_super_admin=is_super_admin,
        )
    record = SubscriptionRecord(subscribed=subscribed, plan_name=plan_name, trial_end=trial_end_at)
    state = resolve_route_access(
        identity,
        SubscriptionState(record=record, is_loading=False),
        ROUTES[route_name],
        datetime.now(timezone.utc),
    )
    click.echo(f"{route_name}: {state.value}")


if __name__ == '__main__':
    cli()
