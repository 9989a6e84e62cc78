#!/usr/bin/env python3
"""
OfficeAdmin -- command-line administration.

Usage:
  python main.py seed
  python main.py seed --admin-password 'a-long-password'
  python main.py create-user alice 'alice-password' --role Employee
  python main.py create-user carol 'carol-password' --role Manager --role Employee

Both commands talk to the database named by DATABASE_URL (see core/config.py).
seed is idempotent: it fills in whatever default permissions, roles, admin
account and site configuration entries are missing.
"""

import argparse
import logging
import sys

from auth.admin import RbacAdmin
from auth.seed import seed_defaults
from auth.store import CredentialStore
from core.errors import AdminError
from siteconfig.store import SiteConfigStore


def _cmd_seed(args: argparse.Namespace) -> int:
    store = CredentialStore()
    site_config = SiteConfigStore()
    try:
        report = seed_defaults(store, admin_password=args.admin_password)
        configs_created = site_config.seed_defaults()
    finally:
        site_config.close()
        store.close()
    print(f"  Permissions created: {report.permissions_created}")
    print(f"  Roles created:       {report.roles_created}")
    print(f"  Config entries:      {configs_created}")
    if report.admin_created:
        print("  Admin account 'admin' created. Change its password before going live.")
    else:
        print("  Admin account 'admin' already existed; password left unchanged.")
    return 0


def _cmd_create_user(args: argparse.Namespace) -> int:
    username = args.username.strip()
    if not username or len(username) > 255:
        print("  [!] Invalid username length.", file=sys.stderr)
        return 1
    if len(args.password) < 8 or len(args.password) > 128:
        print("  [!] Password must be 8-128 characters.", file=sys.stderr)
        return 1

    store = CredentialStore()
    try:
        role_ids = []
        for name in args.role:
            role = store.get_role_by_name(name)
            if role is None:
                print(f"  [!] Role '{name}' does not exist. Run 'python main.py seed' first?", file=sys.stderr)
                return 1
            role_ids.append(role.id)
        user = RbacAdmin(store).create_user(
            username=username,
            password=args.password,
            display_name=args.display_name or username,
            role_ids=role_ids,
        )
    except AdminError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()
    roles = ", ".join(args.role) or "none"
    print(f"  Created user '{user.username}' (id={user.id}) with roles: {roles}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="officeadmin",
        description="OfficeAdmin administration commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for store and service messages (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Create default permissions, roles, admin user and site config")
    seed.add_argument(
        "--admin-password",
        default="admin",
        help="Password for a newly created 'admin' account (ignored if it exists)",
    )
    seed.set_defaults(func=_cmd_seed)

    create = sub.add_parser("create-user", help="Create a user account")
    create.add_argument("username", help="Username (1-255 chars)")
    create.add_argument("password", help="Password (8-128 chars)")
    create.add_argument("--display-name", default="", help="Display name (defaults to the username)")
    create.add_argument(
        "--role",
        action="append",
        default=[],
        metavar="NAME",
        help="Role to assign; repeat for several roles",
    )
    create.set_defaults(func=_cmd_create_user)

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)-5s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
