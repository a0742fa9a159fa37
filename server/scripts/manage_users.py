#!/usr/bin/env python3
"""
User management CLI for the File Manager JSON stores.

Usage:
  python manage_users.py create-user --username NAME --password PASS [--role ROLE]
  python manage_users.py list-users
  python manage_users.py set-role --username NAME --role ROLE
  python manage_users.py add-branch --username NAME --branch BRANCH_ID
  python manage_users.py add-company --username NAME --company COMPANY_ID
  python manage_users.py reset-password --username NAME --password PASS

Reads DATA_DIR from the environment (default: ./data). Run it while the
server is stopped, or restart the server afterwards: the server keeps its own
in-memory snapshot and would overwrite changes on its next write.
"""

import argparse
import os
import sys
from dataclasses import replace

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from filemanager.auth import hash_password
from filemanager.models import ROLES, User
from filemanager.repositories import open_stores


def _get_stores():
    return open_stores(os.environ.get("DATA_DIR", "data"))


def _require_user(stores, username):
    user = stores.users.find_by_username(username)
    if user is None:
        print(f"Error: user '{username}' not found.")
        raise SystemExit(1)
    return user


# ==========================================================================
# Commands
# ==========================================================================

def cmd_create_user(args):
    stores = _get_stores()
    try:
        user = stores.users.add(User(
            id="",
            username=args.username,
            role=args.role,
            password_hash=hash_password(args.password),
        ))
    except ValueError as e:
        print(f"Error: {e}")
        raise SystemExit(1)
    print(f"Created user '{user.username}' ({user.role}) id={user.id}")


def cmd_list_users(args):
    stores = _get_stores()
    users = stores.users.list()
    if not users:
        print("No users found.")
        return
    print(f"\n{'ID':<34} {'Username':<20} {'Role':<12} {'Branches':<20} Companies")
    print("-" * 100)
    for u in users:
        print(
            f"{u.id:<34} {u.username:<20} {u.role:<12} "
            f"{','.join(sorted(u.branch_ids)) or '-':<20} "
            f"{','.join(sorted(u.company_ids)) or '-'}"
        )


def cmd_set_role(args):
    stores = _get_stores()
    user = _require_user(stores, args.username)
    stores.users.update(replace(user, role=args.role))
    print(f"'{user.username}': {user.role} -> {args.role}")


def cmd_add_branch(args):
    stores = _get_stores()
    user = _require_user(stores, args.username)
    if stores.branches.find_by_id(args.branch) is None:
        print(f"Error: branch '{args.branch}' not found.")
        raise SystemExit(1)
    stores.users.update(replace(user, branch_ids=user.branch_ids | {args.branch}))
    print(f"Added '{user.username}' to branch {args.branch}")


def cmd_add_company(args):
    stores = _get_stores()
    user = _require_user(stores, args.username)
    if stores.companies.find_by_id(args.company) is None:
        print(f"Error: company '{args.company}' not found.")
        raise SystemExit(1)
    stores.users.update(replace(user, company_ids=user.company_ids | {args.company}))
    print(f"Added '{user.username}' to company {args.company}")


def cmd_reset_password(args):
    stores = _get_stores()
    user = _require_user(stores, args.username)
    stores.users.update(replace(user, password_hash=hash_password(args.password)))
    print(f"Password reset for '{user.username}'")


# ==========================================================================
# CLI Entry Point
# ==========================================================================

def main(argv=None):
    parser = argparse.ArgumentParser(description="File Manager User Manager (JSON stores)")
    sub = parser.add_subparsers(dest="command")

    p_create = sub.add_parser("create-user", help="Create a user")
    p_create.add_argument("--username", required=True)
    p_create.add_argument("--password", required=True)
    p_create.add_argument("--role", default="user", choices=list(ROLES))

    sub.add_parser("list-users", help="List all users with memberships")

    p_role = sub.add_parser("set-role", help="Change a user's role")
    p_role.add_argument("--username", required=True)
    p_role.add_argument("--role", required=True, choices=list(ROLES))

    p_branch = sub.add_parser("add-branch", help="Add user to a branch")
    p_branch.add_argument("--username", required=True)
    p_branch.add_argument("--branch", required=True, help="Branch ID")

    p_company = sub.add_parser("add-company", help="Add user to a company")
    p_company.add_argument("--username", required=True)
    p_company.add_argument("--company", required=True, help="Company ID")

    p_reset = sub.add_parser("reset-password", help="Set a new password")
    p_reset.add_argument("--username", required=True)
    p_reset.add_argument("--password", required=True)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    commands = {
        "create-user": cmd_create_user,
        "list-users": cmd_list_users,
        "set-role": cmd_set_role,
        "add-branch": cmd_add_branch,
        "add-company": cmd_add_company,
        "reset-password": cmd_reset_password,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
