"""
auditflow CLI - Command-line access to the audit-request tracker.

Commands:
    auditflow login USERNAME             Log in and store tokens
    auditflow register USERNAME ...      Create an account and log in
    auditflow logout                     Forget stored tokens
    auditflow whoami                     Show the logged-in user
    auditflow list                       List audit requests
    auditflow show ID                    Show one request with documents and remarks
    auditflow actions ID                 Show status changes available to you
    auditflow status ID NEW_STATUS       Move a request to a new status
    auditflow remark ID TEXT             Add a remark
    auditflow upload ID TYPE PATH        Upload a document
"""

import argparse
import asyncio
import getpass
import logging
import sys
from typing import Awaitable, Callable, Optional

from .client import AuditClient
from .config import ClientConfig
from .exceptions import AuditFlowError, ConfigError, SessionExpiredError, WorkflowError
from .models import AuditRequest, Role
from .workflow import partition_for_reviewer

Command = Callable[[AuditClient, argparse.Namespace], Awaitable[None]]


def _print_request(request: AuditRequest) -> None:
    print(f"#{request.id}  [{request.status.display_name}]")
    print(f"  CSP:          {request.service_provider_name}")
    print(f"  Location:     {request.data_center_location}")
    if request.request_date:
        print(f"  Submitted:    {request.request_date:%Y-%m-%d %H:%M}")
    if request.last_updated:
        print(f"  Last updated: {request.last_updated:%Y-%m-%d %H:%M}")


async def _require_login(client: AuditClient) -> None:
    await client.restore()
    if not client.session.is_authenticated:
        print("Not logged in. Run: auditflow login USERNAME", file=sys.stderr)
        sys.exit(1)


async def cmd_login(client: AuditClient, args: argparse.Namespace) -> None:
    """Log in and persist the issued tokens."""
    password = args.password or getpass.getpass("Password: ")
    result = await client.login(args.username, password)
    if not result.success:
        print(f"Login failed: {result.reason}", file=sys.stderr)
        sys.exit(1)
    print(f"Logged in as {result.identity.username}")


async def cmd_register(client: AuditClient, args: argparse.Namespace) -> None:
    """Register a new account and log straight in."""
    password = args.password or getpass.getpass("Password: ")
    confirm = args.password or getpass.getpass("Confirm password: ")
    result = await client.register(
        {
            "username": args.username,
            "email": args.email,
            "password": password,
            "confirm_password": confirm,
            "role": args.role,
            "organization": args.organization or "",
        }
    )
    if not result.success:
        print(f"Registration failed: {result.reason}", file=sys.stderr)
        sys.exit(1)
    print(f"Registered and logged in as {result.identity.username}")


async def cmd_logout(client: AuditClient, args: argparse.Namespace) -> None:
    await client.logout()
    print("Logged out")


async def cmd_whoami(client: AuditClient, args: argparse.Namespace) -> None:
    await _require_login(client)
    identity = client.identity
    print(f"{identity.username} (id {identity.id})")
    print(f"  Role: {identity.role.display_name if identity.role else 'unknown'}")
    if identity.organization:
        print(f"  Organization: {identity.organization}")
    if client.session.expires_at:
        print(f"  Token expires: {client.session.expires_at:%Y-%m-%d %H:%M:%S %Z}")


async def cmd_list(client: AuditClient, args: argparse.Namespace) -> None:
    """List requests; reviewers see pending and reviewed separately."""
    await _require_login(client)
    requests = await client.list_requests()

    if client.identity.role == Role.MEITY_REVIEWER:
        pending, reviewed = partition_for_reviewer(requests)
        sections = [("Pending review", pending), ("Reviewed", reviewed)]
    else:
        sections = [("Audit requests", requests)]

    for title, items in sections:
        print(f"{title} ({len(items)}):\n")
        for request in items:
            _print_request(request)
            print()


async def cmd_show(client: AuditClient, args: argparse.Namespace) -> None:
    await _require_login(client)
    request = await client.get_request(args.id)
    _print_request(request)
    if request.description:
        print(f"  Description:  {request.description}")
    if request.certificate_of_empanelment:
        print(f"  Certificate:  {request.certificate_of_empanelment}")

    print(f"\nDocuments ({len(request.documents)}):")
    for doc in request.documents:
        uploader = doc.uploaded_by.username if doc.uploaded_by else "unknown"
        print(f"  #{doc.id} {doc.document_type}: {doc.description or 'No description'} (by {uploader})")

    print(f"\nRemarks ({len(request.remarks)}):")
    for remark in request.remarks:
        author = remark.author.username if remark.author else "unknown"
        print(f"  {author}: {remark.comment}")


async def cmd_actions(client: AuditClient, args: argparse.Namespace) -> None:
    await _require_login(client)
    request = await client.get_request(args.id)
    actions = client.available_actions(request)
    if not actions:
        print(
            "No status update action is available for your role on this request "
            f"at its current status: {request.status.display_name}"
        )
        return
    print(f"Request #{request.id} is {request.status.display_name}. You can move it to:")
    for status in sorted(actions, key=lambda s: s.value):
        print(f"  {status.value}  ({status.display_name})")


async def cmd_status(client: AuditClient, args: argparse.Namespace) -> None:
    await _require_login(client)
    request = await client.get_request(args.id)
    updated = await client.update_status(request, args.new_status, certificate=args.certificate)
    print(f"Request #{updated.id} is now {updated.status.display_name}")


async def cmd_remark(client: AuditClient, args: argparse.Namespace) -> None:
    await _require_login(client)
    request = await client.get_request(args.id)
    await client.add_remark(request, args.text)
    print("Remark added")


async def cmd_upload(client: AuditClient, args: argparse.Namespace) -> None:
    await _require_login(client)
    request = await client.get_request(args.id)
    document = await client.upload_document(request, args.document_type, args.path, args.description)
    print(f"Uploaded document #{document.id}")


async def _run(command: Command, args: argparse.Namespace, config: ClientConfig) -> None:
    async with AuditClient.from_config(config) as client:
        await command(client, args)


def load_config(args: argparse.Namespace) -> ClientConfig:
    config = ClientConfig.from_yaml(args.config) if args.config else ClientConfig.from_env()
    if args.base_url:
        config.base_url = args.base_url if args.base_url.endswith("/") else args.base_url + "/"
    if args.log_level:
        config.log_level = args.log_level
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auditflow",
        description="Empanelment audit-request tracker client",
    )
    parser.add_argument("--config", "-c", help="Path to a YAML config file")
    parser.add_argument("--base-url", help="API base URL (overrides config)")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: from config)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    login_parser = subparsers.add_parser("login", help="Log in and store tokens")
    login_parser.add_argument("username")
    login_parser.add_argument("--password", "-p", help="Password (prompted if omitted)")
    login_parser.set_defaults(func=cmd_login)

    register_parser = subparsers.add_parser("register", help="Create an account and log in")
    register_parser.add_argument("username")
    register_parser.add_argument("--email", "-e", required=True)
    register_parser.add_argument("--role", "-r", required=True, choices=[r.value for r in Role])
    register_parser.add_argument("--organization", "-o")
    register_parser.add_argument("--password", "-p", help="Password (prompted if omitted)")
    register_parser.set_defaults(func=cmd_register)

    subparsers.add_parser("logout", help="Forget stored tokens").set_defaults(func=cmd_logout)
    subparsers.add_parser("whoami", help="Show the logged-in user").set_defaults(func=cmd_whoami)
    subparsers.add_parser("list", help="List audit requests").set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser("show", help="Show an audit request")
    show_parser.add_argument("id", type=int)
    show_parser.set_defaults(func=cmd_show)

    actions_parser = subparsers.add_parser("actions", help="Show available status changes")
    actions_parser.add_argument("id", type=int)
    actions_parser.set_defaults(func=cmd_actions)

    status_parser = subparsers.add_parser("status", help="Move a request to a new status")
    status_parser.add_argument("id", type=int)
    status_parser.add_argument("new_status", help="Target status, e.g. Forwarded_to_STQC")
    status_parser.add_argument("--certificate", help="Certificate of empanelment (required to approve)")
    status_parser.set_defaults(func=cmd_status)

    remark_parser = subparsers.add_parser("remark", help="Add a remark")
    remark_parser.add_argument("id", type=int)
    remark_parser.add_argument("text")
    remark_parser.set_defaults(func=cmd_remark)

    upload_parser = subparsers.add_parser("upload", help="Upload a document")
    upload_parser.add_argument("id", type=int)
    upload_parser.add_argument("document_type")
    upload_parser.add_argument("path")
    upload_parser.add_argument("--description", "-d", default="")
    upload_parser.set_defaults(func=cmd_upload)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        config = load_config(args)
    except ConfigError as e:
        print(f"Config Error: {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(_run(args.func, args, config))
    except SessionExpiredError as e:
        print(f"Error: {e}\nLog in again with: auditflow login USERNAME", file=sys.stderr)
        sys.exit(1)
    except WorkflowError as e:
        print(f"Not allowed: {e}", file=sys.stderr)
        sys.exit(1)
    except AuditFlowError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(0)


if __name__ == "__main__":
    main()
