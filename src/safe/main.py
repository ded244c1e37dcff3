import argparse
import os
import sys
from typing import Optional

import requests

import safe
import safe.commands
from safe._output import TerminalBackend, output
from safe.log import setup_logging
from safe.tree import default_workers


def debug_from_environment():
    return os.environ.get("DEBUG", "").lower() not in (
        "", "0", "false", "no", "off")


def main(args: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(
        description="safe v{}: a command line interface to Vault".format(
            safe.__version__),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.set_defaults(func=parser.print_usage)

    parser.add_argument(
        "-d", "--debug", action="store_true",
        help="Enable debug output and trace HTTP requests.")
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=default_workers(),
        help="Number of concurrent requests used to explore trees.",
    )

    subparsers = parser.add_subparsers()

    # Targets
    p = subparsers.add_parser("targets", help="List all known targets.")
    p.set_defaults(func=safe.commands.targets)

    p = subparsers.add_parser(
        "target",
        help="Show the current target, select a known one or add a new one "
        "(`target [vault-address] name`).",
    )
    p.add_argument(
        "-t", "--token", action="store_true",
        help="Prompt for a token and store it for the target.")
    p.add_argument("args", nargs="*", metavar="ARG",
                   help="Alias, or URL and alias.")
    p.set_defaults(func=safe.commands.target)

    p = subparsers.add_parser(
        "env", help="Print the effective VAULT_ADDR and VAULT_TOKEN.")
    p.set_defaults(func=safe.commands.env)

    # Secrets
    p = subparsers.add_parser(
        "get", aliases=["read", "cat"], help="Print secrets as YAML.")
    p.add_argument("paths", nargs="+", metavar="PATH")
    p.set_defaults(func=safe.commands.get)

    for name, aliases, func, description in [
            ("set", ["write"], safe.commands.set_secret,
             "Update keys of a secret, prompting twice for missing values."),
            ("paste", [], safe.commands.paste,
             "Update keys of a secret, prompting once for missing values."),
    ]:
        p = subparsers.add_parser(name, aliases=aliases, help=description)
        p.add_argument("path")
        p.add_argument(
            "pairs", nargs="+", metavar="KEY[=VALUE]",
            help="`key=value`, `key@file` (`key@-` for stdin) or `key`.")
        p.add_argument(
            "-n", "--no-clobber", action="store_true",
            help="Refuse to overwrite keys that already exist.")
        p.set_defaults(func=func)

    p = subparsers.add_parser(
        "paths", help="List the paths below the given paths.")
    p.add_argument(
        "-K", "--keys", action="store_true", help="Include secret keys.")
    p.add_argument("paths", nargs="+", metavar="PATH")
    p.set_defaults(func=safe.commands.paths)

    p = subparsers.add_parser(
        "tree", help="Draw the tree below the given paths.")
    p.add_argument(
        "-K", "--keys", action="store_true", help="Include secret keys.")
    p.add_argument(
        "-d", "--hide-secrets", action="store_true",
        help="Only show folders.")
    p.add_argument("paths", nargs="*", metavar="PATH",
                   help="Paths to draw (default: secret).")
    p.set_defaults(func=safe.commands.tree)

    p = subparsers.add_parser(
        "delete", aliases=["rm"], help="Delete secrets or single keys.")
    p.add_argument(
        "-R", "--recursive", action="store_true",
        help="Delete everything below the given paths.")
    p.add_argument(
        "-f", "--force", action="store_true",
        help="Do not ask for confirmation.")
    p.add_argument("paths", nargs="+", metavar="PATH")
    p.set_defaults(func=safe.commands.delete)

    for name, aliases, func in [
            ("copy", ["cp"], safe.commands.copy),
            ("move", ["mv", "rename"], safe.commands.move),
    ]:
        p = subparsers.add_parser(
            name, aliases=aliases,
            help="{} a secret or key to a new path.".format(
                name.capitalize()))
        p.add_argument(
            "-R", "--recursive", action="store_true",
            help="Include everything below the old path.")
        p.add_argument(
            "-f", "--force", action="store_true",
            help="Do not ask for confirmation.")
        p.add_argument(
            "-n", "--no-clobber", action="store_true",
            help="Refuse to overwrite existing data.")
        p.add_argument("oldpath")
        p.add_argument("newpath")
        p.set_defaults(func=func)

    # Bulk transfer
    p = subparsers.add_parser(
        "export", help="Write the given subtrees to stdout as JSON.")
    p.add_argument("paths", nargs="+", metavar="PATH")
    p.set_defaults(func=safe.commands.export)

    p = subparsers.add_parser(
        "import", help="Write every secret of an export read from stdin.")
    p.set_defaults(func=safe.commands.import_secrets)

    # Administration
    p = subparsers.add_parser(
        "status", help="Show whether the Vault is sealed.")
    p.set_defaults(func=safe.commands.status)

    p = subparsers.add_parser("seal", help="Seal the Vault.")
    p.set_defaults(func=safe.commands.seal)

    p = subparsers.add_parser(
        "unseal", help="Unseal the Vault, prompting for the seal keys.")
    p.set_defaults(func=safe.commands.unseal)

    p = subparsers.add_parser(
        "curl", help="Issue a raw request against the Vault API.")
    p.add_argument("method", help="HTTP method, e.g. GET or POST.")
    p.add_argument("path", help="API path below /v1/.")
    p.add_argument("data", nargs="*", help="Request body.")
    p.set_defaults(func=safe.commands.curl)

    args = parser.parse_args(args)

    # Consume global arguments
    debug = args.debug or debug_from_environment()
    output.enable_debug = debug
    safe.commands.workers = max(args.jobs, 1)
    setup_logging(debug)

    # Pass over to function
    if args.func.__name__ == "print_usage":
        args.func()
        sys.exit(1)

    output.backend = TerminalBackend()

    func_args = dict(args._get_kwargs())
    del func_args["func"]
    del func_args["debug"]
    del func_args["jobs"]
    try:
        return args.func(**func_args)
    except safe.UsageError as e:
        e.report()
        sys.exit(1)
    except safe.ReportingException as e:
        e.report()
        sys.exit(2)
    except requests.RequestException as e:
        output.error(str(e), exc_info=sys.exc_info())
        sys.exit(2)
