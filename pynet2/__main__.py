# pyNet2 Module - Command Line
# -*- coding: utf-8 -*-
"""
 Python module to mirror and control Paxton Net2 access-control sites

 Commands:
    python -m pynet2 serve      # run the HTTP server
    python -m pynet2 update     # refresh every configured site once and print a summary
    python -m pynet2 version    # print version information

 Settings are read from NET2_* environment variables or a .env file.
"""

import argparse
import sys

import dotenv

# Modules
from pynet2 import version, set_debug

dotenv.load_dotenv()

# Setup parser and groups
p = argparse.ArgumentParser(prog="pyNet2", description=f"pyNet2 Module v{version}")
subparsers = p.add_subparsers(dest="command", title='commands (run <command> -h to see usage information)',
                              required=True)

serve_args = subparsers.add_parser("serve", help='Run the pyNet2 HTTP server')
serve_args.add_argument("-host", type=str, default=None, help="Bind address [Default=NET2_BIND_ADDRESS]")
serve_args.add_argument("-port", type=int, default=None, help="Port [Default=NET2_PORT]")

update_args = subparsers.add_parser("update", help='Refresh every configured site once')

version_args = subparsers.add_parser("version", help='Print version information')

# Add a global debug flag
p.add_argument("-debug", action="store_true", default=False, help="Enable debug output")

if len(sys.argv) == 1:
    p.print_help(sys.stderr)
    sys.exit(1)

# parse args
args = p.parse_args()
command = args.command

# Set Debug Mode
if args.debug:
    set_debug(True)

# Run Server
if command == 'serve':
    import uvicorn

    from pynet2.config import Settings
    from pynet2.exceptions import ConfigurationError

    try:
        settings = Settings()
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    print("pyNet2 [%s] - Server\n" % version)
    uvicorn.run(
        "pynet2.server.main:create_app",
        factory=True,
        host=args.host or settings.server_host,
        port=args.port or settings.server_port,
        log_level="debug" if (args.debug or settings.debug) else "info",
    )

# Refresh once
elif command == 'update':
    from pynet2.config import Settings
    from pynet2.exceptions import ConfigurationError
    from pynet2.site_manager import build_sites

    print("pyNet2 [%s] - Update\n" % version)
    try:
        sites = build_sites(Settings())
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    if not sites:
        print("No sites configured. Set NET2_CONFIG or NET2_SITES.")
        sys.exit(1)
    failed = 0
    for site in sites:
        complete = site.refresh_all()
        status = "OK" if complete else "INCOMPLETE"
        failed += 0 if complete else 1
        print(f"  {site.id:>4} {site.name:<30} {status:<10} users={len(site.users)} doors={len(site.doors)} "
              f"departments={len(site.departments)} access_levels={len(site.access_levels)}")
        site.client.close_session()
    sys.exit(1 if failed else 0)

# Print Version
elif command == 'version':
    print("pyNet2 [%s]" % version)

# Print Usage
else:
    p.print_help()
