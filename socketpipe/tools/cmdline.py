import argparse

USAGE = "%(prog)s [options] destname srcport destport [[srcport destport]...]"

DESCRIPTION = """
Creates I/O pipes for TCP socket tunneling.

  destname ... hostname of a destination (name or ip-addr).
  srcport .... source TCP port# or UNIX domain socket name of localhost.
  destport ... destination port# of the destination host.
"""


def common_options(parser, opts):
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and system information, then exit.",
        dest="version",
    )
    parser.add_argument(
        "--options",
        action="store_true",
        help="Print all options with their defaults as YAML, then exit.",
    )
    parser.add_argument(
        "--set",
        type=str,
        dest="setoptions",
        default=[],
        action="append",
        metavar="option[=value]",
        help="""
            Set an option, e.g. half_close_timeout=60. Without a value, a
            bool option becomes true, an optional one becomes unset and a
            sequence is emptied. Bools also accept false and toggle. Give
            --set once per value to fill a sequence such as mappings.
        """,
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", dest="quiet", help="Only log errors."
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_const",
        dest="verbose",
        const="debug",
        help="Log debug messages.",
    )

    # Tunnel options
    group = parser.add_argument_group("Tunnel Options")
    opts.make_parser(group, "listen_host", metavar="HOST")
    opts.make_parser(group, "connect_timeout", metavar="SECS")
    opts.make_parser(group, "half_close_timeout", metavar="SECS")
    opts.make_parser(group, "select_timeout", metavar="SECS")

    # Dump options
    group = parser.add_argument_group("Dump Options")
    opts.make_parser(group, "dump_request")
    opts.make_parser(group, "dump_response", short="d")

    # Process options
    group = parser.add_argument_group("Process Options")
    opts.make_parser(group, "daemon", short="s")
    opts.make_parser(group, "log_file", metavar="PATH")
    opts.make_parser(group, "log_max_size", metavar="SIZE")
    opts.make_parser(group, "log_backup_count", metavar="N")


def socketpipe(opts):
    parser = argparse.ArgumentParser(
        usage=USAGE,
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common_options(parser, opts)
    parser.add_argument(
        "destname",
        nargs="?",
        help="Destination host. Overrides the dest_host option.",
    )
    parser.add_argument(
        "ports",
        nargs="*",
        metavar="port",
        help="Port pairs. Override the mappings option.",
    )
    return parser
