from __future__ import annotations

import logging
import os
import signal
import sys
from collections.abc import Sequence

from socketpipe import exceptions
from socketpipe import log
from socketpipe import options
from socketpipe import optmanager
from socketpipe.proxy import mapping
from socketpipe.proxy.server import ProxyServer
from socketpipe.tools import cmdline
from socketpipe.utils import debug


def process_options(parser, opts, args):
    if args.quiet or args.options:
        args.log_verbosity = "error"
    if args.verbose:
        args.log_verbosity = "debug"

    adict = {
        key: val for key, val in vars(args).items() if key in opts and val is not None
    }
    if args.destname:
        adict["dest_host"] = args.destname
    if args.ports:
        adict["mappings"] = [str(m) for m in mapping.parse_pairs(args.ports)]
    opts.update(**adict)


def daemonize() -> None:  # pragma: no cover
    """
    Detach from the controlling terminal: fork twice, start a new session
    and point the standard streams to /dev/null.
    """
    if os.fork():
        os._exit(0)
    os.setsid()
    if os.fork():
        os._exit(0)
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    os.close(devnull)


def run(arguments: Sequence[str] | None = None) -> int:
    """
    Parse the command line, bind all listeners and serve until SIGINT or
    SIGTERM.

    Returns:
        The process exit code.
    """
    opts = options.Options()
    parser = cmdline.socketpipe(opts)
    try:
        args = parser.parse_args(arguments)
    except SystemExit as e:
        if e.code:
            return 1
        raise

    if args.version:
        print(debug.dump_system_info())
        return 0

    try:
        optmanager.load_paths(
            opts,
            os.path.join(opts.confdir, "config.yaml"),
            os.path.join(opts.confdir, "config.yml"),
        )
        opts.set(*args.setoptions)
        process_options(parser, opts, args)
        if args.options:
            optmanager.dump_defaults(opts, sys.stdout)
            return 0
        if not opts.dest_host or not opts.mappings:
            parser.print_usage(sys.stderr)
            return 1
        server = ProxyServer(opts)
        handler = log.make_handler(opts)
    except (exceptions.OptionsError, ValueError) as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    logging.getLogger().setLevel(logging.DEBUG)
    handler.install()
    try:
        try:
            server.bind()
        except exceptions.BindError as e:
            print(f"{parser.prog}: {e}", file=sys.stderr)
            return 1

        if opts.daemon:
            daemonize()

        def _shutdown(*_):
            server.shutdown()

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)
        debug.register_info_dumpers()

        server.run()
    finally:
        handler.uninstall()
    return 0


def socketpipe(args=None) -> int | None:  # pragma: no cover
    return run(args)
