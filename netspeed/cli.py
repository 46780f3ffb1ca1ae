"""
netspeed command line
"""

import logging
import os
import signal
import sys

import click

from . import __version__
from .config import Config
from .counters import CounterSource
from .errors import NetspeedError
from .guard import SingletonGuard, default_pidfile
from .lifecycle import EXIT_ERROR, EXIT_OK, Controller
from .output import UNITS

logger = logging.getLogger('netspeed.cli')


def setup_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        stream=sys.stderr,
    )


def list_interfaces(source):
    try:
        names = source.list_interfaces()
    except NetspeedError as e:
        logger.error("failed to populate the list of interfaces: %s", e)
        return EXIT_ERROR
    for name in names:
        click.echo(name)
    return EXIT_OK


def stop_running(pidfile):
    guard = SingletonGuard(pidfile)
    try:
        pid = guard.running_pid()
    except NetspeedError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    if pid is None:
        logger.error("netspeed is not running (no live pid in %s)", pidfile)
        return EXIT_ERROR
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as e:
        logger.error("failed to kill pid %d: %s", pid, e)
        return EXIT_ERROR
    logger.info("sent SIGTERM to netspeed (pid %d)", pid)
    return EXIT_OK


class NetspeedCommand(click.Command):
    """Command line mistakes are validation failures and exit 1, not click's usual 2"""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            e.exit_code = EXIT_ERROR
            raise


@click.command(cls=NetspeedCommand)
@click.option('-i', '--interface', help='The name of the network interface to use, e.g., en0')
@click.option('-a', '--all', 'all_interfaces', is_flag=True, help='Report every interface in one record')
@click.option('-o', '--outfile', type=click.Path(dir_okay=False),
              help='Location of the JSON output file - output will not be written to screen')
@click.option('-u', '--unit', type=click.Choice(UNITS),
              help='Byte unit (default: kbytes with -i, bytes with -a)')
@click.option('-l', '--list', 'list_only', is_flag=True, help='Display a list of interfaces and exit')
@click.option('--pidfile', type=click.Path(dir_okay=False), envvar='NETSPEED_PIDFILE',
              show_default='~/.netspeed.pid',
              help='Location of the pidfile')
@click.option('--stop', is_flag=True, help="Stop netspeed if it's running")
@click.option('-v', '--verbose', is_flag=True, help='Verbose output')
@click.version_option(__version__, '-V', '--version', prog_name='netspeed',
                      message='%(prog)s version %(version)s')
def main(interface, all_interfaces, outfile, unit, list_only, pidfile, stop, verbose):
    """netspeed calculates KiB in/out per second and optionally writes the output to a JSON file."""
    setup_logging(verbose)
    source = CounterSource()

    if list_only:
        sys.exit(list_interfaces(source))

    if pidfile is None:
        try:
            pidfile = default_pidfile()
        except NetspeedError as e:
            logger.error("%s", e)
            sys.exit(EXIT_ERROR)

    if stop:
        sys.exit(stop_running(pidfile))

    config = Config(
        interface=interface,
        all_interfaces=all_interfaces,
        outfile=outfile,
        unit=unit,
        pidfile=pidfile,
    )
    controller = Controller(config, source)
    with controller.install_signal_handlers():
        code = controller.run()
    sys.exit(code)


if __name__ == "__main__":
    main()
