"""
Record formatting and output sinks
"""

import json
import logging
import os
import tempfile

import click

from .errors import OutputError

logger = logging.getLogger('netspeed.output')

BYTES = 'bytes'
KBYTES = 'kbytes'
UNITS = (BYTES, KBYTES)


def scale(value, unit):
    if unit == KBYTES:
        return value / 1024
    return value


class SingleInterfaceFormatter:
    """One flat record for the target interface"""

    def __init__(self, interface, unit=KBYTES):
        self.interface = interface
        self.unit = unit

    def format(self, timestamp, records):
        for rec in records:
            if rec.interface == self.interface:
                return {
                    'timestamp': timestamp,
                    'interface': rec.interface,
                    f'{self.unit}_sent': scale(rec.delta_bytes_sent, self.unit),
                    f'{self.unit}_recv': scale(rec.delta_bytes_recv, self.unit),
                    'packets_sent': rec.delta_packets_sent,
                    'packets_recv': rec.delta_packets_recv,
                }
        return None


class MultiInterfaceFormatter:
    """One record listing every matched interface"""

    def __init__(self, unit=BYTES):
        self.unit = unit

    def format(self, timestamp, records):
        return {
            'timestamp': timestamp,
            'interfaces': [
                {
                    'interface': rec.interface,
                    f'{self.unit}_sent': scale(rec.delta_bytes_sent, self.unit),
                    f'{self.unit}_recv': scale(rec.delta_bytes_recv, self.unit),
                    'packets_sent': rec.delta_packets_sent,
                    'packets_recv': rec.delta_packets_recv,
                }
                for rec in records
            ],
        }


def make_formatter(config):
    if config.all_interfaces:
        return MultiInterfaceFormatter(config.unit or BYTES)
    return SingleInterfaceFormatter(config.interface, config.unit or KBYTES)


def serialize(record):
    return json.dumps(record)


class StdoutSink:
    """Writes one JSON line per record to standard output"""

    def emit(self, record):
        try:
            click.echo(serialize(record))
        except OSError as e:
            raise OutputError(f"failed to write to stdout: {e}") from e

    def cleanup(self):
        pass


class FileSink:
    """Overwrites `path` with the latest record on every tick"""

    def __init__(self, path):
        self.path = os.path.abspath(path)
        self.written = False

    def emit(self, record):
        directory = os.path.dirname(self.path)
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(prefix='.netspeed-', dir=directory)
            with os.fdopen(fd, 'w') as f:
                f.write(serialize(record))
            os.chmod(tmp, 0o644)
            os.replace(tmp, self.path)
        except OSError as e:
            if tmp is not None and os.path.exists(tmp):
                os.unlink(tmp)
            raise OutputError(f"failed to write \"{self.path}\": {e}") from e
        self.written = True

    def cleanup(self):
        """Remove the output file, but only if this sink wrote it"""
        if not self.written or not os.path.exists(self.path):
            return
        try:
            os.remove(self.path)
        except OSError as e:
            raise OutputError(f"failed to remove the file \"{self.path}\", {e}") from e
        logger.debug("removed output file %s", self.path)


def make_sink(config):
    if config.outfile:
        return FileSink(config.outfile)
    return StdoutSink()
