"""
Analyze captured netspeed output

Reads the JSON lines netspeed writes to stdout (single or multi-interface shape)
and prints per-interface throughput statistics.
"""

import logging
import os
import sys

import click
import numpy as np
import pandas as pd

logger = logging.getLogger('netspeed.analyze')

COLUMNS = ['timestamp', 'interface', 'sent', 'recv', 'packets_sent', 'packets_recv']


def _byte_columns(df):
    """Rename bytes_*/kbytes_* to sent/recv, normalising to KiB"""
    if 'kbytes_sent' in df.columns:
        return df.rename(columns={'kbytes_sent': 'sent', 'kbytes_recv': 'recv'})
    df = df.rename(columns={'bytes_sent': 'sent', 'bytes_recv': 'recv'})
    df['sent'] = df['sent'] / 1024
    df['recv'] = df['recv'] / 1024
    return df


def load_capture(path):
    """Load a capture into a flat frame with one row per (timestamp, interface)"""
    raw = pd.read_json(path, lines=True, convert_dates=False)
    if len(raw) == 0:
        return pd.DataFrame(columns=COLUMNS)

    if 'interfaces' in raw.columns:
        df = pd.json_normalize(raw.to_dict('records'), record_path='interfaces', meta=['timestamp'])
    else:
        df = raw
    df = _byte_columns(df)
    missing = [c for c in COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"capture is missing columns: {', '.join(missing)}")
    df = df[COLUMNS].copy()
    df['timestamp'] = df['timestamp'].astype('int64')
    return df


def summarize(df):
    """Per-interface statistics, rates in KiB/s"""
    summary = {}
    for name, group in df.groupby('interface', sort=True):
        sent = group['sent'].values.astype(float)
        recv = group['recv'].values.astype(float)
        resets = int(((group['sent'] < 0) | (group['recv'] < 0)).sum())
        summary[name] = {
            'samples': len(group),
            'duration_s': int(group['timestamp'].max() - group['timestamp'].min()),
            'sent': _stats(sent),
            'recv': _stats(recv),
            'packets_sent': int(group['packets_sent'].sum()),
            'packets_recv': int(group['packets_recv'].sum()),
            'counter_resets': resets,
        }
    return summary


def _stats(values):
    return {
        'mean': float(np.mean(values)),
        'max': float(np.max(values)),
        'std': float(np.std(values)),
        'p95': float(np.percentile(values, 95)),
    }


def print_summary(summary):
    for name, s in summary.items():
        click.echo(f"\n=== {name} ===")
        click.echo(f"Samples: {s['samples']} over {s['duration_s']}s")
        for direction in ('sent', 'recv'):
            st = s[direction]
            label = 'TX' if direction == 'sent' else 'RX'
            click.echo(f"{label}: Avg={st['mean']:.2f} KiB/s, Max={st['max']:.2f} KiB/s, "
                       f"Std={st['std']:.2f}, P95={st['p95']:.2f}")
        click.echo(f"Packets: TX={s['packets_sent']:,} RX={s['packets_recv']:,}")
        if s['counter_resets']:
            click.echo(f"⚠️  Counter resets: {s['counter_resets']} negative deltas")


@click.command()
@click.argument('capture_file', type=click.Path(dir_okay=False))
@click.option('-i', '--interface', help='Only report this interface')
def main(capture_file, interface):
    """Analyze netspeed JSON-lines output"""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s')

    if not os.path.exists(capture_file):
        logger.error("File not found: %s", capture_file)
        sys.exit(1)
    if os.path.getsize(capture_file) == 0:
        logger.error("Empty file: %s", capture_file)
        sys.exit(1)

    try:
        df = load_capture(capture_file)
    except ValueError as e:
        logger.error("Could not parse %s: %s", capture_file, e)
        sys.exit(1)

    if interface:
        df = df[df['interface'] == interface]
    if len(df) == 0:
        logger.error("No data in file: %s", capture_file)
        sys.exit(1)

    print_summary(summarize(df))


if __name__ == "__main__":
    main()
