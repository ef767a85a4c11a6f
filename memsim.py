#!/usr/bin/env python3
"""
Virtual memory simulator driver
Reads logical addresses from a file, translates each one through the MMU and
prints the physical address and the signed byte stored there
"""

import argparse
import logging
import re
import sys
from typing import Dict, Iterable, List, Optional

import matplotlib.pyplot as plt
import numpy as np

from backing_store import DEFAULT_BACKING_STORE, BackingStoreError
from vmm import MMU, Translation

logger = logging.getLogger("memsim")

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


def parse_address(line: str) -> int:
    """Parse a line the way atoi does; unparseable lines become 0"""
    match = _LEADING_INT.match(line)
    if match is None:
        return 0
    value = int(match.group(1)) & 0xFFFFFFFF
    # Wrap to a signed 32-bit value
    return value - (1 << 32) if value & 0x80000000 else value


def format_translation(record: Translation) -> str:
    return (f"Virtual address: {record.logical_address}  "
            f"Physical address: {record.physical_address}  "
            f"Value: {record.value}")


def format_summary(stats: Dict) -> str:
    n = stats['translations']
    return (f"Total addresses translated: {n}  "
            f"Total TLB hits: {stats['tlb_hits']}  "
            f"Total Page faults: {stats['page_faults']}\n"
            f"TLB hit rate: {stats['tlb_hit_rate'] * 100:.2f}%  "
            f"Page fault rate: {stats['page_fault_rate'] * 100:.2f}%")


def run_addresses(mmu: MMU, lines: Iterable[str], out=None) -> List[Translation]:
    """Translate every line, printing one report line per address"""
    out = out if out is not None else sys.stdout
    records = []
    for line in lines:
        record = mmu.translate_and_read(parse_address(line))
        print(format_translation(record), file=out)
        records.append(record)
    return records


def plot_rates(records: List[Translation], path: str) -> bool:
    """Plot running TLB hit rate and page fault rate, return False if empty"""
    if not records:
        logger.warning("No translations to plot")
        return False

    tlb_hits = np.array([r.tlb_hit for r in records], dtype=float)
    faults = np.array([r.page_fault for r in records], dtype=float)
    index = np.arange(1, len(records) + 1)

    # File output only
    plt.switch_backend("Agg")
    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(index, np.cumsum(tlb_hits) / index * 100, label="TLB hit rate")
    ax.plot(index, np.cumsum(faults) / index * 100, label="Page fault rate")
    ax.set_xlabel("Addresses translated")
    ax.set_ylabel("Rate (%)")
    ax.set_ylim(0, 100)
    ax.set_title("Running TLB hit rate and page fault rate")
    ax.legend()
    ax.grid(True, alpha=0.3)
    fig.savefig(path)
    plt.close(fig)
    logger.info("Wrote rate chart to %s", path)
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memsim",
        description="Virtual memory manager with a FIFO TLB and FIFO page replacement")
    parser.add_argument("addresses", help="File containing one logical address per line")
    parser.add_argument("--backing-store", default=DEFAULT_BACKING_STORE,
                        help="Backing store file (default: %(default)s)")
    parser.add_argument("--plot", metavar="PATH",
                        help="Write a PNG chart of the running hit and fault rates")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log output (repeat for debug)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, stream=sys.stderr,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        # latin-1 maps every byte, so junk lines reach parse_address and become 0
        input_file = open(args.addresses, "r", encoding="latin-1")
    except OSError:
        logger.error("Could not open input file: %s", args.addresses)
        return 1

    with input_file:
        try:
            with MMU.open(args.backing_store) as mmu:
                records = run_addresses(mmu, input_file)
                print(format_summary(mmu.get_stats()))
        except BackingStoreError as e:
            logger.error("%s", e)
            return 1

    if args.plot:
        plot_rates(records, args.plot)
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
