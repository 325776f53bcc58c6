from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from bonjour_sniffer.analysis.run import watch_source
from bonjour_sniffer.core.config import SnifferConfig
from bonjour_sniffer.core.errors import SourceReadError
from bonjour_sniffer.core.sources.base import FrameSource
from bonjour_sniffer.core.sources.live import LiveInterfaceSource
from bonjour_sniffer.core.sources.pcap import PcapFileSource
from bonjour_sniffer.core.state import ObservationState
from bonjour_sniffer.protocols.mdns import BonjourClassification
from bonjour_sniffer.sources.replay_pcap import ReplayPcapSource

logger = logging.getLogger("bonjour_sniffer")


def setup_logging(level: str = "INFO"):
    """Configure logging."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ----------------------------
# Rendering helpers
# ----------------------------

def _vlan_label(vlan: Optional[int]) -> str:
    return "untagged" if vlan is None else str(vlan)


def format_classification(c: BonjourClassification, fmt: str = "text") -> str:
    if fmt == "json":
        return json.dumps(c.to_dict(), sort_keys=True)

    ts = datetime.fromtimestamp(c.frame.info.timestamp, tz=timezone.utc)
    kind = "query " if c.is_query else "answer"
    return (
        f"{ts.strftime('%Y-%m-%d %H:%M:%S.%f')} "
        f"vlan={_vlan_label(c.vlan_identifier):<8} "
        f"{c.source_mac} {kind} {len(c.frame.data)} bytes"
    )


def _table(rows: List[List[str]], headers: List[str]) -> str:
    """Plain-text table; count columns are right-aligned."""
    widths = [max([len(h)] + [len(r[i]) for r in rows]) for i, h in enumerate(headers)]
    numeric = [bool(rows) and all(r[i].isdigit() for r in rows) for i in range(len(headers))]

    def line(cells: List[str]) -> str:
        return "  ".join(
            c.rjust(w) if num else c.ljust(w)
            for c, w, num in zip(cells, widths, numeric)
        ).rstrip()

    return "\n".join([line(headers), line(["-" * w for w in widths])] + [line(r) for r in rows])


def render_summary_text(state: ObservationState) -> str:
    parts: List[str] = ["=== mDNS Summary ===", json.dumps(state.summary(), indent=2)]

    parts.append("=== Senders ===")
    senders = state.senders_as_list()
    if not senders:
        parts.append("(no mDNS traffic observed)")
    else:
        rows = [
            [
                s["mac"],
                ", ".join(_vlan_label(v) for v in s["vlans"]),
                str(s["queries"]),
                str(s["answers"]),
            ]
            for s in senders
        ]
        parts.append(_table(rows, headers=["Source MAC", "VLANs", "Queries", "Answers"]))

    parts.append("")
    return "\n".join(parts).rstrip() + "\n"


def render_summary_json(state: ObservationState) -> str:
    payload: Dict[str, Any] = {
        "summary": state.summary(),
        "senders": state.senders_as_list(),
    }
    return json.dumps(payload, indent=2) + "\n"


# ----------------------------
# Commands
# ----------------------------

def _run(source: FrameSource, args, config: SnifferConfig) -> int:
    lines: List[str] = []

    def on_match(c: BonjourClassification):
        line = format_classification(c, args.format)
        print(line, flush=True)
        if args.out:
            lines.append(line)

    try:
        state = watch_source(
            source,
            on_match=on_match,
            max_pending=config.max_pending,
            poll_interval=config.poll_interval_s,
        )
    except SourceReadError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[+] Capture stopped.", file=sys.stderr)
        return 130

    if args.summary:
        report = render_summary_json(state) if args.format == "json" else render_summary_text(state)
        print(report, end="")
        lines.append(report.rstrip("\n"))

    if args.out:
        out_path = Path(args.out)
        out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        print(f"[+] Wrote output: {out_path}", file=sys.stderr)

    return 0


def cmd_replay(args, config: SnifferConfig) -> int:
    pcap_path = Path(args.pcap)
    if not pcap_path.exists():
        print(f"ERROR: PCAP not found: {pcap_path}", file=sys.stderr)
        return 2

    if args.realtime:
        source: FrameSource = ReplayPcapSource(
            pcap_path,
            speed=config.replay_speed,
            loop=config.replay_loop,
            limit=args.limit,
        )
    else:
        source = PcapFileSource(pcap_path, limit=args.limit)

    return _run(source, args, config)


def cmd_live(args, config: SnifferConfig) -> int:
    if not config.interface:
        print("ERROR: no interface given (use --iface or set 'interface' in the config)", file=sys.stderr)
        return 2

    source = LiveInterfaceSource(
        config.interface,
        bpf_filter=config.bpf_filter,
        packet_limit=args.count,
        timeout=args.timeout,
        poll_interval=config.poll_interval_s,
    )
    return _run(source, args, config)


def cmd_serve(args, config: SnifferConfig) -> int:
    import uvicorn

    uvicorn.run(
        "bonjour_sniffer.web.app:app",
        host=args.host,
        port=args.port,
        log_level=config.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bonjour-sniffer", description="Passive Bonjour/mDNS frame filter")
    p.add_argument("--config", "-c", default=None, help="Path to a JSON config file")
    p.add_argument("--log-level", default=None, help="Override the configured log level")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_output_common(sp):
        sp.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
        sp.add_argument("--summary", action="store_true", help="Print a per-sender summary at the end")
        sp.add_argument("--out", default=None, help="Also write output to a file")

    replay = sub.add_parser("replay", help="Classify frames from a PCAP file")
    replay.add_argument("pcap", help="Path to .pcap/.pcapng")
    replay.add_argument("--limit", type=int, default=None, help="Limit number of frames read")
    replay.add_argument("--realtime", action="store_true",
                        help="Replay at capture pace (see replay_speed / replay_loop in the config)")
    add_output_common(replay)
    replay.set_defaults(func=cmd_replay)

    live = sub.add_parser("live", help="Classify frames from a network interface")
    live.add_argument("--iface", help="Network interface to capture from")
    live.add_argument("--bpf", help="BPF capture filter (default: udp port 5353)")
    live.add_argument("--count", type=int, default=None, help="Stop after this many captured frames")
    live.add_argument("--timeout", type=int, default=None, help="Stop after this many seconds")
    add_output_common(live)
    live.set_defaults(func=cmd_live)

    serve = sub.add_parser("serve", help="Run the web API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = SnifferConfig().load(args.config)
    config.update({
        "log_level": args.log_level,
        "interface": getattr(args, "iface", None),
        "bpf_filter": getattr(args, "bpf", None),
    })
    setup_logging(config.log_level)
    logger.debug("Running %s with config %s", args.cmd, config.data)

    return args.func(args, config)


if __name__ == "__main__":
    raise SystemExit(main())
