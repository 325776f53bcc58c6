from typing import Any, Dict, Optional

from bonjour_sniffer.protocols.mdns import BonjourClassification


class ObservationState:
    """
    In-memory tally of mDNS traffic seen during one run.
    Nothing here is persisted.
    """

    def __init__(self):
        # source MAC -> sender dict
        self.senders: Dict[str, Dict[str, Any]] = {}

        # vlan identifier (None for untagged) -> {"queries": n, "answers": n}
        self.vlans: Dict[Optional[int], Dict[str, int]] = {}

        self.queries = 0
        self.answers = 0
        self.first_seen: Optional[float] = None
        self.last_seen: Optional[float] = None

    def register(self, classification: BonjourClassification) -> None:
        kind = "queries" if classification.is_query else "answers"
        if classification.is_query:
            self.queries += 1
        else:
            self.answers += 1

        ts = classification.frame.info.timestamp
        if self.first_seen is None or ts < self.first_seen:
            self.first_seen = ts
        if self.last_seen is None or ts > self.last_seen:
            self.last_seen = ts

        sender = self.senders.get(classification.source_mac)
        if sender is None:
            sender = {
                "mac": classification.source_mac,
                "vlans": set(),
                "queries": 0,
                "answers": 0,
                "first_seen": ts,
                "last_seen": ts,
            }
            self.senders[classification.source_mac] = sender

        sender["vlans"].add(classification.vlan_identifier)
        sender[kind] += 1
        sender["first_seen"] = min(sender["first_seen"], ts)
        sender["last_seen"] = max(sender["last_seen"], ts)

        vlan = self.vlans.setdefault(classification.vlan_identifier, {"queries": 0, "answers": 0})
        vlan[kind] += 1

    # -------------------------
    # Introspection helpers
    # -------------------------

    def summary(self) -> Dict[str, int]:
        return {
            "frames": self.queries + self.answers,
            "queries": self.queries,
            "answers": self.answers,
            "senders": len(self.senders),
            "vlans": len(self.vlans),
        }

    def senders_as_list(self):
        """JSON-friendly sender rows, busiest first. Untagged VLAN sorts first."""
        rows = []
        for sender in self.senders.values():
            row = dict(sender)
            row["vlans"] = sorted(sender["vlans"], key=lambda v: -1 if v is None else v)
            rows.append(row)
        rows.sort(key=lambda r: (-(r["queries"] + r["answers"]), r["mac"]))
        return rows
