from bonjour_sniffer.core.frame import CaptureInfo, DecodedFrame
from bonjour_sniffer.core.state import ObservationState
from bonjour_sniffer.protocols.mdns import classify

from conftest import SRC_MAC, VLAN_ID, build_mdns_frame


def test_basic_state():
    state = ObservationState()

    state.register(classify(DecodedFrame(build_mdns_frame(), CaptureInfo(timestamp=10.0))))
    state.register(classify(DecodedFrame(build_mdns_frame(query=False), CaptureInfo(timestamp=12.0))))
    state.register(classify(DecodedFrame(build_mdns_frame(vlan=None), CaptureInfo(timestamp=11.0))))

    summary = state.summary()

    assert summary["frames"] == 3
    assert summary["queries"] == 2
    assert summary["answers"] == 1
    assert summary["senders"] == 1
    assert summary["vlans"] == 2

    assert (state.first_seen, state.last_seen) == (10.0, 12.0)
    assert state.vlans[VLAN_ID] == {"queries": 1, "answers": 1}
    assert state.vlans[None] == {"queries": 1, "answers": 0}


def test_senders_as_list():
    state = ObservationState()
    state.register(classify(DecodedFrame(build_mdns_frame(vlan=None))))
    state.register(classify(DecodedFrame(build_mdns_frame(vlan=5))))

    [row] = state.senders_as_list()
    assert row["mac"] == SRC_MAC
    assert row["vlans"] == [None, 5]
    assert row["queries"] == 2
