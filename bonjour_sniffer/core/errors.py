class BonjourSnifferError(Exception):
    """Base class for errors raised by bonjour_sniffer."""


class MissingLayer(BonjourSnifferError):
    """
    The frame lacks a layer an extractor needs.
    Per-frame only: the classifier turns it into "not a match".
    """

    def __init__(self, layer: str):
        super().__init__(f"frame has no {layer} layer")
        self.layer = layer


class NotDNS(BonjourSnifferError):
    """The UDP payload is not a usable DNS message."""


class SourceReadError(BonjourSnifferError):
    """The capture source failed. Ends the stream and reaches the consumer."""


class EndOfStream(Exception):
    """
    The capture source has no more frames.
    A terminal signal, not an error.
    """
