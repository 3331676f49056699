"""Garden: a local store for the people, groups and topics you keep in touch with."""

__version__ = "0.1.0"
