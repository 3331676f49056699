"""Dataset backup: plain JSON documents and passphrase-protected envelopes."""
