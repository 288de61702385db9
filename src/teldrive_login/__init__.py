"""Client-side phone / QR login for teldrive over the auth websocket."""

__version__ = "0.1.0"
