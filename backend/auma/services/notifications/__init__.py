"""MLO notification fan-out and its transports."""
