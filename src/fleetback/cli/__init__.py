"""Command-line interface (``fleetback``)."""
