"""Pilot package: WordPress data-source connection and feed sync."""
