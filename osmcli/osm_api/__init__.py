"""OSM API element and changeset lookups."""

from osmcli.osm_api.client import ApiResponse, OSMApiClient, OutputFormat

__all__ = ["ApiResponse", "OSMApiClient", "OutputFormat"]
